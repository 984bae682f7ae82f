"""
Outbound delivery over email (Resend) and SMS (Twilio).

The router depends on two small capability interfaces, EmailSender and
SmsSender. At startup build_delivery_router() picks the HTTP-backed sender
when the provider credentials are present and a null-object sender otherwise,
so nothing downstream has to probe whether a provider exists.

Every public coroutine here returns a ChannelResult and never raises:
provider rejections, transport errors and timeouts are all mapped to
``success=False`` with a human-readable error. Nothing is retried; a send is
a real side effect.
"""

import logging
import re
from typing import Optional, Protocol

import httpx

from shopnotify.config import Settings
from shopnotify.models.notifications import ChannelResult
from shopnotify.models.tokens import Channel, ShopIdentity

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"

EMAIL_NOT_CONFIGURED = "Email service not configured"
SMS_NOT_CONFIGURED = "SMS service not configured"
NO_SHOP_NUMBER = "No number configured for this shop"
INVALID_PHONE = "Invalid phone number"


def normalize_phone(phone: str) -> str:
    """
    Normalize a phone number to E.164-like form.

    Strips every non-digit, prepends the US country code to 10-digit numbers
    and adds a leading "+". Idempotent: normalizing an already-normalized
    number returns it unchanged. Returns "" when there are no digits at all.

        >>> normalize_phone("(301) 555-0182")
        '+13015550182'
        >>> normalize_phone("+13015550182")
        '+13015550182'
    """
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        return ""
    if len(digits) == 10:
        digits = "1" + digits
    return "+" + digits


def _json_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Pull the provider's ``message`` out of an error response body."""
    return str(_json_body(response).get("message") or fallback)


# ---------------------------------------------------------------------------
# Capability interfaces
# ---------------------------------------------------------------------------

class EmailSender(Protocol):
    configured: bool

    async def send(self, sender: str, to: str, subject: str, html: str) -> ChannelResult: ...


class SmsSender(Protocol):
    configured: bool

    async def send(self, from_number: str, to: str, body: str) -> ChannelResult: ...


# ---------------------------------------------------------------------------
# Resend
# ---------------------------------------------------------------------------

class ResendEmailSender:
    """Sends email through the Resend REST API."""

    configured = True

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def send(self, sender: str, to: str, subject: str, html: str) -> ChannelResult:
        payload = {
            "from": sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            response = await client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
            )

        if response.is_success:
            message_id = _json_body(response).get("id")
            logger.info(f"Email sent via Resend to {to} (id: {message_id})")
            return ChannelResult.ok(Channel.EMAIL, message_id)

        error = _error_message(response, "Email failed")
        logger.error(f"Resend rejected email to {to} [{response.status_code}]: {error}")
        return ChannelResult.failed(Channel.EMAIL, error)


class UnconfiguredEmailSender:
    """Null-object sender used when RESEND_API_KEY is not set."""

    configured = False

    async def send(self, sender: str, to: str, subject: str, html: str) -> ChannelResult:
        logger.warning("RESEND_API_KEY not set, email not sent")
        return ChannelResult.failed(Channel.EMAIL, EMAIL_NOT_CONFIGURED)


# ---------------------------------------------------------------------------
# Twilio
# ---------------------------------------------------------------------------

class TwilioSmsSender:
    """Sends SMS through the Twilio Messages API."""

    configured = True

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.timeout = timeout
        self.transport = transport

    async def send(self, from_number: str, to: str, body: str) -> ChannelResult:
        data = {
            "To": to,
            "From": from_number,
            "Body": body,
        }
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            response = await client.post(
                TWILIO_MESSAGES_URL.format(account_sid=self.account_sid),
                auth=(self.account_sid, self.auth_token),
                data=data,
            )

        if response.status_code in (200, 201):
            sid = _json_body(response).get("sid")
            logger.info(f"SMS sent via Twilio to {to} (SID: {sid})")
            return ChannelResult.ok(Channel.SMS, sid)

        error = _error_message(response, "SMS failed")
        logger.error(f"Twilio rejected SMS to {to} [{response.status_code}]: {error}")
        return ChannelResult.failed(Channel.SMS, error)


class UnconfiguredSmsSender:
    """Null-object sender used when Twilio credentials are not set."""

    configured = False

    async def send(self, from_number: str, to: str, body: str) -> ChannelResult:
        logger.warning("Twilio credentials not set, SMS not sent")
        return ChannelResult.failed(Channel.SMS, SMS_NOT_CONFIGURED)


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class DeliveryRouter:
    """Dispatches one message over one channel and normalizes the outcome."""

    def __init__(self, email_sender: EmailSender, sms_sender: SmsSender):
        self.email_sender = email_sender
        self.sms_sender = sms_sender

    async def send_email(
        self,
        identity: ShopIdentity,
        from_address: str,
        to: str,
        subject: str,
        html: str,
    ) -> ChannelResult:
        """
        Send an HTML email from the shop's identity on the shared domain.

        Success means the provider accepted the message, not that it was
        delivered.
        """
        try:
            return await self.email_sender.send(identity.email_sender(from_address), to, subject, html)
        except httpx.TimeoutException:
            logger.error(f"Email to {to} timed out")
            return ChannelResult.failed(Channel.EMAIL, "Email provider timed out")
        except Exception as e:
            logger.error(f"Email error for {to}: {e}")
            return ChannelResult.failed(Channel.EMAIL, str(e) or "Email failed")

    async def send_sms(self, identity: ShopIdentity, to: str, body: str) -> ChannelResult:
        """
        Send an SMS from the shop's assigned number.

        A missing provider credential or a shop without an assigned number
        fails this channel only, without any network call.
        """
        if not self.sms_sender.configured:
            return await self.sms_sender.send("", to, body)

        if not identity.sms_number:
            logger.warning(f"No SMS number for shop {identity.shop_id}")
            return ChannelResult.failed(Channel.SMS, NO_SHOP_NUMBER)

        to_phone = normalize_phone(to)
        if not to_phone:
            return ChannelResult.failed(Channel.SMS, INVALID_PHONE)

        try:
            return await self.sms_sender.send(identity.sms_number, to_phone, body)
        except httpx.TimeoutException:
            logger.error(f"SMS to {to_phone} timed out")
            return ChannelResult.failed(Channel.SMS, "SMS provider timed out")
        except Exception as e:
            logger.error(f"SMS error for {to_phone}: {e}")
            return ChannelResult.failed(Channel.SMS, str(e) or "SMS failed")


def build_delivery_router(settings: Settings) -> DeliveryRouter:
    """Select concrete or null-object senders from configuration."""
    if settings.email_configured:
        email_sender: EmailSender = ResendEmailSender(
            settings.resend_api_key, timeout=settings.provider_timeout_seconds
        )
    else:
        email_sender = UnconfiguredEmailSender()

    if settings.sms_configured:
        sms_sender: SmsSender = TwilioSmsSender(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            timeout=settings.provider_timeout_seconds,
        )
    else:
        sms_sender = UnconfiguredSmsSender()

    return DeliveryRouter(email_sender, sms_sender)
