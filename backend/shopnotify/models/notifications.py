"""
Pydantic models for the send-* endpoints.

Request and response bodies use camelCase on the wire (``invoiceId``,
``sendEmail`` ...) to stay compatible with the existing frontend; Python code
uses the snake_case attribute names.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from shopnotify.models.tokens import Channel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendRequestBase(CamelModel):
    """
    Fields shared by every send request.

    Identifiers and recipients are all optional at the schema level; the
    dispatcher does the required-field checks so the caller gets a single
    400 ``{"error": ...}`` message instead of a schema dump.
    """
    shop_id: Optional[str] = None
    send_email: bool = False
    send_sms: bool = False
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None

    @field_validator(
        "shop_id", "invoice_id", "appointment_id", "customer_phone",
        mode="before", check_fields=False,
    )
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        # Numeric ids from older frontends arrive as JSON numbers
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class SendInvoiceRequest(SendRequestBase):
    invoice_id: Optional[str] = None


class SendTrackingRequest(SendRequestBase):
    appointment_id: Optional[str] = None
    tracking_code: Optional[str] = None


class ReviewRequest(SendRequestBase):
    invoice_id: Optional[str] = None
    google_review_url: Optional[str] = None


class ChannelResult(BaseModel):
    """
    Outcome of a single channel dispatch.

    ``message_id`` is the Resend email id or the Twilio message SID. On the
    wire it is rendered as ``id`` for email and ``sid`` for SMS.
    """
    channel: Channel
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, channel: Channel, message_id: Optional[str]) -> "ChannelResult":
        return cls(channel=channel, success=True, message_id=message_id)

    @classmethod
    def failed(cls, channel: Channel, error: str) -> "ChannelResult":
        return cls(channel=channel, success=False, error=error)

    def as_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success}
        if self.message_id is not None:
            body["id" if self.channel == Channel.EMAIL else "sid"] = self.message_id
        if self.error is not None:
            body["error"] = self.error
        return body


def results_payload(
    email: Optional[ChannelResult], sms: Optional[ChannelResult]
) -> Dict[str, Optional[Dict[str, Any]]]:
    """Render per-channel results; channels that were not requested are null."""
    return {
        "email": email.as_response() if email else None,
        "sms": sms.as_response() if sms else None,
    }
