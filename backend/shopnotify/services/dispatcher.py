"""
Notification dispatcher: the entry point behind the send-* endpoints.

Each send runs through the same stages:

  1. Validate the request. Nothing touches the datastore until this passes.
  2. Load the resource (404 when missing) and the shop identity (defaults
     when the shop lookup fails).
  3. Issue or refresh the public link token. Failure aborts the request
     before any message is sent, since every message embeds the link.
  4. Fan out to the requested channels concurrently and wait for all of them.
  5. Aggregate: success only when every requested channel succeeded.

Channel failures are data (ChannelResult), not exceptions. A failed email
never blocks the SMS, and neither rolls back the issued token, so the
operator can still copy the link from the response.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Dict, Optional

from shopnotify.config import Settings
from shopnotify.errors import NotFoundError, NotifyError, PersistenceError, ValidationError
from shopnotify.models.notifications import (
    ChannelResult,
    ReviewRequest,
    SendInvoiceRequest,
    SendRequestBase,
    SendTrackingRequest,
)
from shopnotify.models.tokens import Channel, IssuedToken, ResourceKind, ShopIdentity
from shopnotify.services import email_templates, message_content
from shopnotify.services.delivery import DeliveryRouter
from shopnotify.services.link_issuer import (
    build_invoice_url,
    build_mobile_tracking_url,
    build_tracking_url,
    issue_or_refresh_token,
)
from shopnotify.services.repository import NotificationRepository

logger = logging.getLogger(__name__)

DEFAULT_SHOP_NAME = "Business"
DEFAULT_CUSTOMER_NAME = "Customer"


@dataclass
class DispatchResult:
    success: bool
    issued: IssuedToken
    url: str
    mobile_url: Optional[str] = None
    email: Optional[ChannelResult] = None
    sms: Optional[ChannelResult] = None


@dataclass
class ReviewResult:
    success: bool
    email: Optional[ChannelResult] = None
    sms: Optional[ChannelResult] = None


def requested_channels(request: SendRequestBase) -> list[Channel]:
    channels = []
    if request.send_email:
        channels.append(Channel.EMAIL)
    if request.send_sms:
        channels.append(Channel.SMS)
    return channels


def validate_send_request(request: SendRequestBase, resource_id: Optional[str], id_field: str) -> None:
    """
    Reject malformed send requests before any I/O.

    Raises:
        ValidationError: with the message returned verbatim to the caller
    """
    if not resource_id or not request.shop_id:
        raise ValidationError(f"{id_field} and shopId are required")
    if not request.send_email and not request.send_sms:
        raise ValidationError("At least one of sendEmail or sendSms must be true")
    if request.send_email and not request.customer_email:
        raise ValidationError("customerEmail is required when sendEmail is true")
    if request.send_sms and not request.customer_phone:
        raise ValidationError("customerPhone is required when sendSms is true")


def aggregate_success(email: Optional[ChannelResult], sms: Optional[ChannelResult]) -> bool:
    """Every requested channel succeeded; a channel that was not requested is None."""
    return all(result.success for result in (email, sms) if result is not None)


class NotificationDispatcher:
    def __init__(
        self,
        repository: NotificationRepository,
        delivery: DeliveryRouter,
        settings: Settings,
    ):
        self.repository = repository
        self.delivery = delivery
        self.settings = settings

    # ------------------------------------------------------------------
    # Shared stages
    # ------------------------------------------------------------------

    def _load_identity(self, shop_id: str, include_sms_number: bool) -> ShopIdentity:
        """
        Resolve the shop's display name, logo and (if needed) SMS number.

        Lookup failures are logged and fall back to defaults; the shop row
        missing entirely is fine too.
        """
        shop = None
        try:
            shop = self.repository.get_shop(shop_id)
        except Exception as e:
            logger.warning(f"Could not fetch shop info for {shop_id}: {e}")

        sms_number = None
        if include_sms_number:
            try:
                sms_number = self.repository.get_sms_number(shop_id)
            except Exception as e:
                logger.warning(f"Could not fetch SMS number for shop {shop_id}: {e}")

        shop = shop or {}
        return ShopIdentity(
            shop_id=shop_id,
            name=shop.get("name") or DEFAULT_SHOP_NAME,
            logo=shop.get("logo"),
            google_business_name=shop.get("google_business_name"),
            sms_number=sms_number,
        )

    async def _bounded(self, channel: Channel, send: Awaitable[ChannelResult]) -> ChannelResult:
        """Await one channel send, reporting a failure if it outlives the deadline."""
        try:
            return await asyncio.wait_for(send, timeout=self.settings.dispatch_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"{channel.value} dispatch exceeded {self.settings.dispatch_timeout_seconds}s")
            return ChannelResult.failed(channel, f"{channel.value.upper()} delivery timed out; outcome unknown")

    async def _fan_out(self, sends: Dict[Channel, Awaitable[ChannelResult]]) -> Dict[Channel, ChannelResult]:
        """Run the channel sends concurrently and wait for all of them."""
        channels = list(sends)
        results = await asyncio.gather(*(self._bounded(c, sends[c]) for c in channels))
        return dict(zip(channels, results))

    # ------------------------------------------------------------------
    # Invoice
    # ------------------------------------------------------------------

    async def send_invoice(self, request: SendInvoiceRequest, now: Optional[datetime] = None) -> DispatchResult:
        """Send an invoice link by email and/or SMS."""
        validate_send_request(request, request.invoice_id, "invoiceId")
        shop_id, invoice_id = request.shop_id, request.invoice_id

        try:
            invoice = self.repository.get_invoice(shop_id, invoice_id)
        except NotifyError:
            raise
        except Exception as e:
            logger.error(f"Failed to load invoice {invoice_id} for shop {shop_id}: {e}")
            raise PersistenceError("Failed to load invoice") from e
        if not invoice:
            raise NotFoundError("Invoice not found")

        identity = self._load_identity(shop_id, include_sms_number=request.send_sms)

        issued = issue_or_refresh_token(
            self.repository,
            shop_id=shop_id,
            resource_id=invoice_id,
            kind=ResourceKind.INVOICE,
            channels=requested_channels(request),
            recipient_email=request.customer_email,
            recipient_phone=request.customer_phone,
            now=now,
        )
        url = build_invoice_url(self.settings.app_base_url, issued.token)

        number = message_content.invoice_number(invoice)
        totals = message_content.compute_invoice_totals(invoice)
        paid = message_content.is_paid(invoice.get("status"))

        sends: Dict[Channel, Awaitable[ChannelResult]] = {}
        if request.send_email:
            html = email_templates.render_invoice_email(
                shop_name=identity.name,
                customer_name=request.customer_name or DEFAULT_CUSTOMER_NAME,
                number=number,
                total=totals.formatted_total,
                url=url,
                logo_url=identity.logo,
                paid=paid,
            )
            sends[Channel.EMAIL] = self.delivery.send_email(
                identity,
                self.settings.email_from_address,
                request.customer_email,
                message_content.invoice_email_subject(number, identity.name, paid),
                html,
            )
        if request.send_sms:
            body = message_content.invoice_sms_body(identity.name, number, totals.formatted_total, url, paid)
            sends[Channel.SMS] = self.delivery.send_sms(identity, request.customer_phone, body)

        results = await self._fan_out(sends)
        email, sms = results.get(Channel.EMAIL), results.get(Channel.SMS)

        return DispatchResult(
            success=aggregate_success(email, sms),
            issued=issued,
            url=url,
            email=email,
            sms=sms,
        )

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    async def send_tracking(self, request: SendTrackingRequest, now: Optional[datetime] = None) -> DispatchResult:
        """
        Send an appointment tracking link by email and/or SMS.

        Email links to the regular tracker; SMS links to the mobile tracker,
        which needs no further input from the customer.
        """
        validate_send_request(request, request.appointment_id, "appointmentId")
        shop_id, appointment_id = request.shop_id, request.appointment_id

        try:
            record = self.repository.get_appointment(shop_id, appointment_id)
        except NotifyError:
            raise
        except Exception as e:
            logger.error(f"Failed to load appointment {appointment_id} for shop {shop_id}: {e}")
            raise PersistenceError("Failed to load appointment") from e
        if record is None:
            raise NotFoundError("Appointment not found")

        appointment = record.appointment
        identity = self._load_identity(shop_id, include_sms_number=request.send_sms)
        vehicle = message_content.vehicle_display(appointment, record.vehicle)

        issued = issue_or_refresh_token(
            self.repository,
            shop_id=shop_id,
            resource_id=appointment_id,
            kind=ResourceKind.APPOINTMENT,
            channels=requested_channels(request),
            recipient_email=request.customer_email,
            recipient_phone=request.customer_phone,
            short_code=request.tracking_code,
            now=now,
        )
        url = build_tracking_url(self.settings.app_base_url, issued.token)
        mobile_url = build_mobile_tracking_url(self.settings.app_base_url, issued.token)

        sends: Dict[Channel, Awaitable[ChannelResult]] = {}
        if request.send_email:
            status = appointment.get("status") or "scheduled"
            html = email_templates.render_tracking_email(
                shop_name=identity.name,
                customer_name=request.customer_name or DEFAULT_CUSTOMER_NAME,
                vehicle=vehicle,
                status_text=message_content.tracking_status_text(
                    status, appointment.get("date") or appointment.get("preferred_date")
                ),
                status_label=message_content.tracking_status_label(status),
                url=url,
                logo_url=identity.logo,
            )
            sends[Channel.EMAIL] = self.delivery.send_email(
                identity,
                self.settings.tracking_from_address,
                request.customer_email,
                message_content.tracking_email_subject(vehicle, identity.name),
                html,
            )
        if request.send_sms:
            body = message_content.tracking_sms_body(identity.name, vehicle, mobile_url)
            sends[Channel.SMS] = self.delivery.send_sms(identity, request.customer_phone, body)

        results = await self._fan_out(sends)
        email, sms = results.get(Channel.EMAIL), results.get(Channel.SMS)

        return DispatchResult(
            success=aggregate_success(email, sms),
            issued=issued,
            url=url,
            mobile_url=mobile_url,
            email=email,
            sms=sms,
        )

    # ------------------------------------------------------------------
    # Review request
    # ------------------------------------------------------------------

    async def send_review_request(self, request: ReviewRequest) -> ReviewResult:
        """
        Ask a customer for a Google review by email and/or SMS.

        No link token is involved. Each channel is attempted only when its
        flag is set and the matching contact detail is present; the request
        succeeds if any channel did.
        """
        if not request.google_review_url:
            raise ValidationError("Google Business URL is required")
        if not request.customer_email and not request.customer_phone:
            raise ValidationError("Customer email or phone is required")

        send_email = bool(request.send_email and request.customer_email)
        send_sms = bool(request.send_sms and request.customer_phone)

        if request.shop_id:
            identity = self._load_identity(request.shop_id, include_sms_number=send_sms)
        else:
            identity = ShopIdentity(shop_id="")
        shop_name = identity.google_business_name or (
            identity.name if identity.name != DEFAULT_SHOP_NAME else "our business"
        )

        sends: Dict[Channel, Awaitable[ChannelResult]] = {}
        if send_email:
            sends[Channel.EMAIL] = self.delivery.send_email(
                identity,
                self.settings.review_from_address,
                request.customer_email,
                message_content.review_email_subject(request.customer_name),
                email_templates.render_review_email(shop_name, request.customer_name, request.google_review_url),
            )
        if send_sms:
            body = message_content.review_message(request.customer_name, shop_name, request.google_review_url)
            sends[Channel.SMS] = self.delivery.send_sms(identity, request.customer_phone, body)

        results = await self._fan_out(sends)
        email, sms = results.get(Channel.EMAIL), results.get(Channel.SMS)
        success = any(result.success for result in (email, sms) if result is not None)
        logger.info(f"Review request for shop {request.shop_id}: success={success}")

        return ReviewResult(success=success, email=email, sms=sms)
