"""
Unit tests for the notification dispatcher.

Covers the send pipeline end to end against FakeRepository and recording
senders:
  - validation short-circuits before any datastore access
  - 404 for unknown invoice / appointment
  - channel independence and aggregate success
  - token failure aborts before any message is sent
  - per-channel deadline
  - tracking short codes and mobile link
  - review requests
"""

from datetime import timedelta

import pytest

from conftest import NOW, SHOP_ID, RecordingEmailSender, RecordingSmsSender, make_settings

from shopnotify.errors import NotFoundError, PersistenceError, ValidationError
from shopnotify.models.notifications import (
    ChannelResult,
    ReviewRequest,
    SendInvoiceRequest,
    SendTrackingRequest,
)
from shopnotify.models.tokens import Channel
from shopnotify.services.delivery import DeliveryRouter, UnconfiguredSmsSender
from shopnotify.services.dispatcher import NotificationDispatcher, aggregate_success

INVOICE = {
    "id": "inv-1",
    "number": "1001",
    "status": "open",
    "items": [{"qty": 2, "price": 10}, {"qty": 1, "price": 5}],
    "tax_rate": 6,
}


def _invoice_request(**overrides) -> SendInvoiceRequest:
    values = dict(
        invoiceId="inv-1",
        shopId=SHOP_ID,
        sendEmail=True,
        sendSms=True,
        customerEmail="ann@example.com",
        customerPhone="(301) 555-0182",
        customerName="Ann",
    )
    values.update(overrides)
    return SendInvoiceRequest(**values)


def _tracking_request(**overrides) -> SendTrackingRequest:
    values = dict(
        appointmentId="apt-1",
        shopId=SHOP_ID,
        sendEmail=True,
        sendSms=True,
        customerEmail="ann@example.com",
        customerPhone="3015550182",
        customerName="Ann",
    )
    values.update(overrides)
    return SendTrackingRequest(**values)


@pytest.fixture()
def dispatcher(repository, delivery, settings):
    repository.add_invoice(dict(INVOICE))
    repository.add_appointment(
        {"id": "apt-1", "status": "scheduled", "date": "2025-03-03", "customer_id": "c1", "vehicle_id": "v1"},
        {"id": "v1", "year": 2019, "make": "Honda", "model": "Civic"},
    )
    return NotificationDispatcher(repository, delivery, settings)


class TestAggregateSuccess:
    def test_all_requested_must_succeed(self):
        ok = ChannelResult.ok(Channel.EMAIL, "1")
        bad = ChannelResult.failed(Channel.SMS, "x")
        assert aggregate_success(ok, None) is True
        assert aggregate_success(ok, bad) is False


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides, message", [
        ({"invoiceId": None}, "invoiceId and shopId are required"),
        ({"shopId": ""}, "invoiceId and shopId are required"),
        ({"sendEmail": False, "sendSms": False}, "At least one of sendEmail or sendSms must be true"),
        ({"customerEmail": None}, "customerEmail is required when sendEmail is true"),
        ({"customerPhone": ""}, "customerPhone is required when sendSms is true"),
    ])
    async def test_invalid_request_touches_nothing(self, dispatcher, repository, email_sender, sms_sender,
                                                   overrides, message):
        with pytest.raises(ValidationError) as exc_info:
            await dispatcher.send_invoice(_invoice_request(**overrides), now=NOW)

        assert exc_info.value.message == message
        assert repository.calls == []
        assert repository.tokens == []
        assert email_sender.sent == [] and sms_sender.sent == []

    @pytest.mark.asyncio
    async def test_tracking_requires_appointment_id(self, dispatcher, repository):
        with pytest.raises(ValidationError, match="appointmentId and shopId are required"):
            await dispatcher.send_tracking(_tracking_request(appointmentId=None), now=NOW)
        assert repository.calls == []

    @pytest.mark.asyncio
    async def test_phone_not_required_when_sms_not_requested(self, dispatcher):
        result = await dispatcher.send_invoice(_invoice_request(sendSms=False, customerPhone=None), now=NOW)
        assert result.success is True
        assert result.sms is None


class TestSendInvoice:
    @pytest.mark.asyncio
    async def test_both_channels_succeed(self, dispatcher, repository, email_sender, sms_sender, settings):
        result = await dispatcher.send_invoice(_invoice_request(), now=NOW)

        assert result.success is True
        assert result.issued.is_existing is False
        assert result.url == f"{settings.app_base_url}/public-invoice.html?token={result.issued.token}"
        assert result.email.message_id == "email-123"
        assert result.sms.message_id == "SM123"

        email = email_sender.sent[0]
        assert email["from"] == "Joe's Garage <invoices@example.com>"
        assert email["to"] == "ann@example.com"
        assert email["subject"] == "Invoice #1001 from Joe's Garage"
        assert result.url in email["html"]
        assert "$26.50" in email["html"]

        sms = sms_sender.sent[0]
        assert sms["from"] == "+15005550006"
        assert sms["to"] == "+13015550182"
        assert sms["body"] == f"Joe's Garage: Your invoice #1001 for $26.50 is ready. View it here: {result.url}"

        assert repository.tokens[0].sent_via == ["email", "sms"]

    @pytest.mark.asyncio
    async def test_paid_invoice_uses_paid_copy(self, dispatcher, repository, email_sender, sms_sender):
        repository.add_invoice(dict(INVOICE, status="PAID"))

        await dispatcher.send_invoice(_invoice_request(), now=NOW)

        assert email_sender.sent[0]["subject"] == "Paid Invoice #1001 - Thank You!"
        assert "Amount Paid" in email_sender.sent[0]["html"]
        assert "has been paid" in sms_sender.sent[0]["body"]

    @pytest.mark.asyncio
    async def test_unknown_invoice_is_404(self, dispatcher, repository, email_sender):
        with pytest.raises(NotFoundError, match="Invoice not found"):
            await dispatcher.send_invoice(_invoice_request(invoiceId="missing"), now=NOW)
        assert repository.tokens == []
        assert email_sender.sent == []

    @pytest.mark.asyncio
    async def test_invoice_of_other_shop_is_404(self, dispatcher):
        with pytest.raises(NotFoundError):
            await dispatcher.send_invoice(_invoice_request(shopId="shop-2"), now=NOW)

    @pytest.mark.asyncio
    async def test_email_failure_does_not_block_sms(self, repository, sms_sender, settings):
        repository.add_invoice(dict(INVOICE))
        email_sender = RecordingEmailSender(result=ChannelResult.failed(Channel.EMAIL, "Invalid `to` field"))
        dispatcher = NotificationDispatcher(repository, DeliveryRouter(email_sender, sms_sender), settings)

        result = await dispatcher.send_invoice(_invoice_request(), now=NOW)

        assert result.success is False
        assert result.email.error == "Invalid `to` field"
        assert result.sms.success is True
        assert len(sms_sender.sent) == 1
        # The link is still issued and returned
        assert len(repository.tokens) == 1
        assert result.issued.token == repository.tokens[0].token

    @pytest.mark.asyncio
    async def test_sms_without_provider_fails_only_sms(self, repository, email_sender, settings):
        repository.add_invoice(dict(INVOICE))
        delivery = DeliveryRouter(email_sender, UnconfiguredSmsSender())
        dispatcher = NotificationDispatcher(repository, delivery, settings)

        result = await dispatcher.send_invoice(_invoice_request(), now=NOW)

        assert result.success is False
        assert result.email.success is True
        assert result.sms.error == "SMS service not configured"

    @pytest.mark.asyncio
    async def test_shop_without_sms_number(self, dispatcher, repository, sms_sender):
        repository.sms_numbers.clear()

        result = await dispatcher.send_invoice(_invoice_request(), now=NOW)

        assert result.sms.error == "No number configured for this shop"
        assert sms_sender.sent == []

    @pytest.mark.asyncio
    async def test_sms_number_not_looked_up_for_email_only(self, dispatcher, repository):
        await dispatcher.send_invoice(_invoice_request(sendSms=False), now=NOW)
        assert "get_sms_number" not in repository.calls

    @pytest.mark.asyncio
    async def test_shop_lookup_failure_uses_default_name(self, dispatcher, repository, email_sender):
        repository.fail_shop = True

        result = await dispatcher.send_invoice(_invoice_request(sendSms=False), now=NOW)

        assert result.success is True
        assert email_sender.sent[0]["from"] == "Business <invoices@example.com>"

    @pytest.mark.asyncio
    async def test_token_failure_aborts_before_sending(self, dispatcher, repository, email_sender, sms_sender):
        repository.fail_insert = True

        with pytest.raises(PersistenceError, match="Failed to create invoice link"):
            await dispatcher.send_invoice(_invoice_request(), now=NOW)
        assert email_sender.sent == [] and sms_sender.sent == []

    @pytest.mark.asyncio
    async def test_repository_error_on_load_is_persistence_error(self, dispatcher, repository):
        def broken(shop_id, invoice_id):
            raise RuntimeError("connection reset")
        repository.get_invoice = broken

        with pytest.raises(PersistenceError, match="Failed to load invoice"):
            await dispatcher.send_invoice(_invoice_request(), now=NOW)

    @pytest.mark.asyncio
    async def test_resend_reuses_token_and_unions_channels(self, dispatcher, repository):
        first = await dispatcher.send_invoice(_invoice_request(sendSms=False), now=NOW)
        second = await dispatcher.send_invoice(
            _invoice_request(sendEmail=False), now=NOW + timedelta(days=3)
        )

        assert second.issued.is_existing is True
        assert second.issued.token == first.issued.token
        assert second.url == first.url
        assert repository.tokens[0].sent_via == ["email", "sms"]
        assert repository.tokens[0].expires_at == NOW + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_slow_channel_times_out_without_blocking_other(self, repository, email_sender):
        repository.add_invoice(dict(INVOICE))
        repository.sms_numbers[SHOP_ID] = "+15005550006"
        slow_sms = RecordingSmsSender(delay=1.0)
        settings = make_settings(dispatch_timeout_seconds=0.05)
        dispatcher = NotificationDispatcher(repository, DeliveryRouter(email_sender, slow_sms), settings)

        result = await dispatcher.send_invoice(_invoice_request(), now=NOW)

        assert result.success is False
        assert result.email.success is True
        assert result.sms.error == "SMS delivery timed out; outcome unknown"


class TestSendTracking:
    @pytest.mark.asyncio
    async def test_email_and_sms_links(self, dispatcher, email_sender, sms_sender, settings):
        result = await dispatcher.send_tracking(_tracking_request(), now=NOW)

        token = result.issued.token
        assert result.success is True
        assert result.url == f"{settings.app_base_url}/public-tracking.html?token={token}"
        assert result.mobile_url == f"{settings.app_base_url}/public-tracking-mobile.html?token={token}"

        email = email_sender.sent[0]
        assert email["from"] == "Joe's Garage <service@example.com>"
        assert email["subject"] == "Track Your 2019 Honda Civic - Joe's Garage"
        assert result.url in email["html"]
        assert "Monday, March 3, 2025" in email["html"]

        assert sms_sender.sent[0]["body"] == (
            f"Joe's Garage: Track your 2019 Honda Civic status here: {result.mobile_url}"
        )

    @pytest.mark.asyncio
    async def test_tracking_code_becomes_short_code(self, dispatcher, repository):
        result = await dispatcher.send_tracking(_tracking_request(trackingCode="ABC123"), now=NOW)

        assert result.issued.short_code == "ABC123"
        assert repository.tokens[0].short_code == "ABC123"

    @pytest.mark.asyncio
    async def test_second_send_reports_existing_token(self, dispatcher):
        first = await dispatcher.send_tracking(_tracking_request(sendSms=False), now=NOW)
        second = await dispatcher.send_tracking(_tracking_request(trackingCode="XYZ789"), now=NOW)

        assert second.issued.is_existing is True
        assert second.issued.token == first.issued.token
        assert second.issued.short_code == "XYZ789"

    @pytest.mark.asyncio
    async def test_unknown_appointment_is_404(self, dispatcher):
        with pytest.raises(NotFoundError, match="Appointment not found"):
            await dispatcher.send_tracking(_tracking_request(appointmentId="nope"), now=NOW)

    @pytest.mark.asyncio
    async def test_in_progress_status_copy(self, dispatcher, repository, email_sender):
        repository.add_appointment({"id": "apt-2", "status": "in-progress", "vehicle": "Blue Ford F-150"})

        await dispatcher.send_tracking(_tracking_request(appointmentId="apt-2", sendSms=False), now=NOW)

        html = email_sender.sent[0]["html"]
        assert "Blue Ford F-150 is currently being serviced" in html
        assert "IN PROGRESS" in html


class TestSendReviewRequest:
    @pytest.mark.asyncio
    async def test_requires_review_url(self, dispatcher):
        with pytest.raises(ValidationError, match="Google Business URL is required"):
            await dispatcher.send_review_request(
                ReviewRequest(shopId=SHOP_ID, customerEmail="a@b.com", sendEmail=True)
            )

    @pytest.mark.asyncio
    async def test_requires_a_contact(self, dispatcher):
        with pytest.raises(ValidationError, match="Customer email or phone is required"):
            await dispatcher.send_review_request(
                ReviewRequest(shopId=SHOP_ID, googleReviewUrl="https://g.page/r/1", sendEmail=True)
            )

    @pytest.mark.asyncio
    async def test_prefers_google_business_name(self, dispatcher, repository, sms_sender):
        repository.shops[SHOP_ID]["google_business_name"] = "Joe's Auto Repair"

        result = await dispatcher.send_review_request(ReviewRequest(
            shopId=SHOP_ID, customerName="Ann", customerPhone="3015550182",
            googleReviewUrl="https://g.page/r/1", sendSms=True,
        ))

        assert result.success is True
        assert "Thank you for choosing Joe's Auto Repair!" in sms_sender.sent[0]["body"]
        assert result.email is None

    @pytest.mark.asyncio
    async def test_channel_skipped_without_contact(self, dispatcher, email_sender, sms_sender):
        result = await dispatcher.send_review_request(ReviewRequest(
            shopId=SHOP_ID, customerEmail="a@b.com",
            googleReviewUrl="https://g.page/r/1", sendEmail=True, sendSms=True,
        ))

        assert result.success is True
        assert result.sms is None
        assert sms_sender.sent == []
        assert email_sender.sent[0]["from"] == "Joe's Garage <noreply@example.com>"

    @pytest.mark.asyncio
    async def test_succeeds_if_any_channel_succeeds(self, repository, settings):
        email_sender = RecordingEmailSender(result=ChannelResult.failed(Channel.EMAIL, "bounced"))
        dispatcher = NotificationDispatcher(
            repository, DeliveryRouter(email_sender, RecordingSmsSender()), settings
        )

        result = await dispatcher.send_review_request(ReviewRequest(
            shopId=SHOP_ID, customerEmail="a@b.com", customerPhone="3015550182",
            googleReviewUrl="https://g.page/r/1", sendEmail=True, sendSms=True,
        ))

        assert result.success is True
        assert result.email.success is False

    @pytest.mark.asyncio
    async def test_without_shop_uses_generic_name(self, dispatcher, email_sender):
        await dispatcher.send_review_request(ReviewRequest(
            customerEmail="a@b.com", googleReviewUrl="https://g.page/r/1", sendEmail=True,
        ))
        assert "our business" in email_sender.sent[0]["html"]
