"""
Shared fakes for the notification tests.

No test talks to Supabase, Resend or Twilio: the repository is an in-memory
FakeRepository and the senders record what they were asked to send.
"""

import asyncio
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

# Mock environment variables before importing app modules
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")

from shopnotify.config import Settings
from shopnotify.models.notifications import ChannelResult
from shopnotify.models.tokens import AccessToken, Channel, ResourceKind
from shopnotify.services.delivery import DeliveryRouter
from shopnotify.services.repository import AppointmentRecord

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
SHOP_ID = "shop-1"


def make_settings(**overrides) -> Settings:
    """Settings with every provider configured and test-friendly defaults."""
    values = dict(
        supabase_url="https://test.supabase.co",
        supabase_service_key="test-service-key",
        resend_api_key="re_test",
        twilio_account_sid="AC123",
        twilio_auth_token="twilio-token",
        app_base_url="https://shop.example.com",
        email_from_address="invoices@example.com",
        tracking_from_address="service@example.com",
        review_from_address="noreply@example.com",
        provider_timeout_seconds=10.0,
        dispatch_timeout_seconds=15.0,
        cors_origins=["*"],
    )
    values.update(overrides)
    return Settings(**values)


class FakeRepository:
    """In-memory NotificationRepository. ``calls`` records every method used."""

    def __init__(self):
        self.invoices: Dict[tuple, Dict[str, Any]] = {}
        self.appointments: Dict[tuple, AppointmentRecord] = {}
        self.shops: Dict[str, Dict[str, Any]] = {}
        self.sms_numbers: Dict[str, str] = {}
        self.tokens: List[AccessToken] = []
        self.calls: List[str] = []
        self.fail_insert = False
        self.fail_update = False
        self.fail_lookup = False
        self.fail_shop = False

    def add_invoice(self, invoice: Dict[str, Any], shop_id: str = SHOP_ID) -> None:
        self.invoices[(shop_id, str(invoice["id"]))] = invoice

    def add_appointment(
        self,
        appointment: Dict[str, Any],
        vehicle: Optional[Dict[str, Any]] = None,
        shop_id: str = SHOP_ID,
    ) -> None:
        self.appointments[(shop_id, str(appointment["id"]))] = AppointmentRecord(appointment, vehicle)

    def get_invoice(self, shop_id, invoice_id):
        self.calls.append("get_invoice")
        return self.invoices.get((shop_id, invoice_id))

    def get_appointment(self, shop_id, appointment_id):
        self.calls.append("get_appointment")
        return self.appointments.get((shop_id, appointment_id))

    def get_shop(self, shop_id):
        self.calls.append("get_shop")
        if self.fail_shop:
            raise RuntimeError("shops table unavailable")
        return self.shops.get(shop_id)

    def get_sms_number(self, shop_id):
        self.calls.append("get_sms_number")
        return self.sms_numbers.get(shop_id)

    def find_active_token(self, kind, shop_id, resource_id, now):
        self.calls.append("find_active_token")
        if self.fail_lookup:
            raise RuntimeError("token lookup failed")
        candidates = [
            t for t in self.tokens
            if t.kind == kind and t.shop_id == shop_id and t.resource_id == resource_id
            and t.expires_at > now
        ]
        candidates.sort(key=lambda t: t.created_at or t.expires_at, reverse=True)
        return candidates[0] if candidates else None

    def insert_token(self, token):
        self.calls.append("insert_token")
        if self.fail_insert:
            raise RuntimeError("insert failed")
        self.tokens.append(token)
        return token

    def update_token(self, kind, token, fields):
        self.calls.append("update_token")
        if self.fail_update:
            raise RuntimeError("update failed")
        for i, existing in enumerate(self.tokens):
            if existing.kind == kind and existing.token == token:
                self.tokens[i] = existing.model_copy(update=fields)

    def get_token(self, kind, token):
        self.calls.append("get_token")
        for existing in self.tokens:
            if existing.kind == kind and existing.token == token:
                return existing
        return None

    def find_token_by_short_code(self, short_code, now):
        self.calls.append("find_token_by_short_code")
        matches = [
            t for t in self.tokens
            if t.kind == ResourceKind.APPOINTMENT and t.short_code == short_code and t.expires_at > now
        ]
        matches.sort(key=lambda t: t.created_at or t.expires_at, reverse=True)
        return matches[0] if matches else None


class RecordingEmailSender:
    configured = True

    def __init__(self, result: Optional[ChannelResult] = None, delay: float = 0.0, error: Exception = None):
        self.result = result or ChannelResult.ok(Channel.EMAIL, "email-123")
        self.delay = delay
        self.error = error
        self.sent: List[Dict[str, str]] = []

    async def send(self, sender, to, subject, html):
        self.sent.append({"from": sender, "to": to, "subject": subject, "html": html})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class RecordingSmsSender:
    configured = True

    def __init__(self, result: Optional[ChannelResult] = None, delay: float = 0.0, error: Exception = None):
        self.result = result or ChannelResult.ok(Channel.SMS, "SM123")
        self.delay = delay
        self.error = error
        self.sent: List[Dict[str, str]] = []

    async def send(self, from_number, to, body):
        self.sent.append({"from": from_number, "to": to, "body": body})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture()
def repository() -> FakeRepository:
    repo = FakeRepository()
    repo.shops[SHOP_ID] = {"name": "Joe's Garage", "logo": None, "google_business_name": None}
    repo.sms_numbers[SHOP_ID] = "+15005550006"
    return repo


@pytest.fixture()
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture()
def sms_sender() -> RecordingSmsSender:
    return RecordingSmsSender()


@pytest.fixture()
def delivery(email_sender, sms_sender) -> DeliveryRouter:
    return DeliveryRouter(email_sender, sms_sender)


@pytest.fixture()
def settings() -> Settings:
    return make_settings()
