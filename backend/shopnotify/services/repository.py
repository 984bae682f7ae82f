"""
Datastore access for the notification flow.

The dispatcher depends on the NotificationRepository protocol, not on
Supabase directly. SupabaseRepository is the production implementation and is
handed to each request through a FastAPI dependency (see deps.py);
tests substitute an in-memory fake.

Tables used
-----------
invoices               id, shop_id, number, status, items, tax_rate, discount
data                   shop_id, invoices (jsonb), appointments (jsonb), customers (jsonb)
shops                  id, name, logo, google_business_name
shop_twilio_numbers    shop_id, phone_number, provisioning_status
invoice_tokens         token, invoice_id, shop_id, expires_at, sent_via, ...
appointment_tokens     token, appointment_id, shop_id, expires_at, sent_via, short_code, ...

Methods raise whatever the Supabase client raises; callers decide which
failures are fatal.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Protocol

from supabase import Client

from shopnotify.db import get_supabase_admin
from shopnotify.models.tokens import AccessToken, ResourceKind

logger = logging.getLogger(__name__)

# kind -> (table, resource id column)
_TOKEN_TABLES = {
    ResourceKind.INVOICE: ("invoice_tokens", "invoice_id"),
    ResourceKind.APPOINTMENT: ("appointment_tokens", "appointment_id"),
}


class AppointmentRecord(NamedTuple):
    appointment: Dict[str, Any]
    vehicle: Optional[Dict[str, Any]]


class NotificationRepository(Protocol):
    def get_invoice(self, shop_id: str, invoice_id: str) -> Optional[Dict[str, Any]]: ...

    def get_appointment(self, shop_id: str, appointment_id: str) -> Optional[AppointmentRecord]: ...

    def get_shop(self, shop_id: str) -> Optional[Dict[str, Any]]: ...

    def get_sms_number(self, shop_id: str) -> Optional[str]: ...

    def find_active_token(
        self, kind: ResourceKind, shop_id: str, resource_id: str, now: datetime
    ) -> Optional[AccessToken]: ...

    def insert_token(self, token: AccessToken) -> AccessToken: ...

    def update_token(self, kind: ResourceKind, token: str, fields: Dict[str, Any]) -> None: ...

    def get_token(self, kind: ResourceKind, token: str) -> Optional[AccessToken]: ...

    def find_token_by_short_code(self, short_code: str, now: datetime) -> Optional[AccessToken]: ...


def _row_to_token(kind: ResourceKind, row: Dict[str, Any]) -> AccessToken:
    _, resource_column = _TOKEN_TABLES[kind]
    return AccessToken(
        token=row["token"],
        shop_id=str(row["shop_id"]),
        resource_id=str(row[resource_column]),
        kind=kind,
        expires_at=row["expires_at"],
        created_at=row.get("created_at"),
        sent_via=row.get("sent_via") or [],
        recipient_email=row.get("recipient_email"),
        recipient_phone=row.get("recipient_phone"),
        short_code=row.get("short_code"),
    )


def _token_to_row(token: AccessToken) -> Dict[str, Any]:
    _, resource_column = _TOKEN_TABLES[token.kind]
    row: Dict[str, Any] = {
        "token": token.token,
        resource_column: token.resource_id,
        "shop_id": token.shop_id,
        "expires_at": token.expires_at.isoformat(),
        "sent_via": list(token.sent_via),
        "recipient_email": token.recipient_email,
        "recipient_phone": token.recipient_phone,
    }
    if token.created_at is not None:
        row["created_at"] = token.created_at.isoformat()
    if token.short_code:
        row["short_code"] = token.short_code
    return row


def _find_by_id(items: Optional[List[Dict[str, Any]]], item_id: Any) -> Optional[Dict[str, Any]]:
    if item_id is None:
        return None
    for item in items or []:
        if str(item.get("id")) == str(item_id):
            return item
    return None


class SupabaseRepository:
    """
    NotificationRepository backed by the Supabase admin client.

    The client is resolved on first query rather than at construction, so a
    request that fails validation never needs datastore credentials.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin()
        return self._client

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def _get_shop_data(self, shop_id: str, columns: str) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table("data")
            .select(columns)
            .eq("shop_id", shop_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def get_invoice(self, shop_id: str, invoice_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch an invoice scoped to the shop.

        The ``invoices`` table carries the most up-to-date status, so it is
        checked first; older shops still keep invoices only in the JSONB
        ``data.invoices`` array, which is the fallback. A failed ``invoices``
        query (e.g. a legacy id that is not a UUID) also falls back.
        """
        try:
            result = (
                self.client.table("invoices")
                .select("*")
                .eq("id", invoice_id)
                .eq("shop_id", shop_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.warning(f"invoices table lookup failed for {invoice_id}, trying data JSONB: {e}")
        else:
            if result.data:
                logger.info(f"Invoice {invoice_id} loaded from invoices table with status {result.data[0].get('status')!r}")
                return result.data[0]

        shop_data = self._get_shop_data(shop_id, "invoices")
        if not shop_data:
            return None

        invoice = _find_by_id(shop_data.get("invoices"), invoice_id)
        if invoice:
            logger.info(f"Invoice {invoice_id} loaded from data JSONB with status {invoice.get('status')!r}")
        return invoice

    def get_appointment(self, shop_id: str, appointment_id: str) -> Optional[AppointmentRecord]:
        """Fetch an appointment and, when linked, the customer's vehicle."""
        shop_data = self._get_shop_data(shop_id, "appointments, customers")
        if not shop_data:
            return None

        appointment = _find_by_id(shop_data.get("appointments"), appointment_id)
        if appointment is None:
            return None

        vehicle = None
        customer = _find_by_id(shop_data.get("customers"), appointment.get("customer_id"))
        if customer and appointment.get("vehicle_id") is not None:
            vehicle = _find_by_id(customer.get("vehicles"), appointment.get("vehicle_id"))

        return AppointmentRecord(appointment=appointment, vehicle=vehicle)

    def get_shop(self, shop_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table("shops")
            .select("name, logo, google_business_name")
            .eq("id", shop_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def get_sms_number(self, shop_id: str) -> Optional[str]:
        result = (
            self.client.table("shop_twilio_numbers")
            .select("phone_number")
            .eq("shop_id", shop_id)
            .eq("provisioning_status", "active")
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return result.data[0].get("phone_number") or None

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def find_active_token(
        self, kind: ResourceKind, shop_id: str, resource_id: str, now: datetime
    ) -> Optional[AccessToken]:
        """Newest token for (shop, resource) whose expiry is after ``now``."""
        table, resource_column = _TOKEN_TABLES[kind]
        result = (
            self.client.table(table)
            .select("*")
            .eq(resource_column, resource_id)
            .eq("shop_id", shop_id)
            .gt("expires_at", now.isoformat())
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return _row_to_token(kind, result.data[0])

    def insert_token(self, token: AccessToken) -> AccessToken:
        table, _ = _TOKEN_TABLES[token.kind]
        result = self.client.table(table).insert(_token_to_row(token)).execute()
        if not result.data:
            raise RuntimeError(f"Insert into {table} returned no row")
        return _row_to_token(token.kind, result.data[0])

    def update_token(self, kind: ResourceKind, token: str, fields: Dict[str, Any]) -> None:
        table, _ = _TOKEN_TABLES[kind]
        self.client.table(table).update(fields).eq("token", token).execute()

    def get_token(self, kind: ResourceKind, token: str) -> Optional[AccessToken]:
        table, _ = _TOKEN_TABLES[kind]
        result = self.client.table(table).select("*").eq("token", token).limit(1).execute()
        if not result.data:
            return None
        return _row_to_token(kind, result.data[0])

    def find_token_by_short_code(self, short_code: str, now: datetime) -> Optional[AccessToken]:
        table, _ = _TOKEN_TABLES[ResourceKind.APPOINTMENT]
        result = (
            self.client.table(table)
            .select("*")
            .eq("short_code", short_code)
            .gt("expires_at", now.isoformat())
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return _row_to_token(ResourceKind.APPOINTMENT, result.data[0])
