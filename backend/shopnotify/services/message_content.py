"""
Message content for invoice and tracking notifications.

Pure functions only: totals, the paid/unpaid content fork, vehicle and
status phrasing, subjects and SMS bodies. HTML bodies live in
email_templates.py.

Public API:
  compute_invoice_totals(invoice) -> InvoiceTotals
  is_paid(status) -> bool
  invoice_email_subject / invoice_sms_body
  vehicle_display(appointment, vehicle) -> str
  tracking_status_text(status, scheduled_date) -> str
  tracking_email_subject / tracking_sms_body
  review_message(customer_name, shop_name, review_url) -> str
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal

    @property
    def formatted_total(self) -> str:
        return format_money(self.total)


def _to_decimal(value: Any) -> Decimal:
    """Parse a numeric field from stored JSON; blanks and junk count as 0."""
    if value is None or value == "":
        return Decimal(0)
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        logger.warning(f"Ignoring non-numeric amount {value!r}")
        return Decimal(0)
    if not amount.is_finite():
        logger.warning(f"Ignoring non-finite amount {value!r}")
        return Decimal(0)
    return amount


def format_money(amount: Decimal) -> str:
    """Two-decimal string, rounded half-up: Decimal('26.5') -> '26.50'."""
    return str(amount.quantize(CENTS, rounding=ROUND_HALF_UP))


def compute_invoice_totals(invoice: Dict[str, Any]) -> InvoiceTotals:
    """
    Compute subtotal, tax, discount and grand total for an invoice.

    subtotal = sum(qty * price) over line items (missing or zero qty counts
    as 1, missing price as 0). ``tax_rate`` and ``discount`` are both
    percentages of the subtotal; tax adds, discount subtracts.

        >>> compute_invoice_totals({"items": [{"qty": 2, "price": 10}, {"qty": 1, "price": 5}],
        ...                         "tax_rate": 6}).formatted_total
        '26.50'
    """
    subtotal = Decimal(0)
    for item in invoice.get("items") or []:
        qty = _to_decimal(item.get("qty") or item.get("quantity")) or Decimal(1)
        price = _to_decimal(item.get("price"))
        subtotal += qty * price

    tax = subtotal * _to_decimal(invoice.get("tax_rate")) / Decimal(100)
    discount = subtotal * _to_decimal(invoice.get("discount")) / Decimal(100)
    total = subtotal + tax - discount

    return InvoiceTotals(
        subtotal=subtotal.quantize(CENTS, rounding=ROUND_HALF_UP),
        tax=tax.quantize(CENTS, rounding=ROUND_HALF_UP),
        discount=discount.quantize(CENTS, rounding=ROUND_HALF_UP),
        total=total.quantize(CENTS, rounding=ROUND_HALF_UP),
    )


def is_paid(status: Optional[str]) -> bool:
    """True when the invoice status is 'paid' in any letter case."""
    return isinstance(status, str) and status.lower() == "paid"


def invoice_number(invoice: Dict[str, Any]) -> str:
    return str(invoice.get("number") or invoice.get("id"))


# ---------------------------------------------------------------------------
# Invoice
# ---------------------------------------------------------------------------

def invoice_email_subject(number: str, shop_name: str, paid: bool) -> str:
    if paid:
        return f"Paid Invoice #{number} - Thank You!"
    return f"Invoice #{number} from {shop_name}"


def invoice_sms_body(shop_name: str, number: str, total: str, url: str, paid: bool) -> str:
    if paid:
        return (
            f"{shop_name}: Your Invoice #{number} has been paid, thank you! "
            f"You can view your paid invoice below: {url}"
        )
    return f"{shop_name}: Your invoice #{number} for ${total} is ready. View it here: {url}"


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------

def vehicle_display(appointment: Dict[str, Any], vehicle: Optional[Dict[str, Any]]) -> str:
    """
    Human-readable vehicle label, e.g. '2019 Honda Civic'.

    Prefers the customer's linked vehicle record, then the free-text
    ``vehicle`` on the appointment, then 'your vehicle'.
    """
    if vehicle:
        parts = [str(vehicle.get(k)) for k in ("year", "make", "model") if vehicle.get(k)]
        label = " ".join(parts).strip()
        if label:
            return label
    return appointment.get("vehicle") or "your vehicle"


def format_scheduled_date(value: Any) -> str:
    """'2025-03-03' -> 'Monday, March 3, 2025'; unparseable or empty -> 'soon'."""
    if not value:
        return "soon"
    if isinstance(value, datetime):
        parsed: date = value.date()
    elif isinstance(value, date):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
        except ValueError:
            return "soon"
    return f"{parsed:%A}, {parsed:%B} {parsed.day}, {parsed.year}"


def tracking_status_text(status: Optional[str], scheduled_date: Any) -> str:
    if status == "in-progress":
        return "is currently being serviced"
    if status == "completed":
        return "service has been completed"
    return f"is scheduled for {format_scheduled_date(scheduled_date)}"


def tracking_status_label(status: Optional[str]) -> str:
    """'in-progress' -> 'IN PROGRESS'."""
    return (status or "scheduled").replace("-", " ").upper()


def tracking_email_subject(vehicle: str, shop_name: str) -> str:
    return f"Track Your {vehicle} - {shop_name}"


def tracking_sms_body(shop_name: str, vehicle: str, mobile_url: str) -> str:
    return f"{shop_name}: Track your {vehicle} status here: {mobile_url}"


# ---------------------------------------------------------------------------
# Review request
# ---------------------------------------------------------------------------

def review_message(customer_name: Optional[str], shop_name: str, review_url: str) -> str:
    return (
        f"Hi {customer_name or 'there'}! Thank you for choosing {shop_name}! "
        f"We'd love to hear about your experience. Please leave us a review: {review_url}"
    )


def review_email_subject(customer_name: Optional[str]) -> str:
    if customer_name:
        return f"We'd love your feedback, {customer_name}!"
    return "We'd love your feedback!"
