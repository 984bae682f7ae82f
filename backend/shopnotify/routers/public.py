"""
Public link lookup endpoints, used by the public invoice and tracking pages.

Endpoints:
  GET /public/invoice?token=...     - invoice behind an invoice link
  GET /public/tracking?token=...    - appointment behind a tracking link
  GET /public/tracking?code=...     - same, by the human-readable short code

No authentication: possession of an unexpired token is the credential.
Unknown links return 404, expired links 410.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from shopnotify.deps import get_repository
from shopnotify.errors import NotFoundError, NotifyError, PersistenceError, ValidationError
from shopnotify.models.tokens import AccessToken, ResourceKind
from shopnotify.services import message_content
from shopnotify.services.link_issuer import resolve_short_code, resolve_token
from shopnotify.services.repository import NotificationRepository

logger = logging.getLogger(__name__)

router = APIRouter()


def _link_payload(access_token: AccessToken) -> Dict[str, Any]:
    return {
        "token": access_token.token,
        "shopId": access_token.shop_id,
        "resourceId": access_token.resource_id,
        "shortCode": access_token.short_code,
        "expiresAt": access_token.expires_at.isoformat(),
    }


@router.get("/public/invoice")
async def get_public_invoice(
    token: Optional[str] = None,
    repository: NotificationRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Return the invoice and its computed totals for a valid invoice link."""
    access_token = resolve_token(repository, ResourceKind.INVOICE, token or "")

    try:
        invoice = repository.get_invoice(access_token.shop_id, access_token.resource_id)
    except NotifyError:
        raise
    except Exception as e:
        logger.error(f"Failed to load invoice {access_token.resource_id}: {e}")
        raise PersistenceError("Failed to load invoice") from e
    if not invoice:
        raise NotFoundError("Invoice not found")

    totals = message_content.compute_invoice_totals(invoice)
    return {
        **_link_payload(access_token),
        "invoice": invoice,
        "totals": {
            "subtotal": message_content.format_money(totals.subtotal),
            "tax": message_content.format_money(totals.tax),
            "discount": message_content.format_money(totals.discount),
            "total": totals.formatted_total,
        },
        "isPaid": message_content.is_paid(invoice.get("status")),
    }


@router.get("/public/tracking")
async def get_public_tracking(
    token: Optional[str] = None,
    code: Optional[str] = None,
    repository: NotificationRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Return the appointment behind a tracking link or short code."""
    if token:
        access_token = resolve_token(repository, ResourceKind.APPOINTMENT, token)
    elif code:
        access_token = resolve_short_code(repository, code.strip())
    else:
        raise ValidationError("token or code is required")

    try:
        record = repository.get_appointment(access_token.shop_id, access_token.resource_id)
    except NotifyError:
        raise
    except Exception as e:
        logger.error(f"Failed to load appointment {access_token.resource_id}: {e}")
        raise PersistenceError("Failed to load appointment") from e
    if record is None:
        raise NotFoundError("Appointment not found")

    status = record.appointment.get("status") or "scheduled"
    return {
        **_link_payload(access_token),
        "appointment": record.appointment,
        "vehicle": message_content.vehicle_display(record.appointment, record.vehicle),
        "status": status,
        "statusLabel": message_content.tracking_status_label(status),
    }
