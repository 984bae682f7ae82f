"""
Send-notification API endpoints.

Endpoints:
  POST /send-invoice          - email/SMS a public invoice link
  POST /send-tracking         - email/SMS a vehicle tracking link
  POST /send-review-request   - email/SMS a Google review request

Status codes for send-invoice / send-tracking:
  200  every requested channel succeeded
  207  at least one requested channel failed (body still carries the link)
  400  validation error
  404  invoice / appointment not found
  500  configuration or persistence error

The endpoints are CORS-open and unauthenticated; the frontend calls them
directly. OPTIONS is answered with 200, any other method with 405.
"""

import logging

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from shopnotify.deps import get_dispatcher
from shopnotify.models.notifications import (
    ReviewRequest,
    SendInvoiceRequest,
    SendTrackingRequest,
    results_payload,
)
from shopnotify.services.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter()


def _multi_status(success: bool) -> int:
    return 200 if success else 207


@router.options("/send-invoice", include_in_schema=False)
@router.options("/send-tracking", include_in_schema=False)
@router.options("/send-review-request", include_in_schema=False)
async def preflight() -> Response:
    return Response(status_code=200)


@router.post(
    "/send-invoice",
    responses={
        200: {
            "description": "All requested channels succeeded",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "invoiceUrl": "https://xposemanagement.com/public-invoice.html?token=9f2c...",
                        "token": "9f2c...",
                        "results": {
                            "email": {"success": True, "id": "4ef9a417-02e9-4d39-ad75-9611e0fcc33c"},
                            "sms": None,
                        },
                    }
                }
            },
        },
        207: {"description": "At least one requested channel failed"},
        400: {"description": "Missing ids, no channel selected, or missing recipient"},
        404: {"description": "Invoice not found for this shop"},
        500: {"description": "Server configuration error or link could not be stored"},
    },
)
async def send_invoice(
    payload: SendInvoiceRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Send an invoice to a customer by email and/or SMS.

    Issues (or reuses) a 30-day public link for the invoice and embeds it in
    every message. Paid invoices get "paid / thank you" wording instead of
    the amount due.
    """
    result = await dispatcher.send_invoice(payload)
    logger.info(f"send-invoice {payload.invoice_id} for shop {payload.shop_id}: success={result.success}")

    return JSONResponse(
        status_code=_multi_status(result.success),
        content={
            "success": result.success,
            "invoiceUrl": result.url,
            "token": result.issued.token,
            "results": results_payload(result.email, result.sms),
        },
    )


@router.post(
    "/send-tracking",
    responses={
        207: {"description": "At least one requested channel failed"},
        400: {"description": "Missing ids, no channel selected, or missing recipient"},
        404: {"description": "Appointment not found for this shop"},
        500: {"description": "Server configuration error or link could not be stored"},
    },
)
async def send_tracking(
    payload: SendTrackingRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Send a vehicle tracking link by email and/or SMS.

    A supplied ``trackingCode`` becomes the token's short code, replacing
    any previous one. SMS uses the mobile tracker URL.
    """
    result = await dispatcher.send_tracking(payload)
    logger.info(
        f"send-tracking {payload.appointment_id} for shop {payload.shop_id}: "
        f"success={result.success} existing={result.issued.is_existing}"
    )

    return JSONResponse(
        status_code=_multi_status(result.success),
        content={
            "success": result.success,
            "trackingUrl": result.url,
            "mobileTrackingUrl": result.mobile_url,
            "token": result.issued.token,
            "shortCode": result.issued.short_code,
            "isExistingToken": result.issued.is_existing,
            "results": results_payload(result.email, result.sms),
        },
    )


@router.post("/send-review-request")
async def send_review_request(
    payload: ReviewRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Ask a customer to leave a Google review.

    Returns 200 when at least one channel succeeded, 500 when none did.
    """
    result = await dispatcher.send_review_request(payload)

    return JSONResponse(
        status_code=200 if result.success else 500,
        content={
            "success": result.success,
            "results": results_payload(result.email, result.sms),
        },
    )
