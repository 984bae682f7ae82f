"""
Public link tokens for invoices and appointment tracking.

A token is a 256-bit random hex string bound to one (shop, resource) pair and
valid for TOKEN_TTL from creation. Sending the same resource again while a
token is still valid reuses that token: its channels and recipients are
refreshed but its expiry is never extended.

Find-then-create is not atomic. Two concurrent sends for the same resource
can each mint a token; both stay valid and the next send reuses the newest.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from shopnotify.errors import LinkExpiredError, NotFoundError, NotifyError, PersistenceError
from shopnotify.models.tokens import (
    CHANNEL_ORDER,
    AccessToken,
    Channel,
    IssuedToken,
    ResourceKind,
)
from shopnotify.services.repository import NotificationRepository

logger = logging.getLogger(__name__)

TOKEN_TTL = timedelta(days=30)
TOKEN_BYTES = 32

# Public page paths, relative to APP_BASE_URL
INVOICE_PAGE = "/public-invoice.html"
TRACKING_PAGE = "/public-tracking.html"
# SMS recipients land on the mobile tracker, which needs no code entry
MOBILE_TRACKING_PAGE = "/public-tracking-mobile.html"


def generate_token() -> str:
    """Return a new unguessable token (64 hex chars)."""
    return secrets.token_hex(TOKEN_BYTES)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def merge_channels(*channel_sets: Iterable[str]) -> list[str]:
    """Union of channel names, in canonical email-then-sms order."""
    seen = {Channel(c) for channels in channel_sets for c in channels}
    return [c.value for c in CHANNEL_ORDER if c in seen]


def build_invoice_url(base_url: str, token: str) -> str:
    return f"{base_url}{INVOICE_PAGE}?token={token}"


def build_tracking_url(base_url: str, token: str) -> str:
    return f"{base_url}{TRACKING_PAGE}?token={token}"


def build_mobile_tracking_url(base_url: str, token: str) -> str:
    return f"{base_url}{MOBILE_TRACKING_PAGE}?token={token}"


def issue_or_refresh_token(
    repository: NotificationRepository,
    shop_id: str,
    resource_id: str,
    kind: ResourceKind,
    channels: Iterable[Channel],
    recipient_email: Optional[str] = None,
    recipient_phone: Optional[str] = None,
    short_code: Optional[str] = None,
    now: Optional[datetime] = None,
) -> IssuedToken:
    """
    Reuse the newest unexpired token for the resource, or mint a new one.

    Args:
        repository: datastore adapter
        shop_id: owning shop
        resource_id: invoice or appointment id
        kind: which token table the resource belongs to
        channels: channels requested by this send
        recipient_email / recipient_phone: latest recipient details
        short_code: human-readable alias to adopt (tracking codes)
        now: clock override for tests

    Returns:
        IssuedToken with ``is_existing`` set when a token was reused.

    Raises:
        PersistenceError: if the token could not be stored or refreshed
    """
    now = now or utcnow()
    requested = [Channel(c).value for c in channels]

    try:
        existing = repository.find_active_token(kind, shop_id, resource_id, now)
    except Exception as e:
        # Lookup failure falls through to minting a fresh token
        logger.warning(f"Error checking for existing {kind.value} token for {resource_id}: {e}")
        existing = None

    if existing is not None:
        return _refresh_token(repository, existing, requested, recipient_email, recipient_phone, short_code)

    access_token = AccessToken(
        token=generate_token(),
        shop_id=shop_id,
        resource_id=resource_id,
        kind=kind,
        created_at=now,
        expires_at=now + TOKEN_TTL,
        sent_via=merge_channels(requested),
        recipient_email=recipient_email or None,
        recipient_phone=recipient_phone or None,
        short_code=short_code or None,
    )

    try:
        stored = repository.insert_token(access_token)
    except Exception as e:
        logger.error(f"Failed to create {kind.value} token for {resource_id}: {e}")
        raise PersistenceError(f"Failed to create {_link_label(kind)} link") from e

    # The table may assign a short code by default; prefer what was stored
    if not stored.short_code and access_token.short_code:
        stored = stored.model_copy(update={"short_code": access_token.short_code})

    logger.info(f"Created new {kind.value} token for {resource_id} (short_code={stored.short_code})")
    return IssuedToken(access_token=stored, is_existing=False)


def _refresh_token(
    repository: NotificationRepository,
    existing: AccessToken,
    requested: list[str],
    recipient_email: Optional[str],
    recipient_phone: Optional[str],
    short_code: Optional[str],
) -> IssuedToken:
    """Update channels/recipients/alias in place. Expiry is left alone."""
    updates = {
        "sent_via": merge_channels(existing.sent_via, requested),
        "recipient_email": recipient_email or None,
        "recipient_phone": recipient_phone or None,
    }
    if short_code and short_code != existing.short_code:
        updates["short_code"] = short_code
        logger.info(f"Updating short_code on token for {existing.resource_id} to {short_code}")

    try:
        repository.update_token(existing.kind, existing.token, updates)
    except Exception as e:
        logger.error(f"Failed to refresh {existing.kind.value} token for {existing.resource_id}: {e}")
        raise PersistenceError(f"Failed to update {_link_label(existing.kind)} link") from e

    logger.info(f"Reusing existing {existing.kind.value} token for {existing.resource_id}")
    return IssuedToken(access_token=existing.model_copy(update=updates), is_existing=True)


def _link_label(kind: ResourceKind) -> str:
    return "invoice" if kind == ResourceKind.INVOICE else "tracking"


# ---------------------------------------------------------------------------
# Public lookup
# ---------------------------------------------------------------------------

def resolve_token(
    repository: NotificationRepository,
    kind: ResourceKind,
    token: str,
    now: Optional[datetime] = None,
) -> AccessToken:
    """
    Dereference a public link token.

    Expiry is the only teardown path, so this checks ``expires_at`` rather
    than relying on the row being deleted.

    Raises:
        NotFoundError: unknown token
        LinkExpiredError: token exists but has expired
        PersistenceError: datastore failure
    """
    now = now or utcnow()
    if not token:
        raise NotFoundError("Link not found")

    try:
        access_token = repository.get_token(kind, token)
    except NotifyError:
        raise
    except Exception as e:
        logger.error(f"Failed to look up {kind.value} token: {e}")
        raise PersistenceError("Failed to look up link") from e

    if access_token is None:
        raise NotFoundError("Link not found")
    if not access_token.is_valid_at(now):
        raise LinkExpiredError("This link has expired")
    return access_token


def resolve_short_code(
    repository: NotificationRepository,
    short_code: str,
    now: Optional[datetime] = None,
) -> AccessToken:
    """Dereference a tracking short code to its newest unexpired token."""
    now = now or utcnow()
    if not short_code:
        raise NotFoundError("Link not found")

    try:
        access_token = repository.find_token_by_short_code(short_code, now)
    except NotifyError:
        raise
    except Exception as e:
        logger.error(f"Failed to look up tracking code {short_code}: {e}")
        raise PersistenceError("Failed to look up link") from e

    if access_token is None:
        raise NotFoundError("Link not found")
    return access_token
