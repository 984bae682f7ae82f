"""
Runtime configuration read from environment variables.

Values are read at call time (not import time) so tests can patch
``os.environ`` and so a process picks up a fresh ``.env`` on restart.

Environment variables
---------------------
SUPABASE_URL               Supabase project URL.
SUPABASE_SERVICE_KEY       Service-role key (bypasses RLS). The legacy name
                           SUPABASE_SERVICE_ROLE_KEY is accepted as a fallback.
RESEND_API_KEY             Resend API key. Email is reported as "not
                           configured" per channel when unset.
TWILIO_ACCOUNT_SID         Twilio account SID.
TWILIO_AUTH_TOKEN          Twilio auth token. SMS is reported as "not
                           configured" per channel unless both are set.
APP_BASE_URL               Origin of the public invoice / tracking pages.
EMAIL_FROM_ADDRESS         Shared sender address for invoice emails.
TRACKING_FROM_ADDRESS      Shared sender address for tracking emails.
REVIEW_FROM_ADDRESS        Sender identity for review requests.
PROVIDER_TIMEOUT_SECONDS   httpx timeout for provider calls (default 10).
DISPATCH_TIMEOUT_SECONDS   Upper bound per channel dispatch (default 15).
CORS_ORIGINS               Comma-separated allowed origins (default "*").
"""

import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_APP_BASE_URL = "https://xposemanagement.com"
DEFAULT_EMAIL_FROM_ADDRESS = "invoices@xposemanagement.com"
DEFAULT_TRACKING_FROM_ADDRESS = "service@xpose.management"
DEFAULT_REVIEW_FROM_ADDRESS = "noreply@xposemanagement.com"


def _env(name: str) -> Optional[str]:
    """Return the stripped value of an env var, or None when unset/blank."""
    value = os.getenv(name, "").strip()
    return value or None


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str]
    supabase_service_key: Optional[str]
    resend_api_key: Optional[str]
    twilio_account_sid: Optional[str]
    twilio_auth_token: Optional[str]
    app_base_url: str
    email_from_address: str
    tracking_from_address: str
    review_from_address: str
    provider_timeout_seconds: float
    dispatch_timeout_seconds: float
    cors_origins: List[str]

    @property
    def email_configured(self) -> bool:
        return bool(self.resend_api_key)

    @property
    def sms_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)

    @property
    def datastore_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)


def get_settings() -> Settings:
    """Build a Settings snapshot from the current environment."""
    cors_env = _env("CORS_ORIGINS")
    cors_origins = (
        [o.strip() for o in cors_env.split(",") if o.strip()] if cors_env else ["*"]
    )

    return Settings(
        supabase_url=_env("SUPABASE_URL"),
        supabase_service_key=_env("SUPABASE_SERVICE_KEY") or _env("SUPABASE_SERVICE_ROLE_KEY"),
        resend_api_key=_env("RESEND_API_KEY"),
        twilio_account_sid=_env("TWILIO_ACCOUNT_SID"),
        twilio_auth_token=_env("TWILIO_AUTH_TOKEN"),
        app_base_url=(_env("APP_BASE_URL") or DEFAULT_APP_BASE_URL).rstrip("/"),
        email_from_address=_env("EMAIL_FROM_ADDRESS") or DEFAULT_EMAIL_FROM_ADDRESS,
        tracking_from_address=_env("TRACKING_FROM_ADDRESS") or DEFAULT_TRACKING_FROM_ADDRESS,
        review_from_address=_env("REVIEW_FROM_ADDRESS") or DEFAULT_REVIEW_FROM_ADDRESS,
        provider_timeout_seconds=_env_float("PROVIDER_TIMEOUT_SECONDS", 10.0),
        dispatch_timeout_seconds=_env_float("DISPATCH_TIMEOUT_SECONDS", 15.0),
        cors_origins=cors_origins,
    )
