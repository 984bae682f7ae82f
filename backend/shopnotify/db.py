"""
Database client configuration.
Uses Supabase (PostgREST) for shops, invoices, appointments and link tokens.

The admin client is created lazily on first use so that importing the
application never requires credentials; a missing URL or service key
surfaces as a ConfigurationError on the request that needs the datastore.
"""

import logging
from functools import lru_cache

from supabase import Client, create_client

from shopnotify.config import get_settings
from shopnotify.errors import ConfigurationError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_supabase_admin() -> Client:
    """
    Return the service-level Supabase client (bypasses RLS).

    Raises:
        ConfigurationError: if SUPABASE_URL or SUPABASE_SERVICE_KEY is missing
    """
    settings = get_settings()
    if not settings.datastore_configured:
        logger.error("Missing Supabase credentials (SUPABASE_URL / SUPABASE_SERVICE_KEY)")
        raise ConfigurationError("Server configuration error")

    return create_client(settings.supabase_url, settings.supabase_service_key)
