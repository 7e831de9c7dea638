"""
Supabase client wrapper.

The client is created lazily from settings and reused. Returns None if
credentials are not configured so that callers can fail closed instead of
crashing at import time.
"""

import logging

from supabase import Client, create_client

from practice_rbac.config import Settings, get_settings

logger = logging.getLogger("practice_rbac.supabase")

_client: Client | None = None


def get_supabase(settings: Settings | None = None) -> Client | None:
    """
    Get or create the Supabase client.

    Returns:
        Supabase Client instance, or None if not configured
    """
    global _client

    if _client is not None:
        return _client

    settings = settings or get_settings()

    if not settings.supabase_url or not settings.supabase_service_key:
        logger.warning("[Supabase] Client not configured - missing URL or service key")
        return None

    try:
        _client = create_client(
            settings.supabase_url,
            settings.supabase_service_key,
        )
        logger.info(f"[Supabase] Client created for {settings.supabase_url}")
        return _client
    except Exception as e:
        logger.error(f"[Supabase] Failed to create client: {e}")
        return None


def reset_client() -> None:
    """Reset the client (tests, credential rotation)."""
    global _client
    _client = None
    logger.info("[Supabase] Client reset")
