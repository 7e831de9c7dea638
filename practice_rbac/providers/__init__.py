"""
Permission sources.

Configuration:
    Set PERMISSION_SOURCE environment variable:
    - "supabase" (default): role_permissions / employees / user_roles tables
    - "static": in-memory, optionally seeded from STATIC_PERMISSIONS_FILE
"""

import logging

from practice_rbac.config import Settings
from practice_rbac.providers.base import PermissionSource
from practice_rbac.providers.static import StaticPermissionSource
from practice_rbac.providers.supabase import SupabasePermissionSource

logger = logging.getLogger("practice_rbac.providers")


def create_permission_source(settings: Settings) -> PermissionSource:
    """Build the permission source selected by settings."""
    if settings.PERMISSION_SOURCE == "static":
        if settings.STATIC_PERMISSIONS_FILE:
            logger.info(f"[RBAC] Using static source from {settings.STATIC_PERMISSIONS_FILE}")
            return StaticPermissionSource.from_yaml(settings.STATIC_PERMISSIONS_FILE)
        logger.info("[RBAC] Using empty static source")
        return StaticPermissionSource()

    from practice_rbac.supabase_client import get_supabase

    return SupabasePermissionSource(get_supabase(settings))


__all__ = [
    "PermissionSource",
    "StaticPermissionSource",
    "SupabasePermissionSource",
    "create_permission_source",
]
