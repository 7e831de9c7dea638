"""
FastAPI dependencies.

Handles authentication of calling services and access to the engine owned by
the application.
"""

import hmac
import logging

from fastapi import Depends, HTTPException, Request, status

from practice_rbac.config import Settings
from practice_rbac.engine import PermissionEngine

logger = logging.getLogger("practice_rbac.api")


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_engine(request: Request) -> PermissionEngine:
    return request.app.state.engine


# =============================================================================
# SERVICE AUTHENTICATION
# =============================================================================

async def verify_service_secret(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> str:
    """
    Verify that the request comes from an authorized service.

    Checks X-Service-Secret header against INTER_SERVICE_SECRET.

    Returns:
        Service name from X-Service-Name header

    Raises:
        HTTPException: If secret is missing or invalid
    """
    service_secret = request.headers.get("X-Service-Secret")
    service_name = request.headers.get("X-Service-Name", "unknown")

    if not settings.INTER_SERVICE_SECRET:
        # No secret configured - allow (development mode)
        logger.debug(f"[AUTH] No INTER_SERVICE_SECRET configured, allowing {service_name}")
        return service_name

    if not service_secret:
        logger.warning(f"[AUTH] Missing X-Service-Secret from {service_name}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing service secret",
        )

    # Constant-time comparison
    if not hmac.compare_digest(service_secret, settings.INTER_SERVICE_SECRET):
        logger.warning(f"[AUTH] Invalid service secret from {service_name}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid service secret",
        )

    logger.debug(f"[AUTH] Verified service: {service_name}")
    return service_name
