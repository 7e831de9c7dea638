"""
Health check endpoints.
"""

from fastapi import APIRouter, Depends

from practice_rbac.api.dependencies import get_app_settings, get_engine
from practice_rbac.config import Settings
from practice_rbac.engine import PermissionEngine

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(
    settings: Settings = Depends(get_app_settings),
    engine: PermissionEngine = Depends(get_engine),
):
    """
    Health check endpoint.

    Returns service status, permission source and cache statistics.
    """
    return {
        "status": "healthy",
        "service": settings.SERVICE_NAME,
        "environment": settings.ENVIRONMENT,
        "source": engine.source.name,
        "cache": await engine.cache_stats(),
    }
