"""
API Routers for the permission service.
"""

from .health import router as health_router
from .permissions import router as permissions_router

__all__ = [
    "health_router",
    "permissions_router",
]
