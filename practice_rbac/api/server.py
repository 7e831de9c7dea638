"""
FastAPI server for the permission engine.

Other services ask permission questions over REST; the engine instance is
created here (or injected by tests) and owned by the application.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from practice_rbac.api.routers import health_router, permissions_router
from practice_rbac.config import Settings, get_settings
from practice_rbac.engine import PermissionEngine
from practice_rbac.utils.logging import request_context

logger = logging.getLogger("practice_rbac.api.server")


# =============================================================================
# SECURITY HEADERS MIDDLEWARE
# =============================================================================


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds security headers to all responses.

    Headers added:
    - X-Content-Type-Options: nosniff
    - X-Frame-Options: DENY
    - Referrer-Policy: strict-origin-when-cross-origin
    - X-Request-ID: request correlation ID
    - X-Response-Time: processing time
    """

    def __init__(self, app, is_production: bool = False):
        super().__init__(app)
        self._is_production = is_production

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()

        with request_context(request_id):
            response = await call_next(request)

        duration_ms = int((time.time() - start_time) * 1000)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # HSTS - only in production
        if self._is_production:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging requests and responses.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()
        service_name = request.headers.get("X-Service-Name", "-")

        response = await call_next(request)

        duration_ms = int((time.time() - start_time) * 1000)
        request_id = getattr(request.state, "request_id", "-")

        logger.info(
            f"[HTTP] {request.method} {request.url.path} "
            f"-> {response.status_code} ({duration_ms}ms) "
            f"service={service_name} request_id={request_id}"
        )

        return response


# =============================================================================
# APPLICATION
# =============================================================================


def create_app(
    engine: PermissionEngine | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        engine: Engine to serve; built from settings when omitted
        settings: Settings to use; get_settings() when omitted
    """
    settings = settings or get_settings()
    engine = engine or PermissionEngine.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup and shutdown events."""
        logger.info(f"[STARTUP] {settings.SERVICE_NAME} starting (env={settings.ENVIRONMENT})")
        settings.log_config()
        yield
        logger.info(f"[SHUTDOWN] {settings.SERVICE_NAME} shutting down, flushing audit log")
        await app.state.engine.shutdown()

    app = FastAPI(
        title="Practice RBAC",
        description="Module visibility and role permission decisions for the practice app",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )
    app.state.settings = settings
    app.state.engine = engine

    # Request logging runs inside the security headers middleware so it sees the request ID
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, is_production=settings.is_production)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "X-Service-Secret",
            "X-Service-Name",
            "X-Request-ID",
        ],
    )
    logger.info(f"[CORS] Allowed origins: {settings.allowed_origins}")

    app.include_router(health_router)
    app.include_router(permissions_router)

    return app
