#!/usr/bin/env python3
"""
Standalone uvicorn runner for the permission service.

Usage:
    practice-rbac
    python -m practice_rbac.run_service

Environment Variables:
    PORT: Server port (default: 8010)
    ENVIRONMENT: 'development' or 'production' (default: development)
    PERMISSION_SOURCE: 'supabase' or 'static'

In development mode, auto-reload is enabled.
"""
import sys

import uvicorn
from dotenv import load_dotenv

from practice_rbac.config import get_settings
from practice_rbac.utils.logging import setup_logging


def main():
    """Run the permission service FastAPI server."""
    load_dotenv()
    settings = get_settings()
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON or settings.is_production)

    reload = not settings.is_production

    print(f"Starting {settings.SERVICE_NAME} on port {settings.PORT}")
    print(f"Environment: {settings.ENVIRONMENT}")
    print(f"Auto-reload: {reload}")

    uvicorn.run(
        "practice_rbac.api.server:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=reload,
    )


if __name__ == "__main__":
    sys.exit(main() or 0)
