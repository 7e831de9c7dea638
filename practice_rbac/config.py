"""
Environment configuration for the permission engine.

Settings are read from environment variables (and a local .env file) once per
process. Start-up code owns the resulting objects; nothing in the engine reads
settings implicitly except the factories that build it.
"""

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("practice_rbac.config")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # ==========================================================================
    # ENVIRONMENT DETECTION
    # ==========================================================================
    ENVIRONMENT: str = "development"  # 'local', 'development', 'test', 'production'
    HOST: str = "0.0.0.0"
    PORT: int = 8010
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # JSON log lines (production log shipping)

    SERVICE_NAME: str = "practice-rbac"

    # ==========================================================================
    # PERMISSION SOURCE
    # "supabase" reads role_permissions / employees / user_roles tables
    # "static" reads an in-memory YAML fixture (development, tests)
    # ==========================================================================
    PERMISSION_SOURCE: str = "supabase"
    STATIC_PERMISSIONS_FILE: str | None = None

    # ==========================================================================
    # SUPABASE
    # ==========================================================================
    SUPABASE_PROD_URL: str | None = None
    SUPABASE_PROD_SERVICE_ROLE_KEY: str | None = None
    SUPABASE_DEV_URL: str | None = None
    SUPABASE_DEV_SERVICE_ROLE_KEY: str | None = None

    # Fallback keys (single-project deployments)
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_KEY: str | None = None

    # ==========================================================================
    # RBAC CACHE
    # ==========================================================================
    RBAC_CACHE_TTL_SECONDS: int = 300  # 5 minutes
    RBAC_CACHE_MAX_SIZE: int = 1000
    UNRESTRICTED_ROLES: str = "admin,partner"  # Comma-separated

    # ==========================================================================
    # AUDIT
    # ==========================================================================
    AUDIT_ENABLED: bool = True
    AUDIT_LOG_GRANTS: bool = False
    AUDIT_BACKEND: str = "supabase"  # 'supabase', 'http' (security-service), 'memory'
    AUDIT_TABLE: str = "permission_audit_log"
    SECURITY_SERVICE_URL: str | None = None  # Used by the 'http' audit backend

    # ==========================================================================
    # HTTP SURFACE
    # ==========================================================================
    INTER_SERVICE_SECRET: str | None = None
    CORS_ORIGINS: str = ""  # Comma-separated list of allowed origins

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "production"

    @property
    def is_local(self) -> bool:
        """Check if running in local environment."""
        return self.ENVIRONMENT == "local"

    @property
    def supabase_url(self) -> str | None:
        """Get the Supabase URL for the current environment."""
        if self.is_production:
            return self.SUPABASE_PROD_URL or self.SUPABASE_URL
        return self.SUPABASE_DEV_URL or self.SUPABASE_URL

    @property
    def supabase_service_key(self) -> str | None:
        """Get the Supabase service key for the current environment."""
        if self.is_production:
            return self.SUPABASE_PROD_SERVICE_ROLE_KEY or self.SUPABASE_SERVICE_KEY
        return self.SUPABASE_DEV_SERVICE_ROLE_KEY or self.SUPABASE_SERVICE_KEY

    @property
    def unrestricted_roles(self) -> frozenset[str]:
        """Normalized set of roles that bypass every check."""
        return frozenset(
            r.strip().lower() for r in self.UNRESTRICTED_ROLES.split(",") if r.strip()
        )

    @property
    def allowed_origins(self) -> list[str]:
        """Get allowed CORS origins based on environment."""
        if self.is_local:
            return [
                "http://localhost:3000",
                "http://localhost:5173",
                "http://127.0.0.1:3000",
                "http://127.0.0.1:5173",
            ]

        if not self.CORS_ORIGINS:
            return []

        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    def log_config(self) -> None:
        """Log configuration on startup."""
        logger.info(f"[RBAC] Environment: {self.ENVIRONMENT} (production: {self.is_production})")
        logger.info(f"[RBAC] Permission source: {self.PERMISSION_SOURCE}")
        logger.info(f"[RBAC] Cache TTL: {self.RBAC_CACHE_TTL_SECONDS}s")
        logger.info(f"[RBAC] Unrestricted roles: {', '.join(sorted(self.unrestricted_roles))}")

        if self.PERMISSION_SOURCE == "supabase" and (
            not self.supabase_url or not self.supabase_service_key
        ):
            logger.warning("[RBAC] WARNING: Supabase credentials not configured.")
            logger.warning("[RBAC] Every lookup will fail closed until they are set.")

        if not self.INTER_SERVICE_SECRET:
            logger.warning("[RBAC] WARNING: INTER_SERVICE_SECRET not set.")
            logger.warning("[RBAC] HTTP endpoints accept unauthenticated callers.")

        logger.info(f"[RBAC] Audit logging: {'enabled' if self.AUDIT_ENABLED else 'disabled'} ({self.AUDIT_BACKEND})")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
