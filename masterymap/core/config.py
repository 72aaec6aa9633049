# =============================================================================================
# MASTERYMAP/CORE/CONFIG.PY - CENTRALIZED CONFIGURATION WITH PYDANTIC SETTINGS
# =============================================================================================
# Every tunable of the auth core lives on one Settings object:
# - Two signing secrets (access + refresh), never interchangeable
# - Token lifetimes (minutes for access, days for refresh)
# - Cookie names, refresh cookie path
# - Bcrypt work factor
#
# FLOW:
# 1. Process starts → get_settings() reads os.environ / .env once (cached)
# 2. create_app(settings) receives the object explicitly
# 3. TokenService, PasswordHasher, ledger and cookie helpers are built from it
# 4. Tests skip get_settings() and pass their own Settings(...) with per-test secrets
# =============================================================================================

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Development-only fallbacks. Production startup refuses both of these.
DEV_ACCESS_SECRET = "dev-access-secret-change-me"
DEV_REFRESH_SECRET = "dev-refresh-secret-change-me"


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.

    USAGE:
        settings = Settings(JWT_ACCESS_SECRET="a" * 32, JWT_REFRESH_SECRET="b" * 32)
        app = create_app(settings)
    """

    # -------------------------
    # RUNTIME ENVIRONMENT
    # -------------------------
    # "production" turns on Secure cookies and the strict secret checks below
    ENVIRONMENT: str = "development"

    LOG_LEVEL: str = "INFO"

    # -------------------------
    # DATABASE CONFIGURATION
    # -------------------------
    # sqlite:///./dev.db for local work, postgresql+psycopg://... in deployment
    DATABASE_URL: str = "sqlite:///./dev.db"

    # -------------------------
    # JWT SIGNING DOMAINS
    # -------------------------
    # One secret per token class. A leaked access secret must not let anyone
    # forge refresh tokens, and vice versa.
    # Generate each with: openssl rand -hex 32
    JWT_ACCESS_SECRET: str | None = None
    JWT_REFRESH_SECRET: str | None = None

    JWT_ALGORITHM: str = "HS256"

    # Access: 15 minutes. Refresh: 7 days.
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 900
    REFRESH_TOKEN_EXPIRE_SECONDS: int = 7 * 24 * 60 * 60

    # -------------------------
    # PASSWORD HASHING (BCRYPT)
    # -------------------------
    # Each increment doubles the cost. Tests drop this to 4 (bcrypt minimum).
    BCRYPT_ROUNDS: int = 12

    # -------------------------
    # COOKIE TRANSPORT
    # -------------------------
    ACCESS_COOKIE_NAME: str = "access_token"
    REFRESH_COOKIE_NAME: str = "refresh_token"

    # The refresh cookie is only ever sent to the auth router (refresh + logout)
    REFRESH_COOKIE_PATH: str = "/auth"

    # -------------------------
    # SESSION POLICY
    # -------------------------
    # Admin password reset leaves the target's refresh tokens alone unless this is on
    REVOKE_SESSIONS_ON_PASSWORD_RESET: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def cookie_secure(self) -> bool:
        """Secure flag for both auth cookies (HTTPS only in production)."""
        return self.is_production

    @model_validator(mode="after")
    def _check_signing_secrets(self) -> "Settings":
        """
        Enforce the secret policy.

        - production: both secrets must be supplied and must not be the dev fallbacks
        - elsewhere: a missing secret falls back to a fixed dev value (logged loudly)
        - everywhere: the two secrets must differ
        """
        if self.is_production:
            for name, value, fallback in (
                ("JWT_ACCESS_SECRET", self.JWT_ACCESS_SECRET, DEV_ACCESS_SECRET),
                ("JWT_REFRESH_SECRET", self.JWT_REFRESH_SECRET, DEV_REFRESH_SECRET),
            ):
                if not value or value == fallback:
                    raise ValueError(f"{name} must be set to a real secret in production")
        else:
            if not self.JWT_ACCESS_SECRET:
                logger.warning("JWT_ACCESS_SECRET not set; using development fallback")
                self.JWT_ACCESS_SECRET = DEV_ACCESS_SECRET
            if not self.JWT_REFRESH_SECRET:
                logger.warning("JWT_REFRESH_SECRET not set; using development fallback")
                self.JWT_REFRESH_SECRET = DEV_REFRESH_SECRET

        if self.JWT_ACCESS_SECRET == self.JWT_REFRESH_SECRET:
            raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")
        return self


# -------------------------
# Cached settings instance for the default app
# -------------------------
@lru_cache
def get_settings() -> Settings:
    """
    Returns the process-wide Settings instance (cached after first call).

    Only main.create_app() falls back to this; every other component receives
    settings as a constructor argument.

    TESTING:
        get_settings.cache_clear()
        monkeypatch.setenv("ENVIRONMENT", "production")
    """
    return Settings()
