"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Gatekeeper happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() or
accept a Settings instance instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. auth_secret -> AUTH_SECRET). Type coercion and validation are built in.

Required keys:
  DATABASE_URL and AUTH_SECRET have no default. Settings() raises a
  pydantic ValidationError when either is absent, and the entry point in
  main.py turns that into a non-zero exit before any port is bound.

SMTP_FROM:
  When unset, the sender address falls back to SMTP_USER, and then to
  noreply@localhost. See smtp_sender.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, mail/, or cache/.
"""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatekeeper.config")

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `database_url` reads from DATABASE_URL, `smtp_pass` from SMTP_PASS.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    port: int = Field(default=5000, ge=0, le=65535)
    environment: str = "development"
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    database_url: str

    # ------------------------------------------------------------------
    # CORS
    # ------------------------------------------------------------------

    # Comma-separated. Kept as a plain string so pydantic-settings does not
    # try to JSON-decode it; see cors_origins.
    allowed_origins: str = "http://localhost:3000,http://localhost:3001"

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_window_ms: int = Field(default=900_000, gt=0)  # 15 minutes
    rate_limit_max_requests: int = Field(default=400, gt=0)

    # ------------------------------------------------------------------
    # Email (SMTP)
    # ------------------------------------------------------------------

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_from: str = ""

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    auth_secret: str
    auth_base_url: str = "http://localhost:5000"
    frontend_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # OAuth providers (optional -- empty string means provider is disabled)
    # ------------------------------------------------------------------

    github_client_id: str = ""
    github_client_secret: str = ""
    google_client_id: str = ""
    google_client_secret: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("auth_secret")
    @classmethod
    def validate_auth_secret(cls, value: str) -> str:
        """Reject short secrets. Session token hashes and the signed
        verification links both rely on key entropy."""
        if len(value) < _MIN_SECRET_LENGTH:
            raise ValueError(f"AUTH_SECRET must be at least {_MIN_SECRET_LENGTH} characters.")
        return value

    @field_validator("rate_limit_window_ms")
    @classmethod
    def validate_rate_limit_window(cls, value: int) -> int:
        """The limiter counts in whole seconds, so the window must be one."""
        if value % 1000:
            raise ValueError("RATE_LIMIT_WINDOW_MS must be a whole number of seconds (a multiple of 1000).")
        return value

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("DATABASE_URL must not be empty.")
        return value.strip()

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def rate_limit(self) -> str:
        """The window and ceiling as a `limits` rate string, e.g. "400 per 900 seconds".

        Exact: the window validator only admits whole seconds.
        """
        seconds = self.rate_limit_window_ms // 1000
        return f"{self.rate_limit_max_requests} per {seconds} seconds"

    @property
    def smtp_sender(self) -> str:
        return self.smtp_from or self.smtp_user or "noreply@localhost"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Raises pydantic.ValidationError when a required variable is missing or
    invalid. In tests: call get_settings.cache_clear() between test cases if
    you need to inject different environment variables.
    """
    return Settings()
