"""
Centralized configuration for the StoryWonder backend.

All settings are loaded from environment variables with sensible defaults.
Module-specific settings should be namespaced (e.g., SUPABASE_*, RESEND_*).
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


# Environments in which a missing signing key may be replaced by a
# per-process random key instead of aborting startup.
DEVELOPMENT_ENVIRONMENTS = frozenset({"development", "test"})


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "StoryWonder"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False

    # CORS settings
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Token signing
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    token_clock_skew_seconds: int = 30

    # Sessions
    session_ttl_days: int = 7
    session_sweep_interval_seconds: int = 3600  # 0 disables the sweep

    # Email verification
    verification_code_ttl_minutes: int = 15
    resend_verification_limit: int = 3
    resend_verification_window_seconds: int = 900

    # Credential store: "supabase" or "memory"
    auth_store_backend: str = "supabase"

    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_db_url: str = ""

    # Notifications (Resend)
    resend_api_key: str = ""
    from_email: str = "onboarding@resend.dev"

    # Frontend URLs (for links in emails)
    frontend_url: str = "http://localhost:3000"

    @property
    def is_development(self) -> bool:
        """Whether insecure development fallbacks are allowed."""
        return self.environment.lower() in DEVELOPMENT_ENVIRONMENTS


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
