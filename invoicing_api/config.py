"""
Application configuration using pydantic-settings.

Loads Intuit OAuth credentials and QuickBooks API settings from environment
variables (or a .env file) with sandbox defaults.
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

SANDBOX_BASE_URL = "https://sandbox-quickbooks.api.intuit.com"
PRODUCTION_BASE_URL = "https://quickbooks.api.intuit.com"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Intuit OAuth
    intuit_client_id: str = ""
    intuit_client_secret: str = ""
    intuit_redirect_uri: str = "http://localhost:8000/auth/callback"
    intuit_environment: str = "sandbox"
    intuit_base_url: Optional[str] = None
    intuit_authorization_url: str = "https://appcenter.intuit.com/connect/oauth2"
    intuit_token_url: str = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
    intuit_scopes: str = "com.intuit.quickbooks.accounting"
    quickbooks_minor_version: Optional[str] = None

    # Token persistence
    token_file_path: Path = Path.home() / ".local" / "share" / "intuit-invoicing-api" / "tokens.json"

    # Upstream HTTP
    http_timeout_seconds: float = 30.0

    # Settlement balance confirmation polling
    settlement_poll_max_attempts: int = 10
    settlement_poll_initial_delay: float = 0.2
    settlement_poll_max_delay: float = 2.0

    # Customer lookups by display name
    customer_cache_ttl_seconds: int = 300

    # Application
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: str = ""

    @property
    def quickbooks_base_url(self) -> str:
        """QuickBooks API base URL for the configured environment."""
        if self.intuit_base_url:
            return self.intuit_base_url.rstrip("/")
        if self.intuit_environment.lower() == "production":
            return PRODUCTION_BASE_URL
        return SANDBOX_BASE_URL

    @property
    def oauth_configured(self) -> bool:
        """Whether client credentials are present."""
        return bool(self.intuit_client_id and self.intuit_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
