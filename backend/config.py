"""
Configuration management for the EliteVault storefront.

Loads settings from .env via pydantic-settings.

Security notes:
    - validate_production_settings() enforces strict CORS, a JWT secret and a
      webhook secret in production, and refuses PIX dev mode there
    - The admin account is seeded from ADMIN_EMAIL / ADMIN_PASSWORD, never
      from values baked into the code
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_PASSWORD = "change-me"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/elitevault.db"
    database_echo: bool = False

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    store_name: str = "EliteVault"

    # ── Auth (JWT + server-side sessions) ───────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "elitevault-api"
    customer_session_ttl_days: int = 365
    admin_session_ttl_hours: int = 24
    session_cookie_name: str = "elitevault_session"
    session_cookie_secure: bool = False
    bcrypt_rounds: int = 12

    # ── Admin seed ──────────────────────────────────────────────────
    admin_email: str = "admin@elitevault.local"
    admin_password: str = DEFAULT_ADMIN_PASSWORD
    admin_first_name: str = "Admin"
    admin_last_name: str = "EliteVault"

    # ── AbacatePay (PIX) ────────────────────────────────────────────
    abacatepay_api_key: str = ""
    abacatepay_api_url: str = "https://api.abacatepay.com/v1"
    abacatepay_timeout_seconds: float = 15.0
    pix_expires_in_seconds: int = 3600
    pix_dev_mode: bool = True  # allows /simulate-payment against AbacatePay dev mode
    webhook_url: str = "https://elitevault.fun/webhook"
    webhook_secret: str = ""

    # ── PIX poller ──────────────────────────────────────────────────
    pix_poller_enabled: bool = True
    pix_poll_seconds: int = 10

    # ── Checkout ────────────────────────────────────────────────────
    max_quantity_per_item: int = 20

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:5000,http://127.0.0.1:5000,http://localhost:5173,http://127.0.0.1:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def async_database_url(self) -> str:
        """Map sync driver URLs onto their async counterparts."""
        url = self.database_url
        if url.startswith("sqlite:///"):
            return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)
        return url

    @property
    def payment_provider_configured(self) -> bool:
        return bool(self.abacatepay_api_key)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup. Fatal in production, warnings elsewhere.
        """
        if self.is_production:
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if self.pix_dev_mode:
                raise ValueError(
                    "PIX_DEV_MODE must be false in production. "
                    "Dev mode exposes the payment simulation endpoint."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign session tokens."
                )
            if not self.webhook_secret:
                raise ValueError(
                    "WEBHOOK_SECRET must be set in production. "
                    "AbacatePay webhooks are rejected without it."
                )
            if self.admin_password == DEFAULT_ADMIN_PASSWORD:
                raise ValueError(
                    "ADMIN_PASSWORD must be changed from its default in production."
                )
            logger.info("✅ Production settings validated")
        else:
            warnings = []
            if self.pix_dev_mode:
                warnings.append("PIX_DEV_MODE=true (payment simulation enabled)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            if not self.jwt_secret:
                warnings.append("JWT_SECRET not set (logins will fail)")
            if not self.abacatepay_api_key:
                warnings.append("ABACATEPAY_API_KEY not set (PIX checkout disabled)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()
