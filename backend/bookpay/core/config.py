# backend/bookpay/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")
    database_url: str = Field(
        default="sqlite+pysqlite:///./bookpay.db",
        description="SQLAlchemy database URL",
    )
    webapp_url: str = Field(
        default="http://localhost:3000",
        description="Public base URL used for browser redirects and email links",
    )

    # Stripe Configuration
    stripe_publishable_key: str = Field(
        default="", description="Stripe publishable key for frontend"
    )
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key used for connected-account (OAuth) calls",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe webhook secret for platform events",
    )
    stripe_webhook_secret_connect: SecretStr = Field(
        default=SecretStr(""),
        description="Connect events webhook secret",
    )
    stripe_api_version: str = Field(default="2023-10-16", description="Pinned Stripe API version")
    stripe_currency: str = Field(default="usd", description="Default currency for payments")
    stripe_fake: bool = Field(
        default=False,
        description="Use the in-memory Stripe client instead of the real API",
    )
    webhook_processing_timeout_seconds: int = Field(
        default=300,
        ge=1,
        description="Age after which a webhook claim left in processing may be taken over by a redelivery",
    )

    # Email
    email_provider: Literal["console", "resend"] = Field(
        default="console",
        alias="EMAIL_PROVIDER",
        description="Email provider name",
    )
    resend_api_key: str | None = Field(
        default=None,
        alias="RESEND_API_KEY",
        description="API key for Resend provider (optional)",
    )
    from_email: str = "Bookpay <bookings@bookpay.example>"

    admin_api_token: SecretStr = Field(
        default=SecretStr(""),
        description="Shared token for admin-only endpoints (app keys, payment debug)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("webapp_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("stripe_currency")
    @classmethod
    def _lower_currency(cls, v: str) -> str:
        return (v or "usd").lower()

    @property
    def webhook_secrets(self) -> list[str]:
        """Platform secret first, then the Connect endpoint secret. Unset ones are skipped."""
        candidates = (self.stripe_webhook_secret, self.stripe_webhook_secret_connect)
        return [secret.get_secret_value() for secret in candidates if secret.get_secret_value()]


settings = Settings()
