"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_WEBHOOK_SECRET = "dev-webhook-secret-change-in-production"
DEV_STORAGE_SERVICE_KEY = "dev-storage-key-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API
    api_version: str = "0.1.0"
    debug: bool = False
    public_site_url: str = "http://localhost:8000"

    # Persistence: "memory" or "database"
    storage_backend: str = "memory"
    database_url: str = "postgresql+asyncpg://filemarket:filemarket_dev_password@db:5432/filemarket"

    # Payment provider
    payment_webhook_secret: str = DEV_WEBHOOK_SECRET
    payment_webhook_tolerance_seconds: int = 300
    payment_checkout_base_url: str = "https://checkout.stripe.com/pay"

    # Object storage
    storage_api_url: str = "http://storage:5000/storage/v1"
    storage_bucket: str = "marketplace-files"
    storage_service_key: str = DEV_STORAGE_SERVICE_KEY

    # E-mail
    email_api_url: str = "https://api.resend.com"
    email_api_key: str = ""
    email_sender: str = "FileMarket <noreply@filemarket.local>"

    # Identity
    identity_api_url: str = "http://auth:9999/auth/v1"

    # Authorization
    admin_identities: list[str] = []

    # Delivery
    credential_ttl_hours: int = 72
    signed_url_ttl_seconds: int = 600
    delivery_retry_limit: int = 5

    # Outbound HTTP
    http_timeout_seconds: float = 5.0

    # Override controls applied when the store is empty
    override_defaults: dict[str, bool] = {
        "master_switch": False,
        "marketplace_purchase": False,
        "download_delivery": False,
    }

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @model_validator(mode="after")
    def _refuse_dev_secrets(self) -> "Settings":
        """Persistent deployments must not run on the published dev credentials."""
        if self.storage_backend != "database":
            return self
        unset = [
            name
            for name, dev_value in (
                ("payment_webhook_secret", DEV_WEBHOOK_SECRET),
                ("storage_service_key", DEV_STORAGE_SERVICE_KEY),
            )
            if not getattr(self, name) or getattr(self, name) == dev_value
        ]
        if unset:
            raise ValueError(
                f"storage_backend=database requires real credentials for: {', '.join(unset)}"
            )
        return self


settings = Settings()
