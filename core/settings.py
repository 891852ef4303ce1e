import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# Load .env file automatically
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_POOL_RECYCLE: int = 3600

    # Platform adapters
    PAYMENT_HTTP_TIMEOUT: float = 15.0
    PAYMENT_MAX_RETRIES: int = 3
    PAYMENT_RETRY_MIN_WAIT: float = 1.0
    PAYMENT_RETRY_MAX_WAIT: float = 8.0
    PLATFORM_STATUS_CACHE_TTL: int = 300

    # Notification transports (optional)
    SLACK_WEBHOOK_URL: str | None = None
    DISCORD_WEBHOOK_URL: str | None = None
    NOTIFICATION_FROM_EMAIL: str = "noreply@payhub.local"

    # Reports
    REPORTS_DIR: str = "reports"

    # Retention (days)
    AUDIT_RETENTION_DAYS: int = 365
    RECONCILIATION_RETENTION_DAYS: int = 90
    WEBHOOK_RETENTION_DAYS: int = 30
    NOTIFICATION_RETENTION_DAYS: int = 30
    METRICS_RETENTION_DAYS: int = 90

    # App settings
    APP_NAME: str = "Marketing Ops Payment Hub"
    DEBUG: bool = False
    ENVIRONMENT: Literal["development", "production", "test"] = "development"

    # Observability (Optional)
    OTEL_EXPORTER_OTLP_ENDPOINT: str = "http://localhost:4317"
    OTEL_SERVICE_NAME: str = "payhub"
    OTEL_RESOURCE_ATTRIBUTES: str = "service.name=payhub,service.version=0.1.0"

    model_config = ConfigDict(env_file=".env", case_sensitive=True)

    def __init__(self, **kwargs):
        # Check for DATABASE_URL before calling parent constructor
        if not kwargs.get("DATABASE_URL") and not os.getenv("DATABASE_URL"):
            raise RuntimeError(
                "DATABASE_URL not set; create .env or export the variable"
            )
        super().__init__(**kwargs)
