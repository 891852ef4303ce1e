"""
Lookups from stored platform integrations to adapter configuration.
"""

from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models import PlatformIntegration
from payments.exceptions import PlatformConfigError, PlatformNotFoundError
from payments.platforms.base import BasePlatformAdapter
from payments.registry import get_adapter
from payments.schemas import PlatformConfig, PlatformCredentials

# Settings keys that must never leave the hub in API responses or snapshots
SECRET_SETTINGS = ("api_key", "apiKey", "secret_key", "secretKey", "webhook_secret", "webhookSecret")


def get_integration(db: Session, platform_id: str) -> PlatformIntegration:
    integration = db.scalars(
        select(PlatformIntegration).where(PlatformIntegration.platform_id == platform_id)
    ).first()
    if integration is None:
        raise PlatformNotFoundError(f"Platform {platform_id} not found")
    return integration


def integration_config(integration: PlatformIntegration) -> PlatformConfig:
    try:
        settings = PlatformCredentials.model_validate(integration.settings or {})
    except ValidationError as e:
        fields = sorted(
            {".".join(str(part) for part in err["loc"]) for err in e.errors()}
        )
        raise PlatformConfigError(
            f"Invalid settings for {integration.platform_type.value}: " + ", ".join(fields)
        ) from e
    return PlatformConfig(
        platform_id=integration.platform_id,
        platform_type=integration.platform_type,
        settings=settings,
    )


def adapter_for(db: Session, platform_id: str) -> BasePlatformAdapter:
    """Cached adapter for a stored integration; inactive ones are not found."""
    integration = get_integration(db, platform_id)
    if not integration.is_active:
        raise PlatformNotFoundError(f"Platform {platform_id} is inactive")
    return get_adapter(integration_config(integration))


def public_settings(settings: dict[str, Any] | None) -> dict[str, Any]:
    return {
        key: ("***" if key in SECRET_SETTINGS and value else value)
        for key, value in (settings or {}).items()
    }


def integration_to_dict(integration: PlatformIntegration) -> dict[str, Any]:
    return {
        "id": integration.id,
        "platform_id": integration.platform_id,
        "user_id": integration.user_id,
        "name": integration.name,
        "platform_type": integration.platform_type.value,
        "settings": public_settings(integration.settings),
        "is_active": integration.is_active,
        "created_at": (
            integration.created_at.isoformat() if integration.created_at else None
        ),
        "updated_at": (
            integration.updated_at.isoformat() if integration.updated_at else None
        ),
    }
