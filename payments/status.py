"""
Platform health checks, persisted to ``platform_status``.
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from core.logging import BusinessEvents
from db.models import PlatformIntegration, PlatformStatusRecord, TransactionStatus
from payments.exceptions import PaymentHubError
from payments.integrations import adapter_for
from payments.schemas import PlatformStatus

log = structlog.get_logger(__name__)

HEALTHY_ERROR_RATE = 0.1


def status_record_to_dict(record: PlatformStatusRecord) -> dict[str, Any]:
    return {
        "platform_id": record.platform_id,
        "is_active": record.is_active,
        "status": record.status,
        "error_rate": record.error_rate,
        "response_time": record.response_time,
        "details": record.details or {},
        "last_checked": record.last_checked.isoformat() if record.last_checked else None,
    }


class PlatformStatusService:
    def __init__(self, db: Session):
        self.db = db

    def check_status(self, platform_id: str) -> PlatformStatusRecord:
        try:
            status = adapter_for(self.db, platform_id).get_status()
        except PaymentHubError as e:
            status = PlatformStatus(
                is_active=False,
                error_rate=1.0,
                status=TransactionStatus.error,
                last_checked=datetime.now(UTC),
                errors=[str(e)],
            )
        return self._store(platform_id, status)

    def check_all_status(self) -> list[PlatformStatusRecord]:
        platform_ids = self.db.scalars(
            select(PlatformIntegration.platform_id)
            .where(PlatformIntegration.is_active.is_(True))
            .order_by(PlatformIntegration.platform_id)
        ).all()
        return [self.check_status(platform_id) for platform_id in platform_ids]

    def get_status(self, platform_id: str) -> PlatformStatusRecord | None:
        return self.db.scalars(
            select(PlatformStatusRecord).where(
                PlatformStatusRecord.platform_id == platform_id
            )
        ).first()

    def check_health(self, platform_id: str) -> bool:
        record = self.get_status(platform_id) or self.check_status(platform_id)
        return record.is_active and record.error_rate < HEALTHY_ERROR_RATE

    def _store(self, platform_id: str, status: PlatformStatus) -> PlatformStatusRecord:
        record = self.get_status(platform_id)
        if record is None:
            record = PlatformStatusRecord(platform_id=platform_id)
            self.db.add(record)
        record.is_active = status.is_active
        record.status = status.status.value
        record.error_rate = status.error_rate
        record.response_time = status.response_time
        record.details = {
            "api_version": status.api_version,
            "errors": status.errors,
        }
        record.last_checked = status.last_checked or datetime.now(UTC)
        self.db.commit()
        log.info(
            BusinessEvents.PLATFORM_STATUS,
            platform_id=platform_id,
            is_active=status.is_active,
            status=status.status.value,
            error_rate=status.error_rate,
        )
        return record
