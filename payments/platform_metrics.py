"""
Per-platform business metrics, persisted as ``platform_metrics`` snapshots.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from db.models import PlatformMetricsSnapshot, Transaction, TransactionStatus

log = structlog.get_logger(__name__)


CHARGEBACK_STATUSES = {"chargeback", "chargedback", "charged_back"}


def is_chargeback(txn: Transaction) -> bool:
    meta = txn.meta or {}
    if meta.get("chargeback"):
        return True
    return meta.get("platform_status") in CHARGEBACK_STATUSES


def snapshot_to_dict(snapshot: PlatformMetricsSnapshot) -> dict[str, Any]:
    return {
        "platform_id": snapshot.platform_id,
        "total_transactions": snapshot.total_transactions,
        "total_volume": float(snapshot.total_volume or 0),
        "success_rate": snapshot.success_rate,
        "average_value": snapshot.average_value,
        "refund_rate": snapshot.refund_rate,
        "chargeback_rate": snapshot.chargeback_rate,
        "created_at": snapshot.created_at.isoformat() if snapshot.created_at else None,
    }


class PlatformMetricsService:
    def __init__(self, db: Session):
        self.db = db

    def calculate_metrics(self, platform_id: str) -> PlatformMetricsSnapshot:
        transactions = list(
            self.db.scalars(
                select(Transaction).where(Transaction.platform_id == platform_id)
            )
        )
        total = len(transactions)
        if total:
            volume = sum((Decimal(str(txn.amount)) for txn in transactions), Decimal("0"))
            completed = sum(txn.status == TransactionStatus.completed for txn in transactions)
            refunded = sum(txn.status == TransactionStatus.refunded for txn in transactions)
            chargebacks = sum(is_chargeback(txn) for txn in transactions)
            snapshot = PlatformMetricsSnapshot(
                platform_id=platform_id,
                total_transactions=total,
                total_volume=volume,
                success_rate=completed / total * 100,
                average_value=float(volume / total),
                refund_rate=refunded / total * 100,
                chargeback_rate=chargebacks / total * 100,
            )
        else:
            snapshot = PlatformMetricsSnapshot(
                platform_id=platform_id,
                total_transactions=0,
                total_volume=Decimal("0"),
                success_rate=0.0,
                average_value=0.0,
                refund_rate=0.0,
                chargeback_rate=0.0,
            )
        self.db.add(snapshot)
        self.db.commit()
        self.db.refresh(snapshot)
        log.info(
            "platform.metrics_calculated",
            platform_id=platform_id,
            total_transactions=total,
            success_rate=snapshot.success_rate,
        )
        return snapshot

    def get_metrics(self, platform_id: str) -> PlatformMetricsSnapshot:
        """Latest snapshot, calculating one when none exists yet."""
        stmt = (
            select(PlatformMetricsSnapshot)
            .where(PlatformMetricsSnapshot.platform_id == platform_id)
            .order_by(PlatformMetricsSnapshot.id.desc())
        )
        snapshot = self.db.scalars(stmt).first()
        return snapshot or self.calculate_metrics(platform_id)

    def get_metrics_history(
        self, platform_id: str, days: int = 30
    ) -> list[PlatformMetricsSnapshot]:
        since = datetime.now(UTC) - timedelta(days=days)
        stmt = (
            select(PlatformMetricsSnapshot)
            .where(
                PlatformMetricsSnapshot.platform_id == platform_id,
                PlatformMetricsSnapshot.created_at >= since,
            )
            .order_by(PlatformMetricsSnapshot.id)
        )
        return list(self.db.scalars(stmt))

    def delete_old_metrics(self, days: int = 90) -> int:
        cutoff = datetime.now(UTC) - timedelta(days=days)
        result = self.db.execute(
            delete(PlatformMetricsSnapshot).where(
                PlatformMetricsSnapshot.created_at < cutoff
            )
        )
        self.db.commit()
        return result.rowcount
