"""
Reconciliation Service

Compares local transactions with the copy each payment platform reports and
keeps one ``payment_reconciliations`` row per transaction:

- matched: every compared field agrees
- mismatched: at least one field differs (audited)
- pending: the platform could not be queried
- resolved: an operator closed the discrepancy
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from core.audit import AuditService
from core.logging import BusinessEvents
from db.models import (
    AuditAction,
    ReconciliationItem,
    ReconciliationStatus,
    Transaction,
)
from payments.exceptions import PaymentHubError, TransactionNotFoundError
from payments.integrations import SECRET_SETTINGS, adapter_for
from payments.schemas import TransactionRecord
from payments.transactions import (
    SENSITIVE_METADATA_KEYS,
    TransactionService,
    transaction_to_dict,
)

log = structlog.get_logger(__name__)

COMPARED_FIELDS = ("amount", "currency", "status", "payment_method")
CUSTOMER_FIELDS = ("name", "email", "phone", "document")


def sanitize_snapshot(data: dict[str, Any]) -> dict[str, Any]:
    """Drop credentials and sensitive metadata from a stored snapshot."""
    clean = {
        key: value
        for key, value in data.items()
        if key not in ("platform_settings", "settings", *SECRET_SETTINGS)
    }
    metadata = clean.get("metadata")
    if isinstance(metadata, dict):
        clean["metadata"] = {
            key: value
            for key, value in metadata.items()
            if key not in ("platform_settings", *SENSITIVE_METADATA_KEYS)
        }
    return clean


def record_snapshot(record: TransactionRecord) -> dict[str, Any]:
    return sanitize_snapshot(record.model_dump(mode="json"))


def _normalise(field: str, value: Any) -> Any:
    if value is None:
        return None
    if field == "amount":
        return Decimal(str(value)).quantize(Decimal("0.01"))
    return getattr(value, "value", value)


def compare_transaction(
    local: Transaction, remote: TransactionRecord
) -> dict[str, Any]:
    """Field-by-field differences as ``{field: {"local": .., "platform": ..}}``."""
    differences: dict[str, Any] = {}
    for field in COMPARED_FIELDS:
        mine = _normalise(field, getattr(local, field))
        theirs = _normalise(field, getattr(remote, field))
        if mine != theirs:
            differences[field] = {
                "local": str(mine) if field == "amount" else mine,
                "platform": str(theirs) if field == "amount" and theirs is not None else theirs,
            }

    local_customer = local.customer or {}
    remote_customer = remote.customer.model_dump() if remote.customer else {}
    if local_customer and remote_customer:
        customer = {
            field: {
                "local": local_customer.get(field),
                "platform": remote_customer.get(field),
            }
            for field in CUSTOMER_FIELDS
            if (local_customer.get(field) or None) != (remote_customer.get(field) or None)
        }
        if customer:
            differences["customer"] = customer
    return differences


def diff_transactions(
    local: list[Transaction], remote: list[TransactionRecord]
) -> dict[str, Any]:
    """Set difference of two transaction listings keyed by provider id."""
    local_by_id = {txn.provider_id: txn for txn in local if txn.provider_id}
    remote_by_id = {record.provider_id: record for record in remote if record.provider_id}

    mismatched = []
    reconciled = 0
    for provider_id in local_by_id.keys() & remote_by_id.keys():
        differences = compare_transaction(local_by_id[provider_id], remote_by_id[provider_id])
        if differences:
            mismatched.append({"provider_id": provider_id, "differences": differences})
        else:
            reconciled += 1

    local_total = sum((Decimal(str(txn.amount)) for txn in local), Decimal("0"))
    remote_total = sum((record.amount for record in remote), Decimal("0"))
    return {
        "missing_locally": sorted(remote_by_id.keys() - local_by_id.keys()),
        "missing_on_platform": sorted(local_by_id.keys() - remote_by_id.keys()),
        "mismatched": sorted(mismatched, key=lambda item: item["provider_id"]),
        "reconciled": reconciled,
        "total_amount_difference": float(local_total - remote_total),
    }


def reconciliation_to_dict(item: ReconciliationItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "transaction_id": item.transaction_id,
        "platform_id": item.platform_id,
        "status": item.status.value,
        "local_data": item.local_data or {},
        "platform_data": item.platform_data,
        "differences": item.differences or {},
        "resolution": item.resolution,
        "error": item.error,
        "reconciled_at": item.reconciled_at.isoformat() if item.reconciled_at else None,
    }


class ReconciliationService:
    def __init__(self, db: Session):
        self.db = db

    def reconcile_transactions(
        self,
        start_date: datetime,
        end_date: datetime,
        platform_id: str | None = None,
    ) -> dict[str, Any]:
        transactions = TransactionService(self.db).list_transactions(
            platform_id=platform_id, start_date=start_date, end_date=end_date, limit=None
        )
        counts = {status: 0 for status in ReconciliationStatus}
        discrepancies = []
        for txn in transactions:
            item = self.reconcile_transaction(txn)
            counts[item.status] += 1
            if item.status == ReconciliationStatus.mismatched:
                discrepancies.append(
                    {
                        "transaction_id": txn.id,
                        "platform_id": txn.platform_id,
                        "type": "data_mismatch",
                        "details": item.differences,
                    }
                )

        total = len(transactions)
        matched = counts[ReconciliationStatus.matched]
        report = {
            "period": {"start": start_date.isoformat(), "end": end_date.isoformat()},
            "summary": {
                "total_transactions": total,
                "matched_transactions": matched,
                "mismatched_transactions": counts[ReconciliationStatus.mismatched],
                "pending_transactions": counts[ReconciliationStatus.pending],
                "match_rate": matched / total * 100 if total else 0.0,
            },
            "discrepancies": discrepancies,
        }
        log.info(
            BusinessEvents.RECONCILIATION_RUN,
            platform_id=platform_id,
            total=total,
            matched=matched,
            mismatched=counts[ReconciliationStatus.mismatched],
            pending=counts[ReconciliationStatus.pending],
        )
        return report

    def reconcile_transaction(self, txn: Transaction) -> ReconciliationItem:
        local_data = sanitize_snapshot(transaction_to_dict(txn))
        platform_data = None
        differences: dict[str, Any] = {}
        error = None
        if not txn.provider_id:
            # Never accepted by the platform, so there is nothing to fetch
            status = ReconciliationStatus.pending
            error = "Transaction has no platform transaction id"
            log.warning(
                "reconciliation.missing_provider_id",
                transaction_id=txn.id,
                platform_id=txn.platform_id,
            )
        else:
            try:
                adapter = adapter_for(self.db, txn.platform_id)
                remote = adapter.get_transaction(txn.provider_id)
            except PaymentHubError as e:
                status = ReconciliationStatus.pending
                error = str(e)
                log.warning(
                    "reconciliation.platform_unavailable",
                    transaction_id=txn.id,
                    platform_id=txn.platform_id,
                    error=error,
                )
            else:
                platform_data = record_snapshot(remote)
                differences = compare_transaction(txn, remote)
                status = (
                    ReconciliationStatus.mismatched
                    if differences
                    else ReconciliationStatus.matched
                )

        item = self.get_reconciliation_status(txn.id)
        if item is None:
            item = ReconciliationItem(transaction_id=txn.id)
            self.db.add(item)
        item.platform_id = txn.platform_id
        item.status = status
        item.local_data = local_data
        item.platform_data = platform_data
        item.differences = differences
        item.error = error
        item.resolution = None
        item.reconciled_at = datetime.now(UTC)
        self.db.commit()

        if status == ReconciliationStatus.mismatched:
            log.warning(
                BusinessEvents.RECONCILIATION_MISMATCH,
                transaction_id=txn.id,
                platform_id=txn.platform_id,
                fields=sorted(differences),
            )
            AuditService(self.db).log(
                AuditAction.payment_reconciliation,
                "transaction",
                txn.id,
                {"differences": differences},
                user_id=txn.user_id,
                platform_id=txn.platform_id,
            )
        return item

    def compare_platform(
        self,
        platform_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, Any]:
        remote = adapter_for(self.db, platform_id).get_transactions(start_date, end_date)
        local = TransactionService(self.db).list_transactions(
            platform_id=platform_id, start_date=start_date, end_date=end_date, limit=None
        )
        return {"platform_id": platform_id, **diff_transactions(local, remote)}

    def resolve_discrepancy(
        self,
        transaction_id: int,
        resolution: str,
        updates: dict[str, Any] | None = None,
    ) -> ReconciliationItem:
        item = self.get_reconciliation_status(transaction_id)
        if item is None:
            raise TransactionNotFoundError(
                f"No reconciliation for transaction {transaction_id}"
            )
        item.status = ReconciliationStatus.resolved
        item.resolution = resolution
        self.db.commit()

        if updates:
            txn = TransactionService(self.db).update(transaction_id, **updates)
            AuditService(self.db).log(
                AuditAction.payment_reconciliation_resolved,
                "transaction",
                transaction_id,
                {"resolution": resolution, "updates": _jsonable(updates)},
                user_id=txn.user_id,
                platform_id=txn.platform_id,
            )
        return item

    def get_reconciliation_status(self, transaction_id: int) -> ReconciliationItem | None:
        stmt = select(ReconciliationItem).where(
            ReconciliationItem.transaction_id == transaction_id
        )
        return self.db.scalars(stmt).first()

    def _by_status(
        self, status: ReconciliationStatus, platform_id: str | None, limit: int
    ) -> list[ReconciliationItem]:
        stmt = select(ReconciliationItem).where(ReconciliationItem.status == status)
        if platform_id:
            stmt = stmt.where(ReconciliationItem.platform_id == platform_id)
        stmt = stmt.order_by(ReconciliationItem.id.desc()).limit(limit)
        return list(self.db.scalars(stmt))

    def get_pending_reconciliations(
        self, platform_id: str | None = None, limit: int = 100
    ) -> list[ReconciliationItem]:
        return self._by_status(ReconciliationStatus.pending, platform_id, limit)

    def get_mismatched_reconciliations(
        self, platform_id: str | None = None, limit: int = 100
    ) -> list[ReconciliationItem]:
        return self._by_status(ReconciliationStatus.mismatched, platform_id, limit)

    def cleanup_old_reconciliations(self, days: int = 90) -> int:
        cutoff = datetime.now(UTC) - timedelta(days=days)
        result = self.db.execute(
            delete(ReconciliationItem).where(ReconciliationItem.created_at < cutoff)
        )
        self.db.commit()
        log.info("reconciliation.cleanup", days=days, deleted=result.rowcount)
        return result.rowcount


def _jsonable(values: dict[str, Any]) -> dict[str, Any]:
    return {
        key: str(value) if isinstance(value, Decimal) else getattr(value, "value", value)
        for key, value in values.items()
    }
