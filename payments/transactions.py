"""
Transaction Service

CRUD over the local ``transactions`` table plus the upsert used to merge
platform-reported records into it.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models import Transaction, TransactionStatus
from payments.exceptions import TransactionNotFoundError
from payments.schemas import TransactionRecord

log = structlog.get_logger(__name__)

# Never copied out of the hub (exports, reconciliation snapshots)
SENSITIVE_METADATA_KEYS = ("sensitive_data", "card_number", "cvv", "api_key")


def transaction_to_dict(txn: Transaction, *, sanitize: bool = True) -> dict[str, Any]:
    metadata = dict(txn.meta or {})
    if sanitize:
        for key in SENSITIVE_METADATA_KEYS:
            metadata.pop(key, None)
    return {
        "id": txn.id,
        "user_id": txn.user_id,
        "platform_id": txn.platform_id,
        "platform_type": txn.platform_type.value if txn.platform_type else None,
        "provider_id": txn.provider_id,
        "order_id": txn.order_id,
        "amount": float(txn.amount) if txn.amount is not None else None,
        "currency": txn.currency.value if txn.currency else None,
        "status": txn.status.value if txn.status else None,
        "customer": txn.customer or {},
        "payment_method": txn.payment_method.value if txn.payment_method else None,
        "metadata": metadata,
        "created_at": txn.created_at.isoformat() if txn.created_at else None,
        "updated_at": txn.updated_at.isoformat() if txn.updated_at else None,
    }


class TransactionService:
    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> Transaction:
        if "metadata" in fields:
            fields["meta"] = fields.pop("metadata")
        txn = Transaction(**fields)
        self.db.add(txn)
        self.db.commit()
        self.db.refresh(txn)
        log.info(
            "transaction.created",
            transaction_id=txn.id,
            platform_id=txn.platform_id,
            amount=float(txn.amount),
            status=txn.status.value,
        )
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.db.get(Transaction, transaction_id)
        if txn is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return txn

    def get_by_order_id(
        self, order_id: str, platform_id: str | None = None
    ) -> Transaction | None:
        stmt = select(Transaction).where(Transaction.order_id == order_id)
        if platform_id:
            stmt = stmt.where(Transaction.platform_id == platform_id)
        return self.db.scalars(stmt.order_by(Transaction.id.desc())).first()

    def get_by_provider_id(
        self, platform_id: str, provider_id: str
    ) -> Transaction | None:
        stmt = select(Transaction).where(
            Transaction.platform_id == platform_id,
            Transaction.provider_id == provider_id,
        )
        return self.db.scalars(stmt).first()

    def update(self, transaction_id: int, **updates) -> Transaction:
        txn = self.get(transaction_id)
        if "metadata" in updates:
            updates["meta"] = {**(txn.meta or {}), **(updates.pop("metadata") or {})}
        for key, value in updates.items():
            setattr(txn, key, value)
        txn.updated_at = datetime.now(UTC)
        self.db.commit()
        self.db.refresh(txn)
        return txn

    def update_status(
        self, transaction_id: int, status: TransactionStatus
    ) -> Transaction:
        return self.update(transaction_id, status=status)

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.db.delete(txn)
        self.db.commit()
        log.info("transaction.deleted", transaction_id=transaction_id)

    def list_transactions(
        self,
        *,
        user_id: str | None = None,
        platform_id: str | None = None,
        status: TransactionStatus | None = None,
        order_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        min_amount: Decimal | float | None = None,
        max_amount: Decimal | float | None = None,
        limit: int | None = 100,
        offset: int = 0,
    ) -> list[Transaction]:
        stmt = select(Transaction)
        if user_id:
            stmt = stmt.where(Transaction.user_id == user_id)
        if platform_id:
            stmt = stmt.where(Transaction.platform_id == platform_id)
        if status:
            stmt = stmt.where(Transaction.status == status)
        if order_id:
            stmt = stmt.where(Transaction.order_id == order_id)
        if start_date:
            stmt = stmt.where(Transaction.created_at >= start_date)
        if end_date:
            stmt = stmt.where(Transaction.created_at <= end_date)
        if min_amount is not None:
            stmt = stmt.where(Transaction.amount >= min_amount)
        if max_amount is not None:
            stmt = stmt.where(Transaction.amount <= max_amount)
        stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)
        return list(self.db.scalars(stmt))

    def upsert_record(
        self, record: TransactionRecord, user_id: str | None = None
    ) -> tuple[Transaction, bool, TransactionStatus | None]:
        """Insert or refresh the local copy of a platform transaction.

        Returns the row, whether it was created, and its previous status.
        """
        txn = None
        if record.provider_id:
            txn = self.get_by_provider_id(record.platform_id, record.provider_id)
        if txn is None and record.order_id:
            candidate = self.get_by_order_id(record.order_id, record.platform_id)
            # Another provider attempt for the same order is a separate row
            if candidate is not None and (
                not candidate.provider_id or not record.provider_id
            ):
                txn = candidate

        customer = None
        if record.customer:
            customer = record.customer.model_dump(exclude_none=True)
        if txn is None:
            txn = self.create(
                user_id=user_id,
                platform_id=record.platform_id,
                platform_type=record.platform_type,
                provider_id=record.provider_id or None,
                order_id=record.order_id,
                amount=record.amount,
                currency=record.currency,
                status=record.status,
                customer=customer or {},
                payment_method=record.payment_method,
                metadata=record.metadata,
            )
            return txn, True, None

        previous = txn.status
        updates: dict[str, Any] = {"status": record.status}
        if record.provider_id and not txn.provider_id:
            updates["provider_id"] = record.provider_id
        if record.amount:
            updates["amount"] = record.amount
        if customer:
            updates["customer"] = customer
        if record.payment_method:
            updates["payment_method"] = record.payment_method
        if record.metadata:
            updates["metadata"] = record.metadata
        return self.update(txn.id, **updates), False, previous
