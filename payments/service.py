"""
Payment Platform Service

The hub's entry point for payment operations. This module handles:
- Platform integration CRUD
- Processing, refunding and cancelling payments through platform adapters
- Reading and syncing transactions from platforms
- Platform status and webhook signature checks

Every outcome is persisted locally, logged as a business event, audited and
counted in Prometheus.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.audit import AuditService
from core.logging import BusinessEvents
from core.metrics import payments_total
from db.models import (
    AuditAction,
    NotificationType,
    PaymentPlatform,
    PlatformIntegration,
    Transaction,
    TransactionStatus,
)
from payments.exceptions import (
    NotificationError,
    PaymentValidationError,
    PlatformAPIError,
    PlatformConfigError,
)
from payments.integrations import adapter_for, get_integration, integration_config
from payments.notifications import STATUS_NOTIFICATIONS, NotificationService
from payments.registry import adapter_class, registry
from payments.schemas import PaymentRequest, PlatformStatus, TransactionRecord
from payments.transactions import TransactionService

log = structlog.get_logger(__name__)

# Statuses that can no longer be refunded or cancelled
FINAL_STATUSES = (
    TransactionStatus.refunded,
    TransactionStatus.cancelled,
    TransactionStatus.failed,
)


class PaymentPlatformService:
    def __init__(self, db: Session, notifications: NotificationService | None = None):
        self.db = db
        self.transactions = TransactionService(db)
        self.audit = AuditService(db)
        self.notifications = notifications or NotificationService(db)

    # ------------------------------------------------------------------ platforms

    def list_platforms(
        self, user_id: str | None = None, active_only: bool = False
    ) -> list[PlatformIntegration]:
        stmt = select(PlatformIntegration)
        if user_id:
            stmt = stmt.where(PlatformIntegration.user_id == user_id)
        if active_only:
            stmt = stmt.where(PlatformIntegration.is_active.is_(True))
        return list(self.db.scalars(stmt.order_by(PlatformIntegration.id)))

    def get_platform(self, platform_id: str) -> PlatformIntegration:
        return get_integration(self.db, platform_id)

    def _check_credentials(self, integration: PlatformIntegration) -> None:
        config = integration_config(integration)
        missing = adapter_class(config.platform_type).missing_credentials(config)
        if missing:
            raise PlatformConfigError(
                f"Missing credentials for {config.platform_type.value}: "
                + ", ".join(missing),
                missing=missing,
            )

    def create_platform(
        self,
        platform_id: str,
        name: str,
        platform_type: PaymentPlatform,
        settings: dict[str, Any],
        user_id: str | None = None,
        is_active: bool = True,
    ) -> PlatformIntegration:
        integration = PlatformIntegration(
            platform_id=platform_id,
            name=name,
            platform_type=platform_type,
            settings=settings,
            user_id=user_id,
            is_active=is_active,
        )
        self._check_credentials(integration)
        self.db.add(integration)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise PaymentValidationError(f"Platform {platform_id} already exists")
        self.db.refresh(integration)

        log.info(
            BusinessEvents.PLATFORM_INTEGRATED,
            platform_id=platform_id,
            platform=platform_type.value,
            user_id=user_id,
        )
        self.audit.log(
            AuditAction.platform_integrated,
            "platform",
            platform_id,
            {"name": name, "platform_type": platform_type.value},
            user_id=user_id,
            platform_id=platform_id,
        )
        return integration

    def update_platform(
        self,
        platform_id: str,
        *,
        name: str | None = None,
        settings: dict[str, Any] | None = None,
        is_active: bool | None = None,
    ) -> PlatformIntegration:
        integration = self.get_platform(platform_id)
        changes: dict[str, Any] = {}
        if name is not None:
            integration.name = name
            changes["name"] = name
        if settings is not None:
            integration.settings = {**(integration.settings or {}), **settings}
            changes["settings"] = sorted(settings)
        if is_active is not None:
            integration.is_active = is_active
            changes["is_active"] = is_active
        try:
            self._check_credentials(integration)
        except PlatformConfigError:
            self.db.rollback()
            raise
        self.db.commit()
        self.db.refresh(integration)

        # Cached adapters hold the old credentials and status
        registry.invalidate(platform_id)
        self.audit.log(
            AuditAction.platform_updated,
            "platform",
            platform_id,
            changes,
            user_id=integration.user_id,
            platform_id=platform_id,
        )
        return integration

    def delete_platform(self, platform_id: str) -> None:
        integration = self.get_platform(platform_id)
        user_id = integration.user_id
        self.db.delete(integration)
        self.db.commit()
        registry.invalidate(platform_id)
        self.audit.log(
            AuditAction.platform_deleted,
            "platform",
            platform_id,
            user_id=user_id,
            platform_id=platform_id,
        )

    # ------------------------------------------------------------------ payments

    def process_payment(self, platform_id: str, request: PaymentRequest) -> Transaction:
        integration = self.get_platform(platform_id)
        adapter = adapter_for(self.db, platform_id)
        user_id = request.user_id or integration.user_id

        log.info(
            BusinessEvents.PAYMENT_ATTEMPT,
            platform_id=platform_id,
            platform=adapter.platform_name,
            order_id=request.order_id,
            amount=float(request.amount),
            currency=request.currency.value,
        )

        try:
            record = adapter.process_payment(request)
        except PlatformAPIError as e:
            log.error(
                BusinessEvents.PAYMENT_FAILURE,
                platform_id=platform_id,
                platform=adapter.platform_name,
                order_id=request.order_id,
                status_code=e.status_code,
                error=str(e),
            )
            payments_total.labels(
                platform=adapter.platform_name, status=TransactionStatus.failed.value
            ).inc()
            txn = self.transactions.create(
                user_id=user_id,
                platform_id=platform_id,
                platform_type=integration.platform_type,
                order_id=request.order_id,
                amount=request.amount,
                currency=request.currency,
                status=TransactionStatus.failed,
                customer=request.customer.model_dump(exclude_none=True),
                payment_method=request.payment_method,
                metadata={**request.metadata, "error": str(e)},
            )
            self._audit_payment(txn, {"status": txn.status.value, "error": str(e)})
            self._notify(NotificationType.payment_failed, txn)
            raise

        txn = self.transactions.create(
            user_id=user_id,
            platform_id=platform_id,
            platform_type=integration.platform_type,
            provider_id=record.provider_id or None,
            order_id=record.order_id or request.order_id,
            amount=record.amount,
            currency=record.currency,
            status=record.status,
            customer=(record.customer or request.customer).model_dump(exclude_none=True),
            payment_method=record.payment_method or request.payment_method,
            metadata={**request.metadata, **record.metadata},
        )
        payments_total.labels(
            platform=adapter.platform_name, status=txn.status.value
        ).inc()
        event = (
            BusinessEvents.PAYMENT_FAILURE
            if txn.status == TransactionStatus.failed
            else BusinessEvents.PAYMENT_SUCCESS
        )
        log.info(
            event,
            platform_id=platform_id,
            platform=adapter.platform_name,
            transaction_id=txn.id,
            provider_id=txn.provider_id,
            amount=float(txn.amount),
            status=txn.status.value,
        )
        self._audit_payment(txn, {"status": txn.status.value, "provider_id": txn.provider_id})

        notification = STATUS_NOTIFICATIONS.get(txn.status)
        if notification in (NotificationType.payment_success, NotificationType.payment_failed):
            self._notify(notification, txn)
        return txn

    def _audit_payment(self, txn: Transaction, changes: dict[str, Any]) -> None:
        self.audit.log(
            AuditAction.payment_processed,
            "transaction",
            txn.id,
            {"amount": str(txn.amount), "currency": txn.currency.value, **changes},
            user_id=txn.user_id,
            platform_id=txn.platform_id,
        )

    def refund_transaction(
        self,
        transaction_id: int,
        amount: Decimal | None = None,
        reason: str | None = None,
    ) -> Transaction:
        txn = self.transactions.get(transaction_id)
        if txn.status in FINAL_STATUSES:
            raise PaymentValidationError(
                f"Transaction {transaction_id} is {txn.status.value} and cannot be refunded"
            )
        if not txn.provider_id:
            raise PaymentValidationError(
                f"Transaction {transaction_id} has no platform reference"
            )
        if amount is not None and (amount <= 0 or amount > txn.amount):
            raise PaymentValidationError(
                "Refund amount must be positive and not exceed the transaction amount"
            )

        adapter = adapter_for(self.db, txn.platform_id)
        log.info(
            BusinessEvents.REFUND_ATTEMPT,
            transaction_id=txn.id,
            platform_id=txn.platform_id,
            amount=float(amount) if amount is not None else None,
        )
        try:
            record = adapter.refund_transaction(txn.provider_id, amount, reason)
        except PlatformAPIError as e:
            log.error(
                BusinessEvents.REFUND_FAILURE,
                transaction_id=txn.id,
                platform_id=txn.platform_id,
                status_code=e.status_code,
                error=str(e),
            )
            raise

        refund = {
            "refund_id": record.metadata.get("refund_id"),
            "refund_amount": str(amount if amount is not None else txn.amount),
            "refund_reason": reason,
            "refunded_at": datetime.now(UTC).isoformat(),
        }
        txn = self.transactions.update(
            txn.id, status=TransactionStatus.refunded, metadata={"refund": refund}
        )
        payments_total.labels(
            platform=adapter.platform_name, status=TransactionStatus.refunded.value
        ).inc()
        log.info(
            BusinessEvents.REFUND_SUCCESS,
            transaction_id=txn.id,
            platform_id=txn.platform_id,
            refund_id=refund["refund_id"],
        )
        self.audit.log(
            AuditAction.payment_refunded,
            "transaction",
            txn.id,
            refund,
            user_id=txn.user_id,
            platform_id=txn.platform_id,
        )
        self._notify(NotificationType.payment_refunded, txn)
        return txn

    def cancel_transaction(self, transaction_id: int) -> Transaction:
        txn = self.transactions.get(transaction_id)
        if txn.status in FINAL_STATUSES:
            raise PaymentValidationError(
                f"Transaction {transaction_id} is {txn.status.value} and cannot be cancelled"
            )
        if not txn.provider_id:
            raise PaymentValidationError(
                f"Transaction {transaction_id} has no platform reference"
            )

        adapter = adapter_for(self.db, txn.platform_id)
        try:
            adapter.cancel_transaction(txn.provider_id)
        except PlatformAPIError as e:
            log.error(
                BusinessEvents.CANCEL_FAILURE,
                transaction_id=txn.id,
                platform_id=txn.platform_id,
                status_code=e.status_code,
                error=str(e),
            )
            raise

        previous = txn.status
        txn = self.transactions.update_status(txn.id, TransactionStatus.cancelled)
        payments_total.labels(
            platform=adapter.platform_name, status=TransactionStatus.cancelled.value
        ).inc()
        log.info(
            BusinessEvents.CANCEL_SUCCESS,
            transaction_id=txn.id,
            platform_id=txn.platform_id,
        )
        self.audit.log(
            AuditAction.payment_cancelled,
            "transaction",
            txn.id,
            {"previous_status": previous.value},
            user_id=txn.user_id,
            platform_id=txn.platform_id,
        )
        return txn

    def get_transaction(self, transaction_id: int, refresh: bool = False) -> Transaction:
        txn = self.transactions.get(transaction_id)
        if not refresh or not txn.provider_id:
            return txn

        record = adapter_for(self.db, txn.platform_id).get_transaction(txn.provider_id)
        previous = txn.status
        txn, _, _ = self.transactions.upsert_record(record, user_id=txn.user_id)
        if previous != txn.status:
            self.audit.log(
                AuditAction.payment_updated,
                "transaction",
                txn.id,
                {"status": {"from": previous.value, "to": txn.status.value}},
                user_id=txn.user_id,
                platform_id=txn.platform_id,
            )
        return txn

    def get_transactions(
        self,
        platform_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[TransactionRecord]:
        return adapter_for(self.db, platform_id).get_transactions(start_date, end_date)

    def sync_transactions(
        self,
        platform_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, Any]:
        """Upsert the platform's listing into local storage."""
        integration = self.get_platform(platform_id)
        records = self.get_transactions(platform_id, start_date, end_date)
        created = updated = 0
        for record in records:
            _, was_created, _ = self.transactions.upsert_record(
                record, user_id=integration.user_id
            )
            if was_created:
                created += 1
            else:
                updated += 1
        log.info(
            "platform.transactions_synced",
            platform_id=platform_id,
            fetched=len(records),
            created=created,
            updated=updated,
        )
        return {
            "platform_id": platform_id,
            "fetched": len(records),
            "created": created,
            "updated": updated,
        }

    def get_status(self, platform_id: str) -> PlatformStatus:
        return adapter_for(self.db, platform_id).get_status()

    def validate_webhook_signature(
        self,
        platform_id: str,
        signature: str | None,
        payload: bytes | str | dict[str, Any],
    ) -> bool:
        return adapter_for(self.db, platform_id).validate_webhook_signature(
            signature, payload
        )

    # ------------------------------------------------------------------ notifications

    def _notify(self, type: NotificationType, txn: Transaction) -> None:
        try:
            self.notifications.notify_transaction(type, txn)
        except NotificationError as e:
            log.warning(
                BusinessEvents.NOTIFICATION_FAILED,
                type=type.value,
                transaction_id=txn.id,
                error=str(e),
            )
