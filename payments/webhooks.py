"""
Webhook Service

Receives platform callbacks, verifies their HMAC signature, stores every
event in ``webhook_events`` and folds payment events into the local
transaction table.
"""

import json
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from core.audit import AuditService
from core.logging import BusinessEvents
from core.metrics import webhooks_total
from db.models import (
    AuditAction,
    NotificationType,
    TransactionStatus,
    WebhookCategory,
    WebhookEvent,
    WebhookStatus,
)
from payments.exceptions import (
    PaymentValidationError,
    WebhookNotFoundError,
    WebhookSignatureError,
)
from payments.integrations import adapter_for, get_integration
from payments.notifications import STATUS_NOTIFICATIONS, NotificationService
from payments.platform_metrics import is_chargeback
from payments.platforms.base import BasePlatformAdapter
from payments.transactions import TransactionService

log = structlog.get_logger(__name__)

_PAYMENT_WORDS = ("payment", "transaction", "order", "charge", "purchase", "sale", "refund", "bill")


def classify_event(event_type: str | None) -> WebhookCategory:
    event = (event_type or "").lower()
    if any(word in event for word in _PAYMENT_WORDS):
        return WebhookCategory.payment
    if "subscription" in event:
        return WebhookCategory.subscription
    if "customer" in event:
        return WebhookCategory.customer
    return WebhookCategory.unknown


def webhook_to_dict(event: WebhookEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "platform_id": event.platform_id,
        "event_type": event.event_type,
        "category": event.category.value,
        "status": event.status.value,
        "error": event.error,
        "attempts": event.attempts,
        "payload": event.payload,
        "processed_at": event.processed_at.isoformat() if event.processed_at else None,
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }


class WebhookService:
    def __init__(self, db: Session, notifications: NotificationService | None = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    def handle_webhook(
        self, platform_id: str, raw_body: bytes, signature: str | None
    ) -> WebhookEvent:
        adapter = adapter_for(self.db, platform_id)
        if not adapter.validate_webhook_signature(signature, raw_body):
            webhooks_total.labels(platform=adapter.platform_name, result="rejected").inc()
            log.warning(
                BusinessEvents.WEBHOOK_REJECTED,
                platform_id=platform_id,
                has_signature=bool(signature),
            )
            raise WebhookSignatureError("Invalid webhook signature")

        try:
            payload = json.loads(raw_body or b"{}")
        except ValueError as e:
            raise PaymentValidationError(f"Webhook body is not valid JSON: {e}")
        if not isinstance(payload, dict):
            raise PaymentValidationError("Webhook body must be a JSON object")

        event_type = adapter.webhook_event_name(payload)
        event = WebhookEvent(
            platform_id=platform_id,
            event_type=event_type,
            category=classify_event(event_type),
            payload=payload,
            signature=signature,
            status=WebhookStatus.received,
            attempts=0,
        )
        self.db.add(event)
        self.db.commit()
        log.info(
            BusinessEvents.WEBHOOK_RECEIVED,
            platform_id=platform_id,
            webhook_id=event.id,
            event_type=event_type,
            category=event.category.value,
        )
        AuditService(self.db).log(
            AuditAction.webhook_received,
            "webhook",
            event.id,
            {"event_type": event_type},
            platform_id=platform_id,
        )

        self._process(adapter, event)
        return event

    def _process(self, adapter: BasePlatformAdapter, event: WebhookEvent) -> None:
        event.attempts = (event.attempts or 0) + 1
        self.db.commit()
        try:
            changes = self.process_event(adapter, event)
        except Exception as e:
            self.db.rollback()
            event.status = WebhookStatus.failed
            event.error = str(e)
            self.db.commit()
            webhooks_total.labels(platform=adapter.platform_name, result="failed").inc()
            log.error(
                BusinessEvents.WEBHOOK_FAILED,
                platform_id=event.platform_id,
                webhook_id=event.id,
                error=str(e),
            )
            raise

        event.status = WebhookStatus.processed
        event.error = None
        event.processed_at = datetime.now(UTC)
        self.db.commit()
        webhooks_total.labels(platform=adapter.platform_name, result="processed").inc()
        log.info(
            BusinessEvents.WEBHOOK_PROCESSED,
            platform_id=event.platform_id,
            webhook_id=event.id,
            event_type=event.event_type,
        )
        AuditService(self.db).log(
            AuditAction.webhook_processed,
            "webhook",
            event.id,
            changes,
            platform_id=event.platform_id,
        )

    def process_event(
        self, adapter: BasePlatformAdapter, event: WebhookEvent
    ) -> dict[str, Any]:
        if event.category != WebhookCategory.payment:
            log.info(
                "webhook.ignored",
                platform_id=event.platform_id,
                event_type=event.event_type,
                category=event.category.value,
            )
            return {"category": event.category.value}

        record = adapter.parse_webhook(event.payload)
        integration = get_integration(self.db, event.platform_id)
        txn, created, previous = TransactionService(self.db).upsert_record(
            record, user_id=integration.user_id
        )

        if created or previous != txn.status:
            self._notify_status(txn)
        return {
            "transaction_id": txn.id,
            "created": created,
            "previous_status": previous.value if previous else None,
            "status": txn.status.value,
        }

    def _notify_status(self, txn) -> None:
        notification_type = STATUS_NOTIFICATIONS.get(txn.status)
        if txn.status == TransactionStatus.refunded and is_chargeback(txn):
            notification_type = NotificationType.payment_chargeback
        if notification_type:
            self.notifications.notify_transaction(notification_type, txn)

    def retry_failed_webhook(self, webhook_id: int) -> WebhookEvent:
        event = self.db.get(WebhookEvent, webhook_id)
        if event is None:
            raise WebhookNotFoundError(f"Webhook {webhook_id} not found")
        if event.status != WebhookStatus.failed:
            raise PaymentValidationError(
                f"Webhook {webhook_id} is {event.status.value}, not failed"
            )
        self._process(adapter_for(self.db, event.platform_id), event)
        return event

    def get_webhooks(
        self,
        platform_id: str | None = None,
        status: WebhookStatus | None = None,
        limit: int = 100,
    ) -> list[WebhookEvent]:
        stmt = select(WebhookEvent)
        if platform_id:
            stmt = stmt.where(WebhookEvent.platform_id == platform_id)
        if status:
            stmt = stmt.where(WebhookEvent.status == status)
        stmt = stmt.order_by(WebhookEvent.id.desc()).limit(limit)
        return list(self.db.scalars(stmt))

    def get_failed_webhooks(self, limit: int = 100) -> list[WebhookEvent]:
        return self.get_webhooks(status=WebhookStatus.failed, limit=limit)

    def cleanup_old_webhooks(self, days: int = 30) -> int:
        cutoff = datetime.now(UTC) - timedelta(days=days)
        result = self.db.execute(
            delete(WebhookEvent).where(WebhookEvent.created_at < cutoff)
        )
        self.db.commit()
        log.info("webhook.cleanup", days=days, deleted=result.rowcount)
        return result.rowcount
