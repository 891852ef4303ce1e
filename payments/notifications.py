"""
Notification Service

Renders ``{{variable}}`` templates per (type, channel), persists each
notification and hands it to a channel transport:

- slack / discord: POST to the configured incoming webhook URL
- email / sms / push: written to the structured log
"""

import re
from datetime import UTC, datetime, timedelta
from typing import Any

import requests
import structlog
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from core.dependencies import get_settings_or_default
from core.logging import BusinessEvents
from db.models import (
    Notification,
    NotificationChannel,
    NotificationStatus,
    NotificationTemplate,
    NotificationType,
    Transaction,
    TransactionStatus,
)
from payments.exceptions import NotificationError

log = structlog.get_logger(__name__)

# Transaction status changes that notify the account owner
STATUS_NOTIFICATIONS = {
    TransactionStatus.completed: NotificationType.payment_success,
    TransactionStatus.failed: NotificationType.payment_failed,
    TransactionStatus.refunded: NotificationType.payment_refunded,
}

_VARIABLE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render_template(template: str | None, data: dict[str, Any]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown names are left as-is."""
    if not template:
        return ""

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        return str(data[key]) if key in data else match.group(0)

    return _VARIABLE.sub(_replace, template)


def notification_to_dict(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type.value,
        "channel": notification.channel.value,
        "user_id": notification.user_id,
        "recipient": notification.recipient,
        "subject": notification.subject,
        "content": notification.content,
        "data": notification.data or {},
        "status": notification.status.value,
        "error": notification.error,
        "attempts": notification.attempts,
        "sent_at": notification.sent_at.isoformat() if notification.sent_at else None,
        "created_at": (
            notification.created_at.isoformat() if notification.created_at else None
        ),
    }


def template_to_dict(template: NotificationTemplate) -> dict[str, Any]:
    return {
        "id": template.id,
        "type": template.type.value,
        "channel": template.channel.value,
        "subject": template.subject,
        "body": template.body,
        "enabled": template.enabled,
    }


class NotificationService:
    def __init__(self, db: Session, session: requests.Session | None = None):
        self.db = db
        self._http = session
        self.settings = get_settings_or_default()

    @property
    def http(self) -> requests.Session:
        """Only chat webhooks go over HTTP; opened on first use."""
        if self._http is None:
            self._http = requests.Session()
        return self._http

    # ------------------------------------------------------------------ templates

    def get_template(
        self, type: NotificationType, channel: NotificationChannel
    ) -> NotificationTemplate | None:
        stmt = select(NotificationTemplate).where(
            NotificationTemplate.type == type, NotificationTemplate.channel == channel
        )
        return self.db.scalars(stmt).first()

    def list_templates(
        self, type: NotificationType | None = None
    ) -> list[NotificationTemplate]:
        stmt = select(NotificationTemplate)
        if type:
            stmt = stmt.where(NotificationTemplate.type == type)
        return list(self.db.scalars(stmt.order_by(NotificationTemplate.id)))

    def create_template(
        self,
        type: NotificationType,
        channel: NotificationChannel,
        body: str,
        subject: str | None = None,
        enabled: bool = True,
    ) -> NotificationTemplate:
        template = NotificationTemplate(
            type=type, channel=channel, subject=subject, body=body, enabled=enabled
        )
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        return template

    def update_template(self, template_id: int, **updates) -> NotificationTemplate:
        template = self.db.get(NotificationTemplate, template_id)
        if template is None:
            raise NotificationError(f"Template {template_id} not found")
        for key, value in updates.items():
            if value is not None:
                setattr(template, key, value)
        self.db.commit()
        self.db.refresh(template)
        return template

    def delete_template(self, template_id: int) -> None:
        template = self.db.get(NotificationTemplate, template_id)
        if template is None:
            raise NotificationError(f"Template {template_id} not found")
        self.db.delete(template)
        self.db.commit()

    # ------------------------------------------------------------------ sending

    def send_notification(
        self,
        type: NotificationType,
        channel: NotificationChannel,
        data: dict[str, Any],
        *,
        user_id: str | None = None,
        recipient: str | None = None,
    ) -> Notification:
        """Render the template for (type, channel), persist and deliver it.

        Raises NotificationError when no enabled template exists.
        """
        template = self.get_template(type, channel)
        if template is None or not template.enabled:
            raise NotificationError(
                f"No enabled template for {type.value} on {channel.value}"
            )

        notification = Notification(
            type=type,
            channel=channel,
            user_id=user_id,
            recipient=recipient,
            subject=render_template(template.subject, data) or None,
            content=render_template(template.body, data),
            data=data,
            status=NotificationStatus.pending,
            attempts=0,
        )
        self.db.add(notification)
        self.db.commit()

        self._deliver(notification)
        return notification

    def notify(
        self,
        type: NotificationType,
        data: dict[str, Any],
        *,
        user_id: str | None = None,
        recipient: str | None = None,
    ) -> list[Notification]:
        """Send ``type`` on every channel that has an enabled template."""
        sent = []
        for template in self.list_templates(type):
            if not template.enabled:
                continue
            sent.append(
                self.send_notification(
                    type, template.channel, data, user_id=user_id, recipient=recipient
                )
            )
        return sent

    def notify_transaction(
        self, type: NotificationType, transaction: Transaction
    ) -> list[Notification]:
        customer = transaction.customer or {}
        data = {
            "transaction_id": transaction.id,
            "provider_id": transaction.provider_id,
            "order_id": transaction.order_id,
            "platform_id": transaction.platform_id,
            "amount": f"{transaction.amount:.2f}",
            "currency": transaction.currency.value,
            "status": transaction.status.value,
            "customer_name": customer.get("name", ""),
            "customer_email": customer.get("email", ""),
        }
        return self.notify(
            type, data, user_id=transaction.user_id, recipient=customer.get("email")
        )

    def _deliver(self, notification: Notification) -> None:
        notification.attempts = (notification.attempts or 0) + 1
        try:
            self._transport(notification)
        except (NotificationError, requests.RequestException) as e:
            notification.status = NotificationStatus.failed
            notification.error = str(e)
            log.warning(
                BusinessEvents.NOTIFICATION_FAILED,
                notification_id=notification.id,
                type=notification.type.value,
                channel=notification.channel.value,
                error=str(e),
            )
        else:
            notification.status = NotificationStatus.sent
            notification.error = None
            notification.sent_at = datetime.now(UTC)
            log.info(
                BusinessEvents.NOTIFICATION_SENT,
                notification_id=notification.id,
                type=notification.type.value,
                channel=notification.channel.value,
            )
        self.db.commit()

    def _transport(self, notification: Notification) -> None:
        channel = notification.channel
        if channel in (NotificationChannel.slack, NotificationChannel.discord):
            url = (
                self.settings.SLACK_WEBHOOK_URL
                if channel == NotificationChannel.slack
                else self.settings.DISCORD_WEBHOOK_URL
            )
            if not url:
                raise NotificationError(f"No webhook URL configured for {channel.value}")
            text = notification.content
            if notification.subject:
                text = f"*{notification.subject}*\n{text}"
            key = "text" if channel == NotificationChannel.slack else "content"
            response = self.http.post(url, json={key: text}, timeout=10)
            response.raise_for_status()
            return

        if channel == NotificationChannel.email and not notification.recipient:
            raise NotificationError("Email notification without recipient")
        log.info(
            "notification.delivered",
            channel=channel.value,
            sender=(
                self.settings.NOTIFICATION_FROM_EMAIL
                if channel == NotificationChannel.email
                else None
            ),
            recipient=notification.recipient,
            subject=notification.subject,
        )

    def retry_failed_notification(self, notification_id: int) -> Notification:
        notification = self.db.get(Notification, notification_id)
        if notification is None:
            raise NotificationError(f"Notification {notification_id} not found")
        if notification.status != NotificationStatus.failed:
            raise NotificationError(
                f"Notification {notification_id} is {notification.status.value}, not failed"
            )
        self._deliver(notification)
        return notification

    # ------------------------------------------------------------------ queries

    def get_notifications_by_type(
        self, type: NotificationType, limit: int = 100
    ) -> list[Notification]:
        stmt = select(Notification).where(Notification.type == type)
        return list(self.db.scalars(stmt.order_by(Notification.id.desc()).limit(limit)))

    def get_notifications_by_user(
        self, user_id: str, limit: int = 100
    ) -> list[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        return list(self.db.scalars(stmt.order_by(Notification.id.desc()).limit(limit)))

    def get_failed_notifications(self, limit: int = 100) -> list[Notification]:
        stmt = select(Notification).where(
            Notification.status == NotificationStatus.failed
        )
        return list(self.db.scalars(stmt.order_by(Notification.id.desc()).limit(limit)))

    def cleanup_old_notifications(self, days: int = 30) -> int:
        cutoff = datetime.now(UTC) - timedelta(days=days)
        result = self.db.execute(
            delete(Notification).where(Notification.created_at < cutoff)
        )
        self.db.commit()
        log.info("notification.cleanup", days=days, deleted=result.rowcount)
        return result.rowcount
