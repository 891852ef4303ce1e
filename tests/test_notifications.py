"""Tests for notification templates, delivery and retries."""

from unittest.mock import MagicMock

import pytest
import requests

from core.settings import Settings
from db.models import NotificationChannel, NotificationStatus, NotificationType
from payments.exceptions import NotificationError
from payments.notifications import NotificationService, render_template


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def service(test_db_session, http):
    service = NotificationService(test_db_session, session=http)
    service.settings = Settings(DATABASE_URL="sqlite:///:memory:")
    return service


def with_webhooks(service, **urls):
    service.settings = Settings(DATABASE_URL="sqlite:///:memory:", **urls)


def test_render_template():
    data = {"amount": "97.00", "currency": "BRL", "order_id": "ORD-1"}
    assert render_template("{{amount}} {{ currency }} for {{order_id}}", data) == "97.00 BRL for ORD-1"
    assert render_template("Hi {{name}}", data) == "Hi {{name}}"
    assert render_template(None, data) == ""


def test_email_from_template(service):
    service.create_template(
        NotificationType.payment_success,
        NotificationChannel.email,
        body="Order {{order_id}} paid",
        subject="Payment received",
    )

    notification = service.send_notification(
        NotificationType.payment_success,
        NotificationChannel.email,
        {"order_id": "ORD-1"},
        user_id="user-1",
        recipient="ana@example.com",
    )

    assert notification.status == NotificationStatus.sent
    assert notification.subject == "Payment received"
    assert notification.content == "Order ORD-1 paid"
    assert notification.attempts == 1
    assert notification.sent_at is not None


def test_email_does_not_open_http_session(test_db_session, monkeypatch):
    opened = MagicMock()
    monkeypatch.setattr("payments.notifications.requests.Session", opened)
    service = NotificationService(test_db_session)
    service.create_template(NotificationType.payment_success, NotificationChannel.email, body="x")

    notification = service.send_notification(
        NotificationType.payment_success,
        NotificationChannel.email,
        {},
        recipient="ana@example.com",
    )

    assert notification.status == NotificationStatus.sent
    opened.assert_not_called()


def test_email_needs_recipient(service):
    service.create_template(NotificationType.payment_success, NotificationChannel.email, body="x")
    notification = service.send_notification(
        NotificationType.payment_success, NotificationChannel.email, {}
    )
    assert notification.status == NotificationStatus.failed
    assert "recipient" in notification.error


def test_missing_or_disabled_template(service):
    with pytest.raises(NotificationError):
        service.send_notification(NotificationType.payment_failed, NotificationChannel.sms, {})

    service.create_template(
        NotificationType.payment_failed, NotificationChannel.sms, body="x", enabled=False
    )
    with pytest.raises(NotificationError):
        service.send_notification(NotificationType.payment_failed, NotificationChannel.sms, {})


def test_slack_without_url_fails(service, http):
    service.create_template(NotificationType.platform_error, NotificationChannel.slack, body="down")

    notification = service.send_notification(
        NotificationType.platform_error, NotificationChannel.slack, {}
    )

    assert notification.status == NotificationStatus.failed
    assert "slack" in notification.error
    http.post.assert_not_called()


def test_slack_posts_to_webhook(service, http):
    with_webhooks(service, SLACK_WEBHOOK_URL="https://hooks.slack.test/T1")
    service.create_template(
        NotificationType.platform_error,
        NotificationChannel.slack,
        subject="{{platform_id}} is down",
        body="Error rate {{error_rate}}",
    )

    notification = service.send_notification(
        NotificationType.platform_error,
        NotificationChannel.slack,
        {"platform_id": "kiwify-main", "error_rate": "1.0"},
    )

    assert notification.status == NotificationStatus.sent
    http.post.assert_called_once_with(
        "https://hooks.slack.test/T1",
        json={"text": "*kiwify-main is down*\nError rate 1.0"},
        timeout=10,
    )


def test_discord_uses_content_key(service, http):
    with_webhooks(service, DISCORD_WEBHOOK_URL="https://discord.test/api/webhooks/1")
    service.create_template(NotificationType.webhook_error, NotificationChannel.discord, body="failed")

    service.send_notification(NotificationType.webhook_error, NotificationChannel.discord, {})

    assert http.post.call_args.kwargs["json"] == {"content": "failed"}


def test_http_error_marks_failed_then_retry(service, http):
    with_webhooks(service, SLACK_WEBHOOK_URL="https://hooks.slack.test/T1")
    service.create_template(NotificationType.platform_error, NotificationChannel.slack, body="down")
    http.post.side_effect = requests.ConnectionError("refused")

    notification = service.send_notification(
        NotificationType.platform_error, NotificationChannel.slack, {}
    )
    assert notification.status == NotificationStatus.failed
    assert service.get_failed_notifications() == [notification]

    http.post.side_effect = None
    retried = service.retry_failed_notification(notification.id)

    assert retried.status == NotificationStatus.sent
    assert retried.error is None
    assert retried.attempts == 2
    assert service.get_failed_notifications() == []


def test_retry_rejects_sent_or_unknown(service):
    service.create_template(NotificationType.payment_success, NotificationChannel.push, body="ok")
    notification = service.send_notification(
        NotificationType.payment_success, NotificationChannel.push, {}
    )
    with pytest.raises(NotificationError, match="not failed"):
        service.retry_failed_notification(notification.id)
    with pytest.raises(NotificationError):
        service.retry_failed_notification(999)


def test_notify_every_enabled_channel(service):
    service.create_template(NotificationType.payment_refunded, NotificationChannel.email, body="a")
    service.create_template(NotificationType.payment_refunded, NotificationChannel.sms, body="b")
    service.create_template(
        NotificationType.payment_refunded, NotificationChannel.push, body="c", enabled=False
    )

    sent = service.notify(
        NotificationType.payment_refunded, {}, user_id="user-1", recipient="ana@example.com"
    )

    assert [n.channel for n in sent] == [NotificationChannel.email, NotificationChannel.sms]
    assert len(service.get_notifications_by_user("user-1")) == 2
    assert len(service.get_notifications_by_type(NotificationType.payment_refunded)) == 2
    assert service.notify(NotificationType.subscription_created, {}) == []


def test_template_updates(service):
    template = service.create_template(
        NotificationType.payment_failed, NotificationChannel.email, body="old"
    )
    service.update_template(template.id, body="new", subject=None)
    assert service.get_template(NotificationType.payment_failed, NotificationChannel.email).body == "new"

    service.delete_template(template.id)
    assert service.list_templates() == []
    with pytest.raises(NotificationError):
        service.update_template(template.id, body="again")


def test_cleanup_keeps_recent(service):
    service.create_template(NotificationType.payment_success, NotificationChannel.push, body="ok")
    service.send_notification(NotificationType.payment_success, NotificationChannel.push, {})
    assert service.cleanup_old_notifications(days=30) == 0
