"""
Database Seed Module

Default fraud rules and notification templates for a fresh installation.
Seeding is idempotent: rows are only added when their table is empty.
"""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import (
    FraudRule,
    FraudRuleAction,
    FraudRuleType,
    NotificationChannel,
    NotificationTemplate,
    NotificationType,
)

DEFAULT_FRAUD_RULES = [
    {
        "name": "High value transaction",
        "description": "Single payment above 5000",
        "rule_type": FraudRuleType.transaction,
        "conditions": {"amount_threshold": 5000},
        "score": 40,
        "action": FraudRuleAction.review,
    },
    {
        "name": "Burst of purchases",
        "description": "Five or more payments from one user in an hour",
        "rule_type": FraudRuleType.user,
        "conditions": {"max_transactions": 5, "time_window": "1h"},
        "score": 50,
        "action": FraudRuleAction.flag,
    },
    {
        "name": "Daily spend limit",
        "description": "10000 or more spent by one user in a day",
        "rule_type": FraudRuleType.user,
        "conditions": {"max_total_amount": 10000, "time_window": "24h"},
        "score": 40,
        "action": FraudRuleAction.review,
    },
    {
        "name": "Many devices",
        "description": "User seen from three or more addresses",
        "rule_type": FraudRuleType.device,
        "conditions": {"max_devices": 3},
        "score": 30,
        "action": FraudRuleAction.flag,
    },
    {
        "name": "Repeated identical payments",
        "description": "Same amount and currency three times within an hour",
        "rule_type": FraudRuleType.pattern,
        "conditions": {
            "same_amount": True,
            "same_currency": True,
            "max_similar_transactions": 3,
            "time_window": "1h",
        },
        "score": 70,
        "action": FraudRuleAction.block,
    },
]

DEFAULT_TEMPLATES = [
    (
        NotificationType.payment_success,
        NotificationChannel.email,
        "Payment received: {{order_id}}",
        "Hi {{customer_name}}, we received your payment of {{amount}} {{currency}}.",
    ),
    (
        NotificationType.payment_failed,
        NotificationChannel.email,
        "Payment failed: {{order_id}}",
        "Hi {{customer_name}}, your payment of {{amount}} {{currency}} could not be processed.",
    ),
    (
        NotificationType.payment_refunded,
        NotificationChannel.email,
        "Refund issued: {{order_id}}",
        "Hi {{customer_name}}, {{amount}} {{currency}} was refunded to you.",
    ),
    (
        NotificationType.payment_chargeback,
        NotificationChannel.slack,
        None,
        "Chargeback on {{platform_id}}: transaction {{transaction_id}} ({{amount}} {{currency}})",
    ),
    (
        NotificationType.platform_error,
        NotificationChannel.slack,
        None,
        "Platform {{platform_id}} reported an error: {{error}}",
    ),
]


def _is_empty(session: Session, model) -> bool:
    return session.scalar(select(func.count()).select_from(model)) == 0


def seed_fraud_rules(session: Session) -> int:
    if not _is_empty(session, FraudRule):
        return 0
    session.add_all(FraudRule(enabled=True, **rule) for rule in DEFAULT_FRAUD_RULES)
    session.commit()
    return len(DEFAULT_FRAUD_RULES)


def seed_notification_templates(session: Session) -> int:
    if not _is_empty(session, NotificationTemplate):
        return 0
    session.add_all(
        NotificationTemplate(
            type=type_, channel=channel, subject=subject, body=body, enabled=True
        )
        for type_, channel, subject, body in DEFAULT_TEMPLATES
    )
    session.commit()
    return len(DEFAULT_TEMPLATES)


def seed_defaults(session: Session) -> dict[str, int]:
    """Seed fraud rules and templates; returns how many of each were added."""
    return {
        "fraud_rules": seed_fraud_rules(session),
        "notification_templates": seed_notification_templates(session),
    }
