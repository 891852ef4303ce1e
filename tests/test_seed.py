"""Tests for default fraud rules and notification templates."""

from db.models import FraudRule, NotificationTemplate, NotificationType
from db.seed import DEFAULT_FRAUD_RULES, DEFAULT_TEMPLATES, seed_defaults
from payments.fraud import FraudService
from payments.notifications import NotificationService


def test_seed_defaults_is_idempotent(test_db_session):
    assert seed_defaults(test_db_session) == {
        "fraud_rules": len(DEFAULT_FRAUD_RULES),
        "notification_templates": len(DEFAULT_TEMPLATES),
    }
    assert seed_defaults(test_db_session) == {"fraud_rules": 0, "notification_templates": 0}

    assert test_db_session.query(FraudRule).count() == len(DEFAULT_FRAUD_RULES)
    assert test_db_session.query(NotificationTemplate).count() == len(DEFAULT_TEMPLATES)


def test_seeded_rules_are_usable(test_db_session):
    seed_defaults(test_db_session)

    rules = FraudService(test_db_session).list_rules(enabled_only=True)

    assert len(rules) == len(DEFAULT_FRAUD_RULES)
    assert rules[0].name == "Repeated identical payments"


def test_seeded_templates_render(test_db_session):
    seed_defaults(test_db_session)

    templates = NotificationService(test_db_session).list_templates(
        NotificationType.payment_refunded
    )

    assert [t.subject for t in templates] == ["Refund issued: {{order_id}}"]
