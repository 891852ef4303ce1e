"""create payment hub tables

Revision ID: 0001_payment_hub
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_payment_hub"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

PLATFORMS = (
    "appmax", "cartpanda", "clickbank", "digistore24", "doppus", "fortpay",
    "hubla", "kiwify", "logzz", "maxweb", "mercadopago", "mundpay", "nitro",
    "pagtrust", "pepper", "shopify", "strivpay", "systeme", "ticto", "tray",
    "twispay", "vindi", "woocommerce", "yapay",
)
TRANSACTION_STATUSES = (
    "pending", "processing", "completed", "failed", "refunded", "cancelled",
    "inactive", "active", "error", "unknown",
)
CURRENCIES = ("BRL", "USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY", "INR")
PAYMENT_METHODS = (
    "credit_card", "debit_card", "pix", "boleto", "bank_transfer", "wallet",
    "crypto", "cash", "other",
)
AUDIT_ACTIONS = (
    "payment.created", "payment.updated", "payment.deleted", "payment.processed",
    "payment.refunded", "payment.cancelled", "payment.fraud_check",
    "payment.reconciliation", "payment.reconciliation.resolved",
    "platform.integrated", "platform.updated", "platform.deleted",
    "webhook.received", "webhook.processed", "config.updated", "api.request",
)
NOTIFICATION_TYPES = (
    "payment.success", "payment.failed", "payment.refunded", "payment.chargeback",
    "subscription.created", "subscription.cancelled", "platform.error",
    "platform.status", "webhook.error",
)


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name)


def _created_at(index: bool = False) -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), index=index)


def upgrade() -> None:
    op.create_table(
        "payment_platforms",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("platform_id", sa.String(100), nullable=False, unique=True, index=True),
        sa.Column("user_id", sa.String(100), index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("platform_type", _enum("paymentplatform", *PLATFORMS), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(100), index=True),
        sa.Column("platform_id", sa.String(100), nullable=False, index=True),
        sa.Column(
            "platform_type",
            _enum("paymentplatform", *PLATFORMS),
            nullable=False,
        ),
        sa.Column("provider_id", sa.String(255), index=True),
        sa.Column("order_id", sa.String(255), index=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", _enum("currency", *CURRENCIES), nullable=False),
        sa.Column(
            "status", _enum("transactionstatus", *TRANSACTION_STATUSES), nullable=False
        ),
        sa.Column("customer", sa.JSON(), nullable=False),
        sa.Column("payment_method", _enum("paymentmethod", *PAYMENT_METHODS)),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_index(
        "ix_transactions_platform_status", "transactions", ["platform_id", "status"]
    )
    op.create_index(
        "ix_transactions_platform_provider", "transactions", ["platform_id", "provider_id"]
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("action", _enum("auditaction", *AUDIT_ACTIONS), nullable=False, index=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(100), nullable=False),
        sa.Column("user_id", sa.String(100), index=True),
        sa.Column("platform_id", sa.String(100), index=True),
        sa.Column("changes", sa.JSON(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("ip_address", sa.String(64)),
        sa.Column("user_agent", sa.String(255)),
        _created_at(index=True),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])

    op.create_table(
        "fraud_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column(
            "rule_type",
            _enum("fraudruletype", "transaction", "user", "device", "location", "pattern"),
            nullable=False,
        ),
        sa.Column("conditions", sa.JSON(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("action", _enum("fraudruleaction", "flag", "block", "review"), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "fraud_checks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id", sa.Integer(), sa.ForeignKey("transactions.id"), index=True
        ),
        sa.Column("user_id", sa.String(100), index=True),
        sa.Column("platform_id", sa.String(100), index=True),
        sa.Column("risk_score", sa.Integer(), nullable=False),
        sa.Column(
            "risk_level",
            _enum("risklevel", "low", "medium", "high", "critical"),
            nullable=False,
        ),
        sa.Column(
            "action",
            _enum("frauddecision", "allowed", "flagged", "reviewed", "blocked"),
            nullable=False,
        ),
        sa.Column("rules_triggered", sa.JSON(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        _created_at(index=True),
    )

    op.create_table(
        "device_fingerprints",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=False),
        sa.Column("user_agent", sa.String(255)),
        sa.Column("device_id", sa.String(255)),
        sa.Column("country", sa.String(2)),
        _created_at(),
        sa.Column("last_seen_at", sa.DateTime(timezone=True)),
    )
    op.create_index(
        "ix_device_fingerprints_user_ip", "device_fingerprints", ["user_id", "ip_address"]
    )

    op.create_table(
        "payment_reconciliations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("platform_id", sa.String(100), index=True),
        sa.Column(
            "status",
            _enum("reconciliationstatus", "pending", "matched", "mismatched", "resolved"),
            nullable=False,
            index=True,
        ),
        sa.Column("local_data", sa.JSON(), nullable=False),
        sa.Column("platform_data", sa.JSON()),
        sa.Column("differences", sa.JSON(), nullable=False),
        sa.Column("resolution", sa.String(255)),
        sa.Column("error", sa.Text()),
        sa.Column("reconciled_at", sa.DateTime(timezone=True)),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("platform_id", sa.String(100), nullable=False, index=True),
        sa.Column("event_type", sa.String(100)),
        sa.Column(
            "category",
            _enum("webhookcategory", "payment", "subscription", "customer", "unknown"),
            nullable=False,
        ),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("signature", sa.String(512)),
        sa.Column(
            "status",
            _enum("webhookstatus", "received", "processed", "failed"),
            nullable=False,
            index=True,
        ),
        sa.Column("error", sa.Text()),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        _created_at(index=True),
    )

    channels = ("email", "sms", "push", "slack", "discord")
    op.create_table(
        "notification_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", _enum("notificationtype", *NOTIFICATION_TYPES), nullable=False),
        sa.Column("channel", _enum("notificationchannel", *channels), nullable=False),
        sa.Column("subject", sa.String(255)),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("type", "channel"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "type",
            _enum("notificationtype", *NOTIFICATION_TYPES),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "channel",
            _enum("notificationchannel", *channels),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(100), index=True),
        sa.Column("recipient", sa.String(255)),
        sa.Column("subject", sa.String(255)),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            _enum("notificationstatus", "pending", "sent", "failed"),
            nullable=False,
            index=True,
        ),
        sa.Column("error", sa.Text()),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        _created_at(index=True),
    )

    op.create_table(
        "platform_status",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("platform_id", sa.String(100), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("error_rate", sa.Float(), nullable=False),
        sa.Column("response_time", sa.Float()),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("last_checked", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "platform_metrics",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("platform_id", sa.String(100), nullable=False, index=True),
        sa.Column("total_transactions", sa.Integer(), nullable=False),
        sa.Column("total_volume", sa.Numeric(14, 2), nullable=False),
        sa.Column("success_rate", sa.Float(), nullable=False),
        sa.Column("average_value", sa.Float(), nullable=False),
        sa.Column("refund_rate", sa.Float(), nullable=False),
        sa.Column("chargeback_rate", sa.Float(), nullable=False),
        _created_at(index=True),
    )

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "report_type",
            _enum("reporttype", "transactions", "reconciliation", "metrics"),
            nullable=False,
        ),
        sa.Column("format", _enum("reportformat", "csv", "json", "pdf"), nullable=False),
        sa.Column("filters", sa.JSON(), nullable=False),
        sa.Column("file_path", sa.String(512)),
        sa.Column("row_count", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(100)),
        _created_at(),
    )

    op.create_table(
        "utm_links",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(100), index=True),
        sa.Column("base_url", sa.String(1024), nullable=False),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("source", sa.String(255), nullable=False),
        sa.Column("medium", sa.String(255), nullable=False),
        sa.Column("campaign", sa.String(255), nullable=False),
        sa.Column("term", sa.String(255)),
        sa.Column("content", sa.String(255)),
        sa.Column("clicks", sa.Integer(), nullable=False),
        _created_at(),
    )


def downgrade() -> None:
    for table in (
        "utm_links",
        "reports",
        "platform_metrics",
        "platform_status",
        "notifications",
        "notification_templates",
        "webhook_events",
        "payment_reconciliations",
        "device_fingerprints",
        "fraud_checks",
        "fraud_rules",
        "audit_logs",
        "transactions",
        "payment_platforms",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_name in (
        "paymentplatform",
        "currency",
        "transactionstatus",
        "paymentmethod",
        "auditaction",
        "fraudruletype",
        "fraudruleaction",
        "risklevel",
        "frauddecision",
        "reconciliationstatus",
        "webhookcategory",
        "webhookstatus",
        "notificationtype",
        "notificationchannel",
        "notificationstatus",
        "reporttype",
        "reportformat",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
