"""
Database Models Module

This module defines SQLAlchemy ORM models for:
- Payment platform integrations
- Transactions
- Audit logs
- Fraud rules, checks and device fingerprints
- Reconciliation items
- Webhook events
- Notifications and templates
- Platform status and metrics snapshots
- Reports and UTM links
"""

from datetime import UTC, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow():
    return datetime.now(UTC)


def _enum_values(enum_cls):
    # Persist dotted enum values ("payment.refunded") instead of member names
    return [member.value for member in enum_cls]


class TransactionStatus(PyEnum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"
    cancelled = "cancelled"
    inactive = "inactive"
    active = "active"
    error = "error"
    unknown = "unknown"


class Currency(PyEnum):
    BRL = "BRL"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    CAD = "CAD"
    AUD = "AUD"
    CHF = "CHF"
    CNY = "CNY"
    INR = "INR"


class PaymentPlatform(PyEnum):
    appmax = "appmax"
    cartpanda = "cartpanda"
    clickbank = "clickbank"
    digistore24 = "digistore24"
    doppus = "doppus"
    fortpay = "fortpay"
    hubla = "hubla"
    kiwify = "kiwify"
    logzz = "logzz"
    maxweb = "maxweb"
    mercadopago = "mercadopago"
    mundpay = "mundpay"
    nitro = "nitro"
    pagtrust = "pagtrust"
    pepper = "pepper"
    shopify = "shopify"
    strivpay = "strivpay"
    systeme = "systeme"
    ticto = "ticto"
    tray = "tray"
    twispay = "twispay"
    vindi = "vindi"
    woocommerce = "woocommerce"
    yapay = "yapay"


class PaymentMethod(PyEnum):
    credit_card = "credit_card"
    debit_card = "debit_card"
    pix = "pix"
    boleto = "boleto"
    bank_transfer = "bank_transfer"
    wallet = "wallet"
    crypto = "crypto"
    cash = "cash"
    other = "other"


class PlatformIntegration(Base):
    """A configured connection to one payment platform account."""

    __tablename__ = "payment_platforms"

    id = Column(Integer, primary_key=True)
    platform_id = Column(String(100), nullable=False, unique=True, index=True)
    user_id = Column(String(100), index=True)
    name = Column(String(255), nullable=False)
    platform_type = Column(Enum(PaymentPlatform), nullable=False)
    settings = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<PlatformIntegration(platform_id={self.platform_id}, type={self.platform_type})>"


class Transaction(Base):
    """Model representing payment transactions."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_platform_status", "platform_id", "status"),
        Index("ix_transactions_platform_provider", "platform_id", "provider_id"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(100), index=True)
    platform_id = Column(String(100), nullable=False, index=True)
    platform_type = Column(Enum(PaymentPlatform), nullable=False)
    provider_id = Column(String(255), index=True)
    order_id = Column(String(255), index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(Enum(Currency), nullable=False, default=Currency.BRL)
    status = Column(
        Enum(TransactionStatus), nullable=False, default=TransactionStatus.pending
    )
    customer = Column(JSON, nullable=False, default=dict)
    payment_method = Column(Enum(PaymentMethod))
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    fraud_checks = relationship(
        "FraudCheck", back_populates="transaction", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Transaction(id={self.id}, platform_id={self.platform_id}, status={self.status})>"


class AuditAction(PyEnum):
    """Enum for audit log actions."""

    payment_created = "payment.created"
    payment_updated = "payment.updated"
    payment_deleted = "payment.deleted"
    payment_processed = "payment.processed"
    payment_refunded = "payment.refunded"
    payment_cancelled = "payment.cancelled"
    payment_fraud_check = "payment.fraud_check"
    payment_reconciliation = "payment.reconciliation"
    payment_reconciliation_resolved = "payment.reconciliation.resolved"
    platform_integrated = "platform.integrated"
    platform_updated = "platform.updated"
    platform_deleted = "platform.deleted"
    webhook_received = "webhook.received"
    webhook_processed = "webhook.processed"
    config_updated = "config.updated"
    api_request = "api.request"


class AuditLog(Base):
    """Model for audit logs tracking payment, platform and webhook actions."""

    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_entity", "entity_type", "entity_id"),)

    id = Column(Integer, primary_key=True)
    action = Column(
        Enum(AuditAction, values_callable=_enum_values), nullable=False, index=True
    )
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(100), nullable=False)
    user_id = Column(String(100), index=True)
    platform_id = Column(String(100), index=True)
    changes = Column(JSON, nullable=False, default=dict)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    ip_address = Column(String(64))
    user_agent = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action={self.action}, entity={self.entity_type}:{self.entity_id})>"


class FraudRuleType(PyEnum):
    transaction = "transaction"
    user = "user"
    device = "device"
    location = "location"
    pattern = "pattern"


class FraudRuleAction(PyEnum):
    flag = "flag"
    block = "block"
    review = "review"


class RiskLevel(PyEnum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class FraudDecision(PyEnum):
    allowed = "allowed"
    flagged = "flagged"
    reviewed = "reviewed"
    blocked = "blocked"


class FraudRule(Base):
    __tablename__ = "fraud_rules"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    rule_type = Column(Enum(FraudRuleType), nullable=False)
    conditions = Column(JSON, nullable=False, default=dict)
    score = Column(Integer, nullable=False, default=0)
    action = Column(Enum(FraudRuleAction), nullable=False, default=FraudRuleAction.flag)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class FraudCheck(Base):
    __tablename__ = "fraud_checks"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), index=True)
    user_id = Column(String(100), index=True)
    platform_id = Column(String(100), index=True)
    risk_score = Column(Integer, nullable=False, default=0)
    risk_level = Column(Enum(RiskLevel), nullable=False)
    action = Column(Enum(FraudDecision), nullable=False)
    rules_triggered = Column(JSON, nullable=False, default=list)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    transaction = relationship("Transaction", back_populates="fraud_checks")


class DeviceFingerprint(Base):
    __tablename__ = "device_fingerprints"
    __table_args__ = (Index("ix_device_fingerprints_user_ip", "user_id", "ip_address"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(100), nullable=False)
    ip_address = Column(String(64), nullable=False)
    user_agent = Column(String(255))
    device_id = Column(String(255))
    country = Column(String(2))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    last_seen_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class ReconciliationStatus(PyEnum):
    pending = "pending"
    matched = "matched"
    mismatched = "mismatched"
    resolved = "resolved"


class ReconciliationItem(Base):
    """Outcome of comparing one local transaction with the platform's copy."""

    __tablename__ = "payment_reconciliations"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(
        Integer, ForeignKey("transactions.id"), nullable=False, unique=True
    )
    platform_id = Column(String(100), index=True)
    status = Column(
        Enum(ReconciliationStatus),
        nullable=False,
        default=ReconciliationStatus.pending,
        index=True,
    )
    local_data = Column(JSON, nullable=False, default=dict)
    platform_data = Column(JSON)
    differences = Column(JSON, nullable=False, default=list)
    resolution = Column(String(255))
    error = Column(Text)
    reconciled_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class WebhookCategory(PyEnum):
    payment = "payment"
    subscription = "subscription"
    customer = "customer"
    unknown = "unknown"


class WebhookStatus(PyEnum):
    received = "received"
    processed = "processed"
    failed = "failed"


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True)
    platform_id = Column(String(100), nullable=False, index=True)
    event_type = Column(String(100))
    category = Column(Enum(WebhookCategory), nullable=False)
    payload = Column(JSON, nullable=False)
    signature = Column(String(512))
    status = Column(
        Enum(WebhookStatus), nullable=False, default=WebhookStatus.received, index=True
    )
    error = Column(Text)
    attempts = Column(Integer, nullable=False, default=0)
    processed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)


class NotificationType(PyEnum):
    payment_success = "payment.success"
    payment_failed = "payment.failed"
    payment_refunded = "payment.refunded"
    payment_chargeback = "payment.chargeback"
    subscription_created = "subscription.created"
    subscription_cancelled = "subscription.cancelled"
    platform_error = "platform.error"
    platform_status = "platform.status"
    webhook_error = "webhook.error"


class NotificationChannel(PyEnum):
    email = "email"
    sms = "sms"
    push = "push"
    slack = "slack"
    discord = "discord"


class NotificationStatus(PyEnum):
    pending = "pending"
    sent = "sent"
    failed = "failed"


class NotificationTemplate(Base):
    __tablename__ = "notification_templates"
    __table_args__ = (UniqueConstraint("type", "channel"),)

    id = Column(Integer, primary_key=True)
    type = Column(Enum(NotificationType, values_callable=_enum_values), nullable=False)
    channel = Column(Enum(NotificationChannel), nullable=False)
    subject = Column(String(255))
    body = Column(Text, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    type = Column(
        Enum(NotificationType, values_callable=_enum_values), nullable=False, index=True
    )
    channel = Column(Enum(NotificationChannel), nullable=False)
    user_id = Column(String(100), index=True)
    recipient = Column(String(255))
    subject = Column(String(255))
    content = Column(Text, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    status = Column(
        Enum(NotificationStatus),
        nullable=False,
        default=NotificationStatus.pending,
        index=True,
    )
    error = Column(Text)
    attempts = Column(Integer, nullable=False, default=0)
    sent_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)


class PlatformStatusRecord(Base):
    __tablename__ = "platform_status"

    id = Column(Integer, primary_key=True)
    platform_id = Column(String(100), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=False)
    status = Column(String(50), nullable=False)
    error_rate = Column(Float, nullable=False, default=0.0)
    response_time = Column(Float)
    details = Column(JSON, nullable=False, default=dict)
    last_checked = Column(DateTime(timezone=True), default=_utcnow)


class PlatformMetricsSnapshot(Base):
    __tablename__ = "platform_metrics"

    id = Column(Integer, primary_key=True)
    platform_id = Column(String(100), nullable=False, index=True)
    total_transactions = Column(Integer, nullable=False, default=0)
    total_volume = Column(Numeric(14, 2), nullable=False, default=0)
    success_rate = Column(Float, nullable=False, default=0.0)
    average_value = Column(Float, nullable=False, default=0.0)
    refund_rate = Column(Float, nullable=False, default=0.0)
    chargeback_rate = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)


class ReportType(PyEnum):
    transactions = "transactions"
    reconciliation = "reconciliation"
    metrics = "metrics"


class ReportFormat(PyEnum):
    csv = "csv"
    json = "json"
    pdf = "pdf"


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True)
    report_type = Column(Enum(ReportType), nullable=False)
    format = Column(Enum(ReportFormat), nullable=False)
    filters = Column(JSON, nullable=False, default=dict)
    file_path = Column(String(512))
    row_count = Column(Integer, nullable=False, default=0)
    user_id = Column(String(100))
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class UtmLink(Base):
    """Campaign-tagged URL and its click counter."""

    __tablename__ = "utm_links"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(100), index=True)
    base_url = Column(String(1024), nullable=False)
    url = Column(String(2048), nullable=False)
    source = Column(String(255), nullable=False)
    medium = Column(String(255), nullable=False)
    campaign = Column(String(255), nullable=False)
    term = Column(String(255))
    content = Column(String(255))
    clicks = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
