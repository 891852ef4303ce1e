"""
Fraud Scoring Service

Scores a transaction against the enabled ``fraud_rules``:

- each triggered rule adds its score
- the total maps to a risk level (low / medium / high / critical)
- the decision is driven by rule actions first, then by risk level

Every analysis is stored as a ``fraud_checks`` row and audited.
"""

import re
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.audit import AuditService
from core.logging import BusinessEvents
from core.metrics import fraud_checks_total
from db.models import (
    AuditAction,
    DeviceFingerprint,
    FraudCheck,
    FraudDecision,
    FraudRule,
    FraudRuleAction,
    FraudRuleType,
    RiskLevel,
    Transaction,
)
from payments.exceptions import FraudRuleNotFoundError, PaymentValidationError

log = structlog.get_logger(__name__)

_WINDOW = re.compile(r"^\s*(\d+)\s*([hdwm])\s*$")
_WINDOW_UNITS = {"h": 1, "d": 24, "w": 24 * 7, "m": 24 * 30}


def parse_time_window(window: str | None, default: str = "24h") -> timedelta:
    """``"6h"``, ``"2d"``, ``"1w"`` or ``"3m"`` (30-day months) as a timedelta."""
    match = _WINDOW.match(window or default)
    if not match:
        raise PaymentValidationError(f"Invalid time window: {window!r}")
    value, unit = match.groups()
    return timedelta(hours=int(value) * _WINDOW_UNITS[unit])


def calculate_risk_level(score: int) -> RiskLevel:
    if score >= 100:
        return RiskLevel.critical
    if score >= 70:
        return RiskLevel.high
    if score >= 40:
        return RiskLevel.medium
    return RiskLevel.low


def determine_action(
    risk_level: RiskLevel, triggered: list[FraudRule]
) -> FraudDecision:
    actions = {rule.action for rule in triggered}
    if FraudRuleAction.block in actions:
        return FraudDecision.blocked
    if FraudRuleAction.review in actions:
        return FraudDecision.reviewed
    return {
        RiskLevel.critical: FraudDecision.blocked,
        RiskLevel.high: FraudDecision.reviewed,
        RiskLevel.medium: FraudDecision.flagged,
    }.get(risk_level, FraudDecision.allowed)


def rule_to_dict(rule: FraudRule) -> dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "rule_type": rule.rule_type.value,
        "conditions": rule.conditions or {},
        "score": rule.score,
        "action": rule.action.value,
        "enabled": rule.enabled,
    }


def check_to_dict(check: FraudCheck) -> dict[str, Any]:
    return {
        "id": check.id,
        "transaction_id": check.transaction_id,
        "user_id": check.user_id,
        "platform_id": check.platform_id,
        "risk_score": check.risk_score,
        "risk_level": check.risk_level.value,
        "action": check.action.value,
        "rules_triggered": check.rules_triggered or [],
        "details": check.details or {},
        "created_at": check.created_at.isoformat() if check.created_at else None,
    }


class FraudService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------ rules

    def get_rule(self, rule_id: int) -> FraudRule:
        rule = self.db.get(FraudRule, rule_id)
        if rule is None:
            raise FraudRuleNotFoundError(f"Fraud rule {rule_id} not found")
        return rule

    def list_rules(self, enabled_only: bool = False) -> list[FraudRule]:
        stmt = select(FraudRule)
        if enabled_only:
            stmt = stmt.where(FraudRule.enabled.is_(True))
        return list(self.db.scalars(stmt.order_by(FraudRule.score.desc(), FraudRule.id)))

    def create_rule(
        self,
        name: str,
        rule_type: FraudRuleType,
        conditions: dict[str, Any],
        score: int,
        action: FraudRuleAction = FraudRuleAction.flag,
        description: str | None = None,
        enabled: bool = True,
    ) -> FraudRule:
        rule = FraudRule(
            name=name,
            description=description,
            rule_type=rule_type,
            conditions=conditions,
            score=score,
            action=action,
            enabled=enabled,
        )
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        log.info("fraud.rule_created", rule_id=rule.id, name=name, score=score)
        return rule

    def update_rule(self, rule_id: int, **updates) -> FraudRule:
        rule = self.get_rule(rule_id)
        for key, value in updates.items():
            if value is not None:
                setattr(rule, key, value)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def delete_rule(self, rule_id: int) -> None:
        rule = self.get_rule(rule_id)
        self.db.delete(rule)
        self.db.commit()

    # ------------------------------------------------------------------ analysis

    def analyze_transaction(
        self,
        transaction: Transaction,
        fingerprint: dict[str, Any] | None = None,
    ) -> FraudCheck:
        fingerprint = fingerprint or {}
        triggered: list[FraudRule] = []
        for rule in self.list_rules(enabled_only=True):
            if self.evaluate_rule(rule, transaction, fingerprint):
                triggered.append(rule)

        score = sum(rule.score for rule in triggered)
        risk_level = calculate_risk_level(score)
        action = determine_action(risk_level, triggered)

        check = FraudCheck(
            transaction_id=transaction.id,
            user_id=transaction.user_id,
            platform_id=transaction.platform_id,
            risk_score=score,
            risk_level=risk_level,
            action=action,
            rules_triggered=[rule.id for rule in triggered],
            details={
                "device_fingerprint": fingerprint,
                "triggered_rules": [
                    {
                        "id": rule.id,
                        "name": rule.name,
                        "score": rule.score,
                        "action": rule.action.value,
                    }
                    for rule in triggered
                ],
            },
        )
        self.db.add(check)
        self.db.commit()
        self.db.refresh(check)

        fraud_checks_total.labels(action=action.value).inc()
        log.info(
            BusinessEvents.FRAUD_CHECK,
            transaction_id=transaction.id,
            platform_id=transaction.platform_id,
            risk_score=score,
            risk_level=risk_level.value,
            action=action.value,
            rules_triggered=len(triggered),
        )
        AuditService(self.db).log(
            AuditAction.payment_fraud_check,
            "transaction",
            transaction.id,
            {"risk_level": risk_level.value, "action": action.value, "risk_score": score},
            user_id=transaction.user_id,
            platform_id=transaction.platform_id,
        )

        if transaction.user_id and fingerprint.get("ip_address"):
            self.save_fingerprint(transaction.user_id, **fingerprint)
        return check

    def evaluate_rule(
        self,
        rule: FraudRule,
        transaction: Transaction,
        fingerprint: dict[str, Any],
    ) -> bool:
        evaluators = {
            FraudRuleType.transaction: self._transaction_rule,
            FraudRuleType.user: self._user_rule,
            FraudRuleType.device: self._device_rule,
            FraudRuleType.location: self._location_rule,
            FraudRuleType.pattern: self._pattern_rule,
        }
        try:
            return evaluators[rule.rule_type](
                rule.conditions or {}, transaction, fingerprint
            )
        except Exception as e:
            log.error(
                "fraud.rule_failed",
                rule_id=rule.id,
                transaction_id=transaction.id,
                error=str(e),
            )
            return False

    def _transaction_rule(self, conditions, transaction, fingerprint) -> bool:
        threshold = conditions.get("amount_threshold")
        if threshold and Decimal(str(transaction.amount)) > Decimal(str(threshold)):
            return True
        currencies = conditions.get("currencies")
        if currencies and transaction.currency.value not in currencies:
            return True
        methods = conditions.get("payment_methods")
        if methods:
            method = transaction.payment_method.value if transaction.payment_method else None
            if method not in methods:
                return True
        return False

    def _user_rule(self, conditions, transaction, fingerprint) -> bool:
        if not transaction.user_id:
            return False
        since = datetime.now(UTC) - parse_time_window(conditions.get("time_window"), "24h")
        count, total = self.db.execute(
            select(func.count(Transaction.id), func.coalesce(func.sum(Transaction.amount), 0))
            .where(Transaction.user_id == transaction.user_id)
            .where(Transaction.created_at >= since)
        ).one()

        max_transactions = conditions.get("max_transactions")
        if max_transactions and count >= max_transactions:
            return True
        max_total = conditions.get("max_total_amount")
        if max_total and Decimal(str(total)) >= Decimal(str(max_total)):
            return True
        return False

    def _device_rule(self, conditions, transaction, fingerprint) -> bool:
        user_id = fingerprint.get("user_id") or transaction.user_id
        if not user_id:
            return False
        if conditions.get("known_devices"):
            known = self.db.scalar(
                select(func.count(DeviceFingerprint.id)).where(
                    DeviceFingerprint.user_id == user_id,
                    DeviceFingerprint.ip_address == fingerprint.get("ip_address"),
                )
            )
            if not known:
                return True
        max_devices = conditions.get("max_devices")
        if max_devices:
            distinct_ips = self.db.scalar(
                select(func.count(func.distinct(DeviceFingerprint.ip_address))).where(
                    DeviceFingerprint.user_id == user_id
                )
            )
            if distinct_ips >= max_devices:
                return True
        return False

    def _location_rule(self, conditions, transaction, fingerprint) -> bool:
        country = (fingerprint.get("country") or "").upper()
        blocked = [c.upper() for c in conditions.get("blocked_countries") or []]
        return bool(country) and country in blocked

    def _pattern_rule(self, conditions, transaction, fingerprint) -> bool:
        limit = conditions.get("max_similar_transactions")
        if not limit:
            return False
        since = datetime.now(UTC) - parse_time_window(conditions.get("time_window"), "1h")
        stmt = select(func.count(Transaction.id)).where(Transaction.created_at >= since)
        if conditions.get("same_amount"):
            stmt = stmt.where(Transaction.amount == transaction.amount)
        if conditions.get("same_currency"):
            stmt = stmt.where(Transaction.currency == transaction.currency)
        if conditions.get("same_payment_method"):
            stmt = stmt.where(Transaction.payment_method == transaction.payment_method)
        return self.db.scalar(stmt) >= limit

    # ------------------------------------------------------------------ fingerprints

    def save_fingerprint(
        self,
        user_id: str,
        ip_address: str,
        user_agent: str | None = None,
        device_id: str | None = None,
        country: str | None = None,
        **_: Any,
    ) -> DeviceFingerprint:
        stmt = select(DeviceFingerprint).where(
            DeviceFingerprint.user_id == user_id,
            DeviceFingerprint.ip_address == ip_address,
        )
        fingerprint = self.db.scalars(stmt).first()
        if fingerprint is None:
            fingerprint = DeviceFingerprint(user_id=user_id, ip_address=ip_address)
            self.db.add(fingerprint)
        fingerprint.user_agent = user_agent or fingerprint.user_agent
        fingerprint.device_id = device_id or fingerprint.device_id
        fingerprint.country = country or fingerprint.country
        fingerprint.last_seen_at = datetime.now(UTC)
        self.db.commit()
        self.db.refresh(fingerprint)
        return fingerprint

    def get_fingerprints(
        self,
        user_id: str | None = None,
        ip_address: str | None = None,
        limit: int = 100,
    ) -> list[DeviceFingerprint]:
        stmt = select(DeviceFingerprint)
        if user_id:
            stmt = stmt.where(DeviceFingerprint.user_id == user_id)
        if ip_address:
            stmt = stmt.where(DeviceFingerprint.ip_address == ip_address)
        return list(self.db.scalars(stmt.order_by(DeviceFingerprint.id.desc()).limit(limit)))

    # ------------------------------------------------------------------ reporting

    def get_fraud_checks(
        self,
        *,
        transaction_id: int | None = None,
        user_id: str | None = None,
        platform_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int | None = 100,
    ) -> list[FraudCheck]:
        stmt = select(FraudCheck)
        if transaction_id:
            stmt = stmt.where(FraudCheck.transaction_id == transaction_id)
        if user_id:
            stmt = stmt.where(FraudCheck.user_id == user_id)
        if platform_id:
            stmt = stmt.where(FraudCheck.platform_id == platform_id)
        if start_date:
            stmt = stmt.where(FraudCheck.created_at >= start_date)
        if end_date:
            stmt = stmt.where(FraudCheck.created_at <= end_date)
        stmt = stmt.order_by(FraudCheck.created_at.desc(), FraudCheck.id.desc())
        if limit:
            stmt = stmt.limit(limit)
        return list(self.db.scalars(stmt))

    def generate_fraud_report(
        self,
        start_date: datetime,
        end_date: datetime,
        platform_id: str | None = None,
    ) -> dict[str, Any]:
        checks = self.get_fraud_checks(
            platform_id=platform_id, start_date=start_date, end_date=end_date, limit=None
        )
        total = len(checks)
        counts = {decision: 0 for decision in FraudDecision}
        risk_levels: dict[str, int] = {}
        rules: dict[str, int] = {}
        for check in checks:
            counts[check.action] += 1
            risk_levels[check.risk_level.value] = risk_levels.get(check.risk_level.value, 0) + 1
            for rule_id in check.rules_triggered or []:
                rules[str(rule_id)] = rules.get(str(rule_id), 0) + 1

        def rate(n: int) -> float:
            return n / total * 100 if total else 0.0

        return {
            "period": {"start": start_date.isoformat(), "end": end_date.isoformat()},
            "summary": {
                "total_checks": total,
                "blocked_transactions": counts[FraudDecision.blocked],
                "flagged_transactions": counts[FraudDecision.flagged],
                "reviewed_transactions": counts[FraudDecision.reviewed],
                "allowed_transactions": counts[FraudDecision.allowed],
                "block_rate": rate(counts[FraudDecision.blocked]),
                "flag_rate": rate(counts[FraudDecision.flagged]),
                "review_rate": rate(counts[FraudDecision.reviewed]),
            },
            "risk_level_distribution": risk_levels,
            "triggered_rules": rules,
        }
