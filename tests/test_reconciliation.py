"""Tests for comparing local transactions with platform records."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from core.audit import AuditService
from db.models import (
    AuditAction,
    Currency,
    PaymentMethod,
    PaymentPlatform,
    ReconciliationStatus,
    Transaction,
    TransactionStatus,
)
from payments.exceptions import TransactionNotFoundError
from payments.reconciliation import (
    ReconciliationService,
    compare_transaction,
    diff_transactions,
    sanitize_snapshot,
)
from payments.schemas import Customer, TransactionRecord
from payments.transactions import TransactionService
from tests.conftest import json_response


def local_txn(**overrides):
    fields = {
        "platform_id": "kiwify-main",
        "platform_type": PaymentPlatform.kiwify,
        "provider_id": "kw_1",
        "amount": Decimal("97.00"),
        "currency": Currency.BRL,
        "status": TransactionStatus.completed,
        "payment_method": PaymentMethod.pix,
        "customer": {},
    }
    fields.update(overrides)
    return Transaction(**fields)


def remote_record(**overrides):
    fields = {
        "provider_id": "kw_1",
        "platform_id": "kiwify-main",
        "platform_type": PaymentPlatform.kiwify,
        "amount": Decimal("97"),
        "currency": Currency.BRL,
        "status": TransactionStatus.completed,
        "payment_method": PaymentMethod.pix,
    }
    fields.update(overrides)
    return TransactionRecord(**fields)


class TestCompare:
    def test_identical(self):
        assert compare_transaction(local_txn(), remote_record()) == {}

    def test_amount_and_status_differences(self):
        differences = compare_transaction(
            local_txn(),
            remote_record(amount=Decimal("90.5"), status=TransactionStatus.refunded),
        )
        assert differences == {
            "amount": {"local": "97.00", "platform": "90.50"},
            "status": {"local": "completed", "platform": "refunded"},
        }

    def test_missing_payment_method_on_platform(self):
        differences = compare_transaction(local_txn(), remote_record(payment_method=None))
        assert differences == {"payment_method": {"local": "pix", "platform": None}}

    def test_customer_fields_compared_when_both_sides_have_one(self):
        local = local_txn(customer={"name": "Ana", "email": "ana@example.com"})

        assert compare_transaction(local, remote_record()) == {}
        differences = compare_transaction(
            local, remote_record(customer=Customer(name="Ana", email="ana@other.com"))
        )
        assert differences == {
            "customer": {"email": {"local": "ana@example.com", "platform": "ana@other.com"}}
        }

    def test_diff_listings(self):
        local = [
            local_txn(provider_id="kw_1"),
            local_txn(provider_id="kw_2", amount=Decimal("10")),
            local_txn(provider_id="kw_3", amount=Decimal("5")),
        ]
        remote = [
            remote_record(provider_id="kw_1"),
            remote_record(provider_id="kw_2", amount=Decimal("12")),
            remote_record(provider_id="kw_4", amount=Decimal("1")),
        ]

        result = diff_transactions(local, remote)

        assert result["missing_locally"] == ["kw_4"]
        assert result["missing_on_platform"] == ["kw_3"]
        assert result["reconciled"] == 1
        assert [item["provider_id"] for item in result["mismatched"]] == ["kw_2"]
        assert result["mismatched"][0]["differences"]["amount"] == {
            "local": "10.00",
            "platform": "12.00",
        }
        assert result["total_amount_difference"] == pytest.approx(2.0)


def test_sanitize_snapshot():
    snapshot = sanitize_snapshot(
        {
            "id": 1,
            "api_key": "kw_live_key",
            "platform_settings": {"secret_key": "x"},
            "metadata": {"utm_source": "google", "card_number": "4111", "platform_settings": {}},
        }
    )
    assert snapshot == {"id": 1, "metadata": {"utm_source": "google"}}


@pytest.fixture
def service(test_db_session, kiwify_integration):
    return ReconciliationService(test_db_session)


@pytest.fixture
def stored(test_db_session):
    return TransactionService(test_db_session).create(
        user_id="user-1",
        platform_id="kiwify-main",
        platform_type=PaymentPlatform.kiwify,
        provider_id="kw_1",
        order_id="ORD-1",
        amount=Decimal("97.00"),
        currency=Currency.BRL,
        status=TransactionStatus.completed,
        payment_method=PaymentMethod.pix,
        metadata={"utm_source": "google", "card_number": "4111"},
    )


PLATFORM_COPY = {
    "id": "kw_1",
    "status": "paid",
    "amount": 97,
    "currency": "BRL",
    "payment_method": "pix",
}


class TestReconcile:
    def test_matched(self, service, stored, http_session):
        http_session.request.return_value = json_response(200, PLATFORM_COPY)

        item = service.reconcile_transaction(stored)

        assert item.status == ReconciliationStatus.matched
        assert item.differences == {}
        assert item.platform_data["provider_id"] == "kw_1"
        assert "card_number" not in item.local_data["metadata"]
        url = http_session.request.call_args.args[1]
        assert url.endswith("/v1/orders/kw_1")

    def test_mismatch_is_audited(self, service, stored, http_session, test_db_session):
        http_session.request.return_value = json_response(
            200, {**PLATFORM_COPY, "status": "refunded"}
        )

        item = service.reconcile_transaction(stored)

        assert item.status == ReconciliationStatus.mismatched
        assert item.differences["status"] == {"local": "completed", "platform": "refunded"}
        assert service.get_mismatched_reconciliations() == [item]
        trail = AuditService(test_db_session).get_audit_trail("transaction", stored.id)
        assert trail[0].action == AuditAction.payment_reconciliation

    def test_platform_failure_leaves_pending(self, service, stored, http_session):
        http_session.request.return_value = json_response(500, {"message": "down"})

        item = service.reconcile_transaction(stored)

        assert item.status == ReconciliationStatus.pending
        assert "Platform unavailable" in item.error
        assert item.platform_data is None
        assert service.get_pending_reconciliations(platform_id="kiwify-main") == [item]

    def test_rerun_updates_the_same_row(self, service, stored, http_session):
        http_session.request.return_value = json_response(500, {})
        first = service.reconcile_transaction(stored)
        http_session.request.return_value = json_response(200, PLATFORM_COPY)
        second = service.reconcile_transaction(stored)

        assert second.id == first.id
        assert second.status == ReconciliationStatus.matched
        assert second.error is None

    def test_row_without_provider_id_is_not_looked_up(self, service, http_session, test_db_session):
        unsent = TransactionService(test_db_session).create(
            platform_id="kiwify-main",
            platform_type=PaymentPlatform.kiwify,
            order_id="ORD-9",
            amount=Decimal("10"),
            status=TransactionStatus.failed,
            payment_method=PaymentMethod.pix,
        )

        item = service.reconcile_transaction(unsent)

        assert item.status == ReconciliationStatus.pending
        assert item.error == "Transaction has no platform transaction id"
        assert item.platform_data is None
        http_session.request.assert_not_called()

    def test_report(self, service, stored, http_session):
        other = TransactionService(service.db).create(
            platform_id="kiwify-main",
            platform_type=PaymentPlatform.kiwify,
            provider_id="kw_2",
            amount=Decimal("10"),
            status=TransactionStatus.pending,
            payment_method=PaymentMethod.pix,
        )
        copies = {
            "kw_1": PLATFORM_COPY,
            "kw_2": {**PLATFORM_COPY, "id": "kw_2", "amount": 12, "status": "pending"},
        }
        http_session.request.side_effect = lambda method, url, **kwargs: json_response(
            200, copies[url.rsplit("/", 1)[-1]]
        )
        now = datetime.now(UTC)

        report = service.reconcile_transactions(now - timedelta(hours=1), now + timedelta(hours=1))

        summary = report["summary"]
        assert summary["total_transactions"] == 2
        assert summary["matched_transactions"] == 1
        assert summary["mismatched_transactions"] == 1
        assert summary["match_rate"] == 50.0
        assert report["discrepancies"] == [
            {
                "transaction_id": other.id,
                "platform_id": "kiwify-main",
                "type": "data_mismatch",
                "details": {"amount": {"local": "10.00", "platform": "12.00"}},
            }
        ]

    def test_compare_platform(self, service, stored, http_session):
        http_session.request.return_value = json_response(
            200, {"data": [PLATFORM_COPY, {**PLATFORM_COPY, "id": "kw_9"}]}
        )
        result = service.compare_platform("kiwify-main")

        assert result["platform_id"] == "kiwify-main"
        assert result["missing_locally"] == ["kw_9"]
        assert result["missing_on_platform"] == []
        assert result["reconciled"] == 1


class TestResolve:
    def test_resolve_with_updates(self, service, stored, http_session, test_db_session):
        http_session.request.return_value = json_response(
            200, {**PLATFORM_COPY, "status": "refunded"}
        )
        service.reconcile_transaction(stored)

        item = service.resolve_discrepancy(
            stored.id, "accepted platform status", {"status": TransactionStatus.refunded}
        )

        assert item.status == ReconciliationStatus.resolved
        assert item.resolution == "accepted platform status"
        assert test_db_session.get(Transaction, stored.id).status == TransactionStatus.refunded
        trail = AuditService(test_db_session).get_audit_trail("transaction", stored.id)
        assert trail[0].action == AuditAction.payment_reconciliation_resolved
        assert trail[0].changes == {
            "resolution": "accepted platform status",
            "updates": {"status": "refunded"},
        }

    def test_resolve_without_updates(self, service, stored, http_session):
        http_session.request.return_value = json_response(200, PLATFORM_COPY)
        service.reconcile_transaction(stored)
        item = service.resolve_discrepancy(stored.id, "checked manually")
        assert item.status == ReconciliationStatus.resolved

    def test_resolve_unknown(self, service):
        with pytest.raises(TransactionNotFoundError):
            service.resolve_discrepancy(999, "nothing to resolve")

    def test_cleanup_keeps_recent(self, service, stored, http_session):
        http_session.request.return_value = json_response(200, PLATFORM_COPY)
        service.reconcile_transaction(stored)
        assert service.cleanup_old_reconciliations(days=90) == 0
