"""
Tests for the payment platform service.

These cover the hub-level flow: integration CRUD, processing payments through
an adapter, persisting the outcome, refunds, cancellations, syncing and the
audit trail each operation leaves.
"""

import json
from decimal import Decimal

import pytest

from core.audit import AuditService
from db.models import (
    AuditAction,
    Currency,
    NotificationChannel,
    NotificationType,
    PaymentMethod,
    PaymentPlatform,
    Transaction,
    TransactionStatus,
)
from payments.exceptions import (
    PaymentValidationError,
    PlatformAPIError,
    PlatformConfigError,
    PlatformNotFoundError,
    TransactionNotFoundError,
)
from payments.integrations import adapter_for, integration_to_dict
from payments.platform_metrics import PlatformMetricsService
from payments.registry import registry
from payments.schemas import Customer, PaymentRequest
from payments.service import PaymentPlatformService
from payments.signatures import compute_signature
from tests.conftest import json_response

PAID_ORDER = {
    "id": "kw_1",
    "status": "paid",
    "amount": 97.0,
    "currency": "BRL",
    "order_id": "ORD-1001",
    "payment_method": "pix",
}


@pytest.fixture
def service(test_db_session, kiwify_integration):
    return PaymentPlatformService(test_db_session)


def payment(**overrides):
    fields = {
        "amount": Decimal("97.00"),
        "currency": Currency.BRL,
        "payment_method": PaymentMethod.pix,
        "customer": Customer(name="Ana Souza", email="ana@example.com"),
        "order_id": "ORD-1001",
        "metadata": {"utm_source": "facebook"},
    }
    fields.update(overrides)
    return PaymentRequest(**fields)


def actions(db, transaction_id):
    return [entry.action for entry in AuditService(db).get_audit_trail("transaction", transaction_id)]


class TestPlatforms:
    def test_create_platform(self, test_db_session):
        service = PaymentPlatformService(test_db_session)
        integration = service.create_platform(
            platform_id="shop-br",
            name="Shopify BR",
            platform_type=PaymentPlatform.shopify,
            settings={"api_key": "shpat_1", "shop_domain": "demo.myshopify.com"},
            user_id="user-2",
        )

        assert integration.id is not None
        assert integration.is_active is True
        entries = AuditService(test_db_session).get_platform_actions("shop-br")
        assert [entry.action for entry in entries] == [AuditAction.platform_integrated]

    def test_create_platform_checks_credentials(self, test_db_session):
        service = PaymentPlatformService(test_db_session)
        with pytest.raises(PlatformConfigError) as exc_info:
            service.create_platform(
                platform_id="shop-br",
                name="Shopify BR",
                platform_type=PaymentPlatform.shopify,
                settings={"api_key": "shpat_1"},
            )
        assert exc_info.value.missing == ["shop_domain"]
        assert service.list_platforms() == []

    def test_duplicate_platform_id(self, service):
        with pytest.raises(PaymentValidationError, match="already exists"):
            service.create_platform(
                platform_id="kiwify-main",
                name="Again",
                platform_type=PaymentPlatform.kiwify,
                settings={"api_key": "a", "secret_key": "b"},
            )

    def test_list_platforms_filters(self, service):
        service.create_platform(
            platform_id="hubla-1",
            name="Hubla",
            platform_type=PaymentPlatform.hubla,
            settings={"api_key": "a", "secret_key": "b"},
            user_id="user-2",
            is_active=False,
        )
        assert [p.platform_id for p in service.list_platforms()] == ["kiwify-main", "hubla-1"]
        assert [p.platform_id for p in service.list_platforms(user_id="user-2")] == ["hubla-1"]
        assert [p.platform_id for p in service.list_platforms(active_only=True)] == ["kiwify-main"]

    def test_get_unknown_platform(self, service):
        with pytest.raises(PlatformNotFoundError):
            service.get_platform("nope")

    def test_update_platform_invalidates_adapter(self, service, test_db_session):
        adapter = adapter_for(test_db_session, "kiwify-main")

        updated = service.update_platform(
            "kiwify-main", name="Kiwify principal", settings={"api_key": "kw_rotated"}
        )

        assert updated.name == "Kiwify principal"
        assert updated.settings["api_key"] == "kw_rotated"
        # Untouched keys survive a partial settings update
        assert updated.settings["secret_key"] == "store-123"
        assert "kiwify-main" not in registry._instances
        assert adapter_for(test_db_session, "kiwify-main") is not adapter

    def test_update_rejects_removed_credentials(self, service):
        with pytest.raises(PlatformConfigError):
            service.update_platform("kiwify-main", settings={"secret_key": ""})

    def test_inactive_platform_has_no_adapter(self, service, test_db_session):
        service.update_platform("kiwify-main", is_active=False)
        with pytest.raises(PlatformNotFoundError, match="inactive"):
            adapter_for(test_db_session, "kiwify-main")

    def test_delete_platform(self, service, test_db_session):
        service.delete_platform("kiwify-main")
        with pytest.raises(PlatformNotFoundError):
            service.get_platform("kiwify-main")
        entries = AuditService(test_db_session).get_platform_actions("kiwify-main")
        assert entries[0].action == AuditAction.platform_deleted

    def test_public_settings_hide_secrets(self, kiwify_integration):
        data = integration_to_dict(kiwify_integration)
        assert data["settings"]["api_key"] == "***"
        assert data["settings"]["secret_key"] == "***"
        assert data["settings"]["webhook_secret"] == "***"
        assert data["settings"]["sandbox"] is True


class TestProcessPayment:
    def test_success_is_persisted(self, service, http_session, test_db_session):
        http_session.request.return_value = json_response(200, PAID_ORDER)

        txn = service.process_payment("kiwify-main", payment())

        assert txn.id is not None
        assert txn.status == TransactionStatus.completed
        assert txn.provider_id == "kw_1"
        assert txn.order_id == "ORD-1001"
        assert txn.amount == Decimal("97.00")
        assert txn.user_id == "user-1"
        assert txn.platform_type == PaymentPlatform.kiwify
        assert txn.customer["email"] == "ana@example.com"
        assert txn.meta["utm_source"] == "facebook"
        assert actions(test_db_session, txn.id) == [AuditAction.payment_processed]

    def test_request_user_wins_over_integration_owner(self, service, http_session):
        http_session.request.return_value = json_response(200, PAID_ORDER)
        txn = service.process_payment("kiwify-main", payment(user_id="buyer-9"))
        assert txn.user_id == "buyer-9"

    def test_platform_error_records_failed_transaction(self, service, http_session, test_db_session):
        http_session.request.return_value = json_response(422, {"message": "Card declined"})

        with pytest.raises(PlatformAPIError):
            service.process_payment("kiwify-main", payment())

        txn = test_db_session.query(Transaction).one()
        assert txn.status == TransactionStatus.failed
        assert txn.provider_id is None
        assert "Card declined" in txn.meta["error"]
        assert actions(test_db_session, txn.id) == [AuditAction.payment_processed]

    def test_validation_error_records_nothing(self, service, http_session, test_db_session):
        with pytest.raises(PaymentValidationError):
            service.process_payment("kiwify-main", payment(amount=Decimal("0")))
        assert test_db_session.query(Transaction).count() == 0
        http_session.request.assert_not_called()

    def test_unknown_platform(self, service):
        with pytest.raises(PlatformNotFoundError):
            service.process_payment("nope", payment())

    def test_success_notifies_when_template_exists(self, service, http_session, test_db_session):
        service.notifications.create_template(
            type=NotificationType.payment_success,
            channel=NotificationChannel.email,
            subject="Payment {{order_id}}",
            body="Hi {{customer_name}}, {{amount}} {{currency}} received.",
        )
        http_session.request.return_value = json_response(200, PAID_ORDER)

        txn = service.process_payment("kiwify-main", payment())

        notifications = service.notifications.get_notifications_by_user("user-1")
        assert len(notifications) == 1
        assert notifications[0].subject == "Payment ORD-1001"
        assert notifications[0].content == "Hi Ana Souza, 97.00 BRL received."
        assert notifications[0].recipient == "ana@example.com"
        assert notifications[0].data["transaction_id"] == txn.id


@pytest.fixture
def paid(service, http_session):
    http_session.request.return_value = json_response(200, PAID_ORDER)
    txn = service.process_payment("kiwify-main", payment())
    http_session.request.reset_mock()
    return txn


class TestRefundAndCancel:
    def test_partial_refund(self, service, paid, http_session, test_db_session):
        http_session.request.return_value = json_response(200, {"id": "rf_1", "status": "approved"})

        txn = service.refund_transaction(paid.id, Decimal("20.00"), "customer request")

        method, url = http_session.request.call_args.args
        assert method == "POST"
        assert url.endswith("/v1/orders/kw_1/refund")
        assert json.loads(http_session.request.call_args.kwargs["data"]) == {
            "amount": 20.0,
            "reason": "customer request",
        }
        assert txn.status == TransactionStatus.refunded
        refund = txn.meta["refund"]
        assert refund["refund_id"] == "rf_1"
        assert refund["refund_amount"] == "20.00"
        assert refund["refund_reason"] == "customer request"
        assert AuditAction.payment_refunded in actions(test_db_session, txn.id)

    def test_full_refund_defaults_to_transaction_amount(self, service, paid, http_session):
        http_session.request.return_value = json_response(200, {})
        txn = service.refund_transaction(paid.id)
        assert Decimal(txn.meta["refund"]["refund_amount"]) == Decimal("97.00")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), Decimal("97.01")])
    def test_refund_amount_bounds(self, service, paid, amount, http_session):
        with pytest.raises(PaymentValidationError):
            service.refund_transaction(paid.id, amount)
        http_session.request.assert_not_called()

    def test_cannot_refund_twice(self, service, paid, http_session):
        http_session.request.return_value = json_response(200, {})
        service.refund_transaction(paid.id)
        with pytest.raises(PaymentValidationError, match="refunded"):
            service.refund_transaction(paid.id)

    def test_refund_needs_platform_reference(self, service, test_db_session):
        txn = service.transactions.create(
            platform_id="kiwify-main",
            platform_type=PaymentPlatform.kiwify,
            amount=Decimal("10"),
            status=TransactionStatus.completed,
        )
        with pytest.raises(PaymentValidationError, match="platform reference"):
            service.refund_transaction(txn.id)

    def test_refund_platform_error_keeps_status(self, service, paid, http_session):
        http_session.request.return_value = json_response(409, {"message": "already refunded"})
        with pytest.raises(PlatformAPIError):
            service.refund_transaction(paid.id)
        assert service.transactions.get(paid.id).status == TransactionStatus.completed

    def test_cancel(self, service, paid, http_session, test_db_session):
        http_session.request.return_value = json_response(200, {"id": "kw_1", "status": "paid"})

        txn = service.cancel_transaction(paid.id)

        assert txn.status == TransactionStatus.cancelled
        trail = AuditService(test_db_session).get_audit_trail("transaction", txn.id)
        assert trail[0].action == AuditAction.payment_cancelled
        assert trail[0].changes == {"previous_status": "completed"}

        with pytest.raises(PaymentValidationError):
            service.cancel_transaction(paid.id)

    def test_unknown_transaction(self, service):
        with pytest.raises(TransactionNotFoundError):
            service.refund_transaction(999)
        with pytest.raises(TransactionNotFoundError):
            service.cancel_transaction(999)


class TestLookupsAndSync:
    def test_get_transaction_local(self, service, paid, http_session):
        assert service.get_transaction(paid.id).id == paid.id
        http_session.request.assert_not_called()

    def test_get_transaction_refresh(self, service, paid, http_session, test_db_session):
        http_session.request.return_value = json_response(
            200, {"id": "kw_1", "status": "chargeback", "amount": 97.0}
        )

        txn = service.get_transaction(paid.id, refresh=True)

        assert txn.status == TransactionStatus.refunded
        trail = AuditService(test_db_session).get_audit_trail("transaction", txn.id)
        assert trail[0].action == AuditAction.payment_updated
        assert trail[0].changes == {"status": {"from": "completed", "to": "refunded"}}

    def test_refreshed_chargeback_counts_in_metrics(
        self, service, paid, http_session, test_db_session
    ):
        http_session.request.return_value = json_response(
            200, {"id": "kw_1", "status": "chargeback", "amount": 97.0}
        )

        txn = service.get_transaction(paid.id, refresh=True)
        snapshot = PlatformMetricsService(test_db_session).calculate_metrics("kiwify-main")

        assert txn.meta["platform_status"] == "chargeback"
        assert snapshot.refund_rate == 100.0
        assert snapshot.chargeback_rate == 100.0

    def test_get_transactions_from_platform(self, service, http_session):
        http_session.request.return_value = json_response(200, {"data": [PAID_ORDER]})
        records = service.get_transactions("kiwify-main")
        assert [r.provider_id for r in records] == ["kw_1"]

    def test_sync_creates_then_updates(self, service, http_session):
        http_session.request.return_value = json_response(
            200,
            {
                "data": [
                    PAID_ORDER,
                    {"id": "kw_2", "status": "waiting_payment", "amount": 47, "order_id": "ORD-1002"},
                ]
            },
        )

        first = service.sync_transactions("kiwify-main")
        second = service.sync_transactions("kiwify-main")

        assert first == {"platform_id": "kiwify-main", "fetched": 2, "created": 2, "updated": 0}
        assert second == {"platform_id": "kiwify-main", "fetched": 2, "created": 0, "updated": 2}
        synced = service.transactions.list_transactions(platform_id="kiwify-main")
        assert {t.provider_id for t in synced} == {"kw_1", "kw_2"}
        assert all(t.user_id == "user-1" for t in synced)

    def test_sync_matches_existing_order(self, service, paid, http_session):
        http_session.request.return_value = json_response(
            200, {"data": [{**PAID_ORDER, "status": "refunded"}]}
        )
        result = service.sync_transactions("kiwify-main")
        assert result["updated"] == 1
        assert service.transactions.get(paid.id).status == TransactionStatus.refunded

    def test_sync_keeps_separate_attempts_for_same_order(self, service, http_session):
        http_session.request.return_value = json_response(
            200,
            {
                "data": [
                    {"id": "kw_a", "status": "failed", "amount": 97, "order_id": "ORD-1"},
                    {"id": "kw_b", "status": "paid", "amount": 97, "order_id": "ORD-1"},
                ]
            },
        )

        result = service.sync_transactions("kiwify-main")

        assert result["created"] == 2
        assert result["updated"] == 0
        synced = service.transactions.list_transactions(order_id="ORD-1")
        assert {t.provider_id: t.status for t in synced} == {
            "kw_a": TransactionStatus.failed,
            "kw_b": TransactionStatus.completed,
        }

    def test_get_status(self, service, http_session):
        http_session.request.return_value = json_response(200, {"status": "active"})
        assert service.get_status("kiwify-main").is_active is True

    def test_validate_webhook_signature(self, service):
        body = b'{"event":"order.paid"}'
        assert service.validate_webhook_signature(
            "kiwify-main", compute_signature("whsec_kiwify", body), body
        )
        assert not service.validate_webhook_signature("kiwify-main", "bad", body)
