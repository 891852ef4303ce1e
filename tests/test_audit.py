"""
Test module for audit logging functionality.

This module tests:
- AuditService recording, queries and exports
- AuditMiddleware behavior
- Audit entries written by API requests
"""

import csv
import io
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from core.audit import AuditMiddleware, AuditService
from db.models import AuditAction, AuditLog


@pytest.fixture
def audit(test_db_session):
    return AuditService(test_db_session)


@pytest.fixture
def entries(audit):
    audit.log(
        AuditAction.payment_processed,
        "transaction",
        1,
        {"amount": "97.00"},
        user_id="user-1",
        platform_id="kiwify-main",
    )
    audit.log(
        AuditAction.payment_refunded,
        "transaction",
        1,
        {"refund_amount": "97.00"},
        user_id="user-1",
        platform_id="kiwify-main",
        ip_address="10.0.0.1",
    )
    audit.log(
        AuditAction.platform_integrated,
        "platform",
        "hubla-1",
        user_id="user-2",
        platform_id="hubla-1",
        metadata={"source": "dashboard"},
    )


def test_log_entry(audit):
    entry = audit.log(AuditAction.webhook_received, "webhook", 42, {"event_type": "order.paid"})

    assert entry.id is not None
    assert entry.entity_id == "42"
    assert entry.changes == {"event_type": "order.paid"}
    assert entry.meta == {}


def test_audit_trail_newest_first(audit, entries):
    trail = audit.get_audit_trail("transaction", 1)
    assert [entry.action for entry in trail] == [
        AuditAction.payment_refunded,
        AuditAction.payment_processed,
    ]


def test_user_and_platform_actions(audit, entries):
    assert len(audit.get_user_actions("user-1")) == 2
    assert len(audit.get_user_actions("user-1", limit=1)) == 1
    assert [e.entity_id for e in audit.get_platform_actions("hubla-1")] == ["hubla-1"]
    assert len(audit.get_recent_actions()) == 3
    assert len(audit.get_actions_by_type(AuditAction.payment_refunded)) == 1


def test_search(audit, entries):
    assert len(audit.search(action=AuditAction.payment_processed)) == 1
    assert len(audit.search(entity_type="transaction", user_id="user-1")) == 2
    assert len(audit.search(platform_id="kiwify-main", entity_id="1")) == 2
    assert [e.entity_id for e in audit.search(text="hubla")] == ["hubla-1"]

    now = datetime.now(UTC)
    assert len(audit.search(start_date=now - timedelta(hours=1))) == 3
    assert audit.search(end_date=now - timedelta(hours=1)) == []


def test_export_json(audit, entries):
    exported = json.loads(audit.export_audit_logs(format="json"))

    assert len(exported) == 3
    assert exported[0]["action"] == "platform.integrated"
    assert exported[0]["metadata"] == {"source": "dashboard"}


def test_export_csv(audit, entries):
    rows = list(csv.DictReader(io.StringIO(audit.export_audit_logs(format="csv"))))

    assert len(rows) == 3
    refund = next(row for row in rows if row["action"] == "payment.refunded")
    assert json.loads(refund["changes"]) == {"refund_amount": "97.00"}
    assert refund["ip_address"] == "10.0.0.1"


def test_export_unknown_format(audit):
    with pytest.raises(ValueError):
        audit.export_audit_logs(format="xml")


def test_cleanup_old_audit_logs(audit, entries, test_db_session):
    old = test_db_session.query(AuditLog).filter_by(entity_id="hubla-1").one()
    old.created_at = datetime.now(UTC) - timedelta(days=400)
    test_db_session.commit()

    assert audit.cleanup_old_audit_logs(days=365) == 1
    assert len(audit.get_recent_actions()) == 2


@pytest.mark.asyncio
async def test_audit_middleware_initialization():
    """Test audit middleware initialization."""
    app = MagicMock()
    middleware = AuditMiddleware(app)

    assert middleware.app == app


@pytest.mark.asyncio
async def test_audit_middleware_without_db():
    """Requests without a route session pass through unaudited."""
    middleware = AuditMiddleware(MagicMock())

    request = MagicMock()
    request.method = "POST"
    request.url.path = "/api/v1/utm"
    request.state = MagicMock()
    request.state.db = None

    async def mock_call_next(request):
        response = MagicMock()
        response.status_code = 200
        return response

    response = await middleware.dispatch(request, mock_call_next)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_audit_middleware_records_mutations():
    middleware = AuditMiddleware(MagicMock())
    db = MagicMock()

    request = MagicMock()
    request.method = "DELETE"
    request.url.path = "/api/v1/utm/3"
    request.state.db = db
    request.headers = {"X-User-Id": "user-1", "user-agent": "pytest"}
    request.client.host = "127.0.0.1"

    async def mock_call_next(request):
        response = MagicMock()
        response.status_code = 204
        return response

    await middleware.dispatch(request, mock_call_next)

    entry = db.add.call_args.args[0]
    assert entry.action == AuditAction.api_request
    assert entry.entity_id == "/api/v1/utm/3"
    assert entry.user_id == "user-1"
    assert entry.meta == {"method": "DELETE", "path": "/api/v1/utm/3", "status": 204}
    db.commit.assert_called_once()


@pytest.mark.asyncio
async def test_audit_middleware_skips_reads_and_errors():
    middleware = AuditMiddleware(MagicMock())
    db = MagicMock()

    for method, status_code in (("GET", 200), ("POST", 422)):
        request = MagicMock()
        request.method = method
        request.url.path = "/api/v1/utm"
        request.state.db = db

        async def mock_call_next(request, status_code=status_code):
            response = MagicMock()
            response.status_code = status_code
            return response

        await middleware.dispatch(request, mock_call_next)

    db.add.assert_not_called()


def test_api_request_is_audited(client, test_db_session):
    response = client.post(
        "/api/v1/utm",
        json={
            "base_url": "https://shop.example.com",
            "source": "facebook",
            "medium": "cpc",
            "campaign": "launch",
        },
        headers={"X-User-Id": "user-9"},
    )
    assert response.status_code == 201

    entries = test_db_session.query(AuditLog).filter_by(action=AuditAction.api_request).all()
    assert len(entries) == 1
    assert entries[0].user_id == "user-9"
    assert entries[0].meta["method"] == "POST"
