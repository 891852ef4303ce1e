"""Tests for report building and file generation."""

import csv
import json
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import pytest

from db.models import (
    PaymentPlatform,
    ReportFormat,
    ReportType,
    Transaction,
    TransactionStatus,
)
from payments.exceptions import ReportError
from payments.reports import (
    ReportService,
    metrics_report,
    reconciliation_report,
    report_to_dict,
)
from payments.transactions import TransactionService


def txn(id, platform_id, amount, status=TransactionStatus.completed, created_at=None):
    return Transaction(
        id=id,
        platform_id=platform_id,
        platform_type=PaymentPlatform.kiwify,
        amount=Decimal(amount),
        status=status,
        created_at=created_at or datetime(2026, 3, 14, 9, 30, tzinfo=UTC),
    )


def test_reconciliation_report_groups_by_platform():
    report = reconciliation_report(
        [
            txn(1, "kiwify-main", "10"),
            txn(2, "hubla-1", "5", TransactionStatus.refunded),
            txn(3, "kiwify-main", "2.5", TransactionStatus.pending),
        ]
    )

    assert report["total_count"] == 3
    assert report["total_amount"] == 17.5
    assert report["status_counts"] == {"completed": 1, "refunded": 1, "pending": 1}
    assert report["transactions_by_platform"] == {
        "hubla-1": {"count": 1, "total_amount": 5.0, "transaction_ids": [2]},
        "kiwify-main": {"count": 2, "total_amount": 12.5, "transaction_ids": [1, 3]},
    }


def test_metrics_report():
    report = metrics_report(
        [
            txn(1, "kiwify-main", "30"),
            txn(2, "kiwify-main", "10", TransactionStatus.failed),
            txn(3, "hubla-1", "20", created_at=datetime(2026, 4, 1, 22, 0, tzinfo=UTC)),
        ]
    )

    assert report["platform_metrics"]["kiwify-main"] == {
        "total_transactions": 2,
        "total_amount": 40.0,
        "success_rate": 50.0,
        "average_amount": 20.0,
    }
    assert report["time_metrics"]["hourly"] == {
        9: {"count": 2, "amount": 40.0},
        22: {"count": 1, "amount": 20.0},
    }
    assert report["time_metrics"]["monthly"] == {
        3: {"count": 2, "amount": 40.0},
        4: {"count": 1, "amount": 20.0},
    }


def test_empty_metrics_report():
    report = metrics_report([])
    assert report["total_count"] == 0
    assert report["platform_metrics"] == {}


@pytest.fixture
def service(test_db_session, tmp_path):
    transactions = TransactionService(test_db_session)
    for amount, status in (("97.00", TransactionStatus.completed), ("47.00", TransactionStatus.failed)):
        transactions.create(
            platform_id="kiwify-main",
            platform_type=PaymentPlatform.kiwify,
            provider_id=f"kw_{amount}",
            amount=Decimal(amount),
            status=status,
        )
    return ReportService(test_db_session, tmp_path / "reports")


def test_json_report(service):
    report = service.generate_report(ReportType.transactions, ReportFormat.json, user_id="user-1")

    path = Path(report.file_path)
    assert path.exists()
    assert path.name.startswith("transactions_report_")
    data = json.loads(path.read_text())
    assert data["total_count"] == 2
    assert data["total_amount"] == 144.0
    assert report.row_count == 2
    assert report_to_dict(report)["user_id"] == "user-1"


def test_csv_report_with_filters(service):
    report = service.generate_report(
        ReportType.transactions,
        ReportFormat.csv,
        filters={"status": TransactionStatus.completed, "platform_id": None},
    )

    with open(report.file_path, newline="") as fh:
        rows = list(csv.DictReader(fh))
    assert len(rows) == 1
    assert rows[0]["provider_id"] == "kw_97.00"
    assert rows[0]["status"] == "completed"
    assert report.filters == {"status": "completed"}


def test_metrics_csv(service):
    report = service.generate_report(ReportType.metrics, ReportFormat.csv)
    with open(report.file_path, newline="") as fh:
        rows = list(csv.DictReader(fh))
    assert rows == [
        {
            "platform_id": "kiwify-main",
            "total_transactions": "2",
            "total_amount": "144.0",
            "success_rate": "50.0",
            "average_amount": "72.0",
        }
    ]


def test_pdf_not_supported(service):
    with pytest.raises(ReportError, match="PDF"):
        service.generate_report(ReportType.transactions, ReportFormat.pdf)
    assert service.list_reports() == []


def test_get_and_list_reports(service):
    first = service.generate_report(ReportType.reconciliation, ReportFormat.json, user_id="user-1")
    second = service.generate_report(ReportType.metrics, ReportFormat.json, user_id="user-2")

    assert service.get_report(first.id) is first
    assert service.list_reports() == [second, first]
    assert service.list_reports(user_id="user-2") == [second]
    with pytest.raises(ReportError, match="not found"):
        service.get_report(999)
