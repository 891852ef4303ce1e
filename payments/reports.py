"""
Report Service

Builds transaction, reconciliation and metrics reports from the local
transaction table and writes them as CSV or JSON files under ``REPORTS_DIR``.
"""

import csv
import json
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from core.dependencies import get_settings_or_default
from core.logging import BusinessEvents
from db.models import Report, ReportFormat, ReportType, Transaction, TransactionStatus
from payments.exceptions import ReportError
from payments.transactions import TransactionService, transaction_to_dict

log = structlog.get_logger(__name__)

TRANSACTION_COLUMNS = (
    "id",
    "platform_id",
    "platform_type",
    "provider_id",
    "order_id",
    "amount",
    "currency",
    "status",
    "payment_method",
    "created_at",
)


def _total(transactions: list[Transaction]) -> float:
    return float(sum((Decimal(str(txn.amount)) for txn in transactions), Decimal("0")))


def transactions_report(transactions: list[Transaction]) -> dict[str, Any]:
    return {
        "total_count": len(transactions),
        "total_amount": _total(transactions),
        "transactions": [transaction_to_dict(txn) for txn in transactions],
    }


def reconciliation_report(transactions: list[Transaction]) -> dict[str, Any]:
    status_counts: dict[str, int] = {}
    by_platform: dict[str, list[Transaction]] = {}
    for txn in transactions:
        status_counts[txn.status.value] = status_counts.get(txn.status.value, 0) + 1
        by_platform.setdefault(txn.platform_id, []).append(txn)
    return {
        "total_count": len(transactions),
        "total_amount": _total(transactions),
        "status_counts": status_counts,
        "transactions_by_platform": {
            platform_id: {
                "count": len(group),
                "total_amount": _total(group),
                "transaction_ids": [txn.id for txn in group],
            }
            for platform_id, group in sorted(by_platform.items())
        },
    }


def _bucket(buckets: dict[int, dict[str, Any]], key: int, amount: float) -> None:
    bucket = buckets.setdefault(key, {"count": 0, "amount": 0.0})
    bucket["count"] += 1
    bucket["amount"] += amount


def metrics_report(transactions: list[Transaction]) -> dict[str, Any]:
    by_platform: dict[str, list[Transaction]] = {}
    hourly: dict[int, dict[str, Any]] = {}
    daily: dict[int, dict[str, Any]] = {}
    monthly: dict[int, dict[str, Any]] = {}
    for txn in transactions:
        by_platform.setdefault(txn.platform_id, []).append(txn)
        amount = float(txn.amount)
        _bucket(hourly, txn.created_at.hour, amount)
        _bucket(daily, txn.created_at.day, amount)
        _bucket(monthly, txn.created_at.month, amount)

    platform_metrics = {}
    for platform_id, group in sorted(by_platform.items()):
        total = _total(group)
        completed = sum(txn.status == TransactionStatus.completed for txn in group)
        platform_metrics[platform_id] = {
            "total_transactions": len(group),
            "total_amount": total,
            "success_rate": completed / len(group) * 100,
            "average_amount": total / len(group),
        }
    return {
        "total_count": len(transactions),
        "total_amount": _total(transactions),
        "platform_metrics": platform_metrics,
        "time_metrics": {
            "hourly": dict(sorted(hourly.items())),
            "daily": dict(sorted(daily.items())),
            "monthly": dict(sorted(monthly.items())),
        },
    }


BUILDERS = {
    ReportType.transactions: transactions_report,
    ReportType.reconciliation: reconciliation_report,
    ReportType.metrics: metrics_report,
}


def csv_rows(report_type: ReportType, data: dict[str, Any]) -> tuple[list[str], list[dict]]:
    if report_type == ReportType.transactions:
        rows = [{key: txn[key] for key in TRANSACTION_COLUMNS} for txn in data["transactions"]]
        return list(TRANSACTION_COLUMNS), rows
    if report_type == ReportType.reconciliation:
        rows = [
            {"platform_id": platform_id, "count": group["count"], "total_amount": group["total_amount"]}
            for platform_id, group in data["transactions_by_platform"].items()
        ]
        return ["platform_id", "count", "total_amount"], rows
    rows = [{"platform_id": platform_id, **values} for platform_id, values in data["platform_metrics"].items()]
    return [
        "platform_id",
        "total_transactions",
        "total_amount",
        "success_rate",
        "average_amount",
    ], rows


class ReportService:
    def __init__(self, db: Session, reports_dir: str | Path | None = None):
        self.db = db
        self.reports_dir = Path(reports_dir or get_settings_or_default().REPORTS_DIR)

    def build_report(
        self, report_type: ReportType, filters: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        filters = filters or {}
        transactions = TransactionService(self.db).list_transactions(
            platform_id=filters.get("platform_id"),
            status=filters.get("status"),
            start_date=filters.get("start_date"),
            end_date=filters.get("end_date"),
            min_amount=filters.get("min_amount"),
            max_amount=filters.get("max_amount"),
            limit=None,
        )
        return BUILDERS[report_type](transactions)

    def generate_report(
        self,
        report_type: ReportType,
        format: ReportFormat,
        filters: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> Report:
        if format == ReportFormat.pdf:
            raise ReportError("PDF reports are not supported; use csv or json")

        filters = filters or {}
        data = self.build_report(report_type, filters)

        self.reports_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%f")
        path = self.reports_dir / f"{report_type.value}_report_{stamp}.{format.value}"
        if format == ReportFormat.json:
            path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        else:
            columns, rows = csv_rows(report_type, data)
            with path.open("w", newline="", encoding="utf-8") as fh:
                writer = csv.DictWriter(fh, fieldnames=columns)
                writer.writeheader()
                writer.writerows(rows)

        stored_filters = {
            key: getattr(value, "value", value)
            for key, value in filters.items()
            if value is not None
        }
        report = Report(
            report_type=report_type,
            format=format,
            # datetimes and Decimals are stored as strings
            filters=json.loads(json.dumps(stored_filters, default=str)),
            file_path=str(path),
            row_count=data["total_count"],
            user_id=user_id,
        )
        self.db.add(report)
        self.db.commit()
        self.db.refresh(report)
        log.info(
            BusinessEvents.REPORT_GENERATED,
            report_id=report.id,
            report_type=report_type.value,
            format=format.value,
            rows=report.row_count,
            path=str(path),
        )
        return report

    def get_report(self, report_id: int) -> Report:
        report = self.db.get(Report, report_id)
        if report is None:
            raise ReportError(f"Report {report_id} not found")
        return report

    def list_reports(self, user_id: str | None = None, limit: int = 50) -> list[Report]:
        stmt = select(Report)
        if user_id:
            stmt = stmt.where(Report.user_id == user_id)
        return list(self.db.scalars(stmt.order_by(Report.id.desc()).limit(limit)))


def report_to_dict(report: Report) -> dict[str, Any]:
    return {
        "id": report.id,
        "report_type": report.report_type.value,
        "format": report.format.value,
        "filters": report.filters or {},
        "file_path": report.file_path,
        "row_count": report.row_count,
        "user_id": report.user_id,
        "created_at": report.created_at.isoformat() if report.created_at else None,
    }
