#!/usr/bin/env python3
"""
Cleanup script that purges audit logs, reconciliations, webhook events,
notifications and metrics snapshots older than their retention window.
Can be run as a cron job or manually.
"""

import sys
import os

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.audit import AuditService  # noqa: E402
from core.dependencies import get_settings, init_settings  # noqa: E402
from db.session import get_session_context  # noqa: E402
from payments.notifications import NotificationService  # noqa: E402
from payments.platform_metrics import PlatformMetricsService  # noqa: E402
from payments.reconciliation import ReconciliationService  # noqa: E402
from payments.webhooks import WebhookService  # noqa: E402
import structlog  # noqa: E402

log = structlog.get_logger(__name__)


def cleanup_old_records() -> dict[str, int]:
    """Apply every retention window and return the number of rows deleted per table."""
    settings = get_settings()

    with get_session_context(settings) as db:
        deleted = {
            "audit_logs": AuditService(db).cleanup_old_audit_logs(
                settings.AUDIT_RETENTION_DAYS
            ),
            "reconciliations": ReconciliationService(db).cleanup_old_reconciliations(
                settings.RECONCILIATION_RETENTION_DAYS
            ),
            "webhook_events": WebhookService(db).cleanup_old_webhooks(
                settings.WEBHOOK_RETENTION_DAYS
            ),
            "notifications": NotificationService(db).cleanup_old_notifications(
                settings.NOTIFICATION_RETENTION_DAYS
            ),
            "platform_metrics": PlatformMetricsService(db).delete_old_metrics(
                settings.METRICS_RETENTION_DAYS
            ),
        }

    log.info("maintenance.cleanup", **deleted)
    return deleted


if __name__ == "__main__":
    init_settings()
    results = cleanup_old_records()
    print(f"✅ Removed {sum(results.values())} expired rows")
    for table, count in results.items():
        print(f"   - {table}: {count}")
