import logging
import sys
import structlog
import os
from opentelemetry.instrumentation.logging import LoggingInstrumentor


def get_log_level():
    """Get log level from environment or default to INFO"""
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_log_renderer():
    """Get log renderer based on environment"""
    env = os.getenv("ENVIRONMENT", "development")
    # JSON for tests and production
    if env in ["test", "production"]:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True, sort_keys=False)


def configure_logging():
    """Set up structlog + OTEL context injection for the payment hub."""
    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.ExceptionPrettyPrinter(),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            get_log_renderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    env = os.getenv("ENVIRONMENT", "development")
    if env == "test":
        # stdout is easier to capture under pytest
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(get_log_level())

    # Silence Uvicorn noise but keep access logs routed through structlog
    logging.getLogger("uvicorn.error").handlers.clear()
    logging.getLogger("uvicorn.access").handlers.clear()
    # urllib3 logs every retry and pool event of the adapter sessions
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    # Engine and pool chatter
    for name in ("sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool", "sqlalchemy.orm"):
        logging.getLogger(name).setLevel(logging.ERROR)

    # Initialize OpenTelemetry logging instrumentation AFTER configuring logging
    LoggingInstrumentor().instrument(set_logging_format=False)


# Business Event Log Names
class BusinessEvents:
    """Standard names for business event logs"""

    API_ENTRY = "api.request"
    PAYMENT_ATTEMPT = "payment.attempt"
    PAYMENT_SUCCESS = "payment.success"
    PAYMENT_FAILURE = "payment.failure"
    REFUND_ATTEMPT = "payment.refund.attempt"
    REFUND_SUCCESS = "payment.refund.success"
    REFUND_FAILURE = "payment.refund.failure"
    CANCEL_SUCCESS = "payment.cancel.success"
    CANCEL_FAILURE = "payment.cancel.failure"
    PLATFORM_REQUEST = "platform.request"
    PLATFORM_RESPONSE = "platform.response"
    PLATFORM_RETRY = "platform.retry"
    PLATFORM_STATUS = "platform.status"
    PLATFORM_INTEGRATED = "platform.integrated"
    WEBHOOK_RECEIVED = "webhook.received"
    WEBHOOK_PROCESSED = "webhook.processed"
    WEBHOOK_REJECTED = "webhook.rejected"
    WEBHOOK_FAILED = "webhook.failed"
    FRAUD_CHECK = "fraud.check"
    RECONCILIATION_RUN = "reconciliation.run"
    RECONCILIATION_MISMATCH = "reconciliation.mismatch"
    NOTIFICATION_SENT = "notification.sent"
    NOTIFICATION_FAILED = "notification.failed"
    AUDIT_RECORDED = "audit.recorded"
    REPORT_GENERATED = "report.generated"


# Configure logging when module is imported
configure_logging()
