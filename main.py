"""
Marketing Ops Payment Hub - Main Application Entry Point

This module initializes the FastAPI application and sets up the core routing.
It serves as the main entry point for the payment hub, which exposes one
uniform API over the checkout, marketplace and gateway platforms used by
marketing teams.
"""

import structlog
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from api import routes
from api.middleware import log_api_entry
from core.audit import AuditMiddleware
from core.dependencies import clear_settings, get_settings, init_settings
from core.logging import configure_logging
from core.metrics import add_metrics_auth_middleware, init_metrics
from core.settings import Settings
from core.tracing import init_tracer
from db.session import init_db
from marketing.utm import UtmLinkNotFoundError
from payments.exceptions import (
    FraudRuleNotFoundError,
    NotificationError,
    PaymentHubError,
    PaymentValidationError,
    PlatformAPIError,
    PlatformConfigError,
    PlatformNotFoundError,
    ReportError,
    TransactionNotFoundError,
    UnsupportedPlatformError,
    WebhookNotFoundError,
    WebhookSignatureError,
)
from payments.registry import available_platforms, registry

log = structlog.get_logger(__name__)

# Domain error -> HTTP status; first match wins
ERROR_STATUS = (
    (PlatformNotFoundError, 404),
    (TransactionNotFoundError, 404),
    (FraudRuleNotFoundError, 404),
    (WebhookNotFoundError, 404),
    (UtmLinkNotFoundError, 404),
    (WebhookSignatureError, 401),
    (UnsupportedPlatformError, 400),
    (PlatformConfigError, 422),
    (PaymentValidationError, 422),
    (NotificationError, 422),
    (ReportError, 422),
    (PlatformAPIError, 502),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application startup and shutdown events."""
    # Startup
    init_settings()
    settings = get_settings()

    # Initialize OpenTelemetry tracing
    init_tracer(
        settings.OTEL_SERVICE_NAME,
        endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT,
        resource_attributes=settings.OTEL_RESOURCE_ATTRIBUTES,
    )

    init_db(settings)
    registry.configure_from_settings(settings)
    log.info(
        "app.started",
        environment=settings.ENVIRONMENT,
        platforms=len(available_platforms()),
    )

    yield
    # Shutdown
    registry.clear()
    clear_settings()


app = FastAPI(
    title="Marketing Ops Payment Hub",
    description="""
    ## Unified payment API for marketing operations

    One API over Brazilian and international checkout platforms, marketplaces
    and gateways (Kiwify, Ticto, Hubla, Appmax, ClickBank, Shopify, WooCommerce,
    Mercado Pago, Twispay and more).

    ### Key Features:
    - **Uniform adapters**: payments, refunds, cancellations, lookups and status on every platform
    - **Webhooks**: per-platform HMAC verification and transaction sync
    - **Fraud scoring**: configurable rules with flag, review and block actions
    - **Reconciliation**: local ledger compared against each platform
    - **Operations**: audit trail, notifications, reports and UTM link tracking
    """,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Initialize FastAPI instrumentation
FastAPIInstrumentor.instrument_app(app)

# Initialize Prometheus metrics
init_metrics(app)

# Add metrics authentication middleware (for production)
add_metrics_auth_middleware(app)

# Add logging middleware first
app.middleware("http")(log_api_entry)

# Add audit middleware
app.add_middleware(AuditMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.exception_handler(PaymentHubError)
async def payment_hub_exception_handler(request: Request, exc: PaymentHubError):
    status_code = next(
        (code for error, code in ERROR_STATUS if isinstance(exc, error)), 500
    )
    content = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, PlatformConfigError) and exc.missing:
        content["missing"] = exc.missing
    if isinstance(exc, PlatformAPIError):
        content["platform"] = exc.platform
        content["platform_status_code"] = exc.status_code
    if status_code >= 500:
        log.error(
            "api.platform_error",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
    return JSONResponse(status_code=status_code, content=content)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error("api.unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)},
    )


@app.get("/")
async def root():
    """Root endpoint providing comprehensive API information."""
    return {
        "name": "Marketing Ops Payment Hub",
        "version": "0.1.0",
        "description": "Unified payment API over marketing checkout platforms",
        "platforms": [platform.value for platform in available_platforms()],
        "api_documentation": {
            "swagger_ui": "/docs",
            "redoc": "/redoc",
            "openapi_spec": "/openapi.json",
        },
        "endpoints": {
            "platforms": "/api/v1/platforms - Platform integrations, status and metrics",
            "payments": "/api/v1/platforms/{id}/payments - Payment processing",
            "transactions": "/api/v1/transactions - Refunds, cancellations and lookups",
            "webhooks": "/api/v1/webhooks/{platform_id} - Inbound platform webhooks",
            "fraud": "/api/v1/fraud - Fraud rules and reports",
            "reconciliation": "/api/v1/reconciliation - Ledger reconciliation",
            "reports": "/api/v1/reports - CSV and JSON reports",
            "notifications": "/api/v1/notifications - Templates and deliveries",
            "utm": "/api/v1/utm - Campaign link builder",
            "audit": "/api/v1/audit - Audit trail",
            "health": "/health - Health check endpoint",
            "metrics": "/metrics - Prometheus metrics (requires auth)",
        },
    }


@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    """Health check endpoint alias."""
    return await health_check(settings)


@app.get("/healthz")
async def health_check(settings: Settings = Depends(get_settings)):
    """Health check endpoint to verify API status."""
    db_type = (
        "PostgreSQL" if settings.DATABASE_URL.startswith("postgresql") else "SQLite"
    )
    return {
        "status": "ok",
        "app_name": settings.APP_NAME,
        "database": db_type,
        "environment": settings.ENVIRONMENT,
    }


# Include routers under a single versioned prefix
API_PREFIX = "/api/v1"

app.include_router(routes.router, prefix=API_PREFIX)


def main():
    configure_logging()
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
