"""
Prometheus metrics instrumentation for the payment hub.

This module sets up FastAPI instrumentation to expose metrics in Prometheus format
at the /metrics endpoint with optional authentication, plus the counters and
histograms the platform adapters and services record into.
"""

from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_client import Counter, Histogram
from fastapi import Request, status
from fastapi.responses import JSONResponse
import ipaddress
import os

payments_total = Counter(
    "payhub_payments_total",
    "Payment operations by platform and resulting status",
    ["platform", "status"],
)

platform_request_latency = Histogram(
    "payhub_platform_request_seconds",
    "Latency of outbound calls to payment platforms",
    ["platform", "method"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

platform_errors_total = Counter(
    "payhub_platform_errors_total",
    "Failed outbound calls to payment platforms",
    ["platform", "status_code"],
)

webhooks_total = Counter(
    "payhub_webhooks_total",
    "Inbound webhooks by platform and outcome",
    ["platform", "result"],
)

fraud_checks_total = Counter(
    "payhub_fraud_checks_total",
    "Fraud checks by resulting action",
    ["action"],
)

api_payment_latency = Histogram(
    "payhub_api_payment_latency_seconds",
    "End-to-end latency of payment API requests",
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)


def payment_latency_instrumentor(info):
    """Instrumentation function for tracking payment request latency."""
    if info.method == "POST" and info.request.url.path.endswith("/payments"):
        api_payment_latency.observe(info.modified_duration)


def init_metrics(app):
    """
    Initialize Prometheus metrics instrumentation for the FastAPI app.

    Args:
        app: FastAPI application instance

    Returns:
        Instrumentator instance
    """
    inst = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
    )
    inst.add(payment_latency_instrumentor)
    inst.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    return inst


def is_internal_address(host: str | None) -> bool:
    if not host:
        return False
    try:
        return ipaddress.ip_address(host).is_private
    except ValueError:
        return False


def add_metrics_auth_middleware(app):
    """
    Add middleware to protect the /metrics endpoint in production.
    For production use, set METRICS_AUTH_TOKEN environment variable.
    """

    @app.middleware("http")
    async def metrics_auth_middleware(request: Request, call_next):
        if request.url.path == "/metrics":
            if os.getenv("ENVIRONMENT", "development") == "development":
                return await call_next(request)

            auth_header = request.headers.get("X-Metrics-Auth")
            expected_token = os.getenv("METRICS_AUTH_TOKEN")

            if expected_token and auth_header == expected_token:
                return await call_next(request)

            # Allow internal network access (VPN/private networks)
            client_ip = request.client.host if request.client else None
            if is_internal_address(client_ip):
                return await call_next(request)

            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Metrics endpoint access denied"},
            )

        return await call_next(request)
