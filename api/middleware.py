import os
import structlog
from fastapi import Request

from core.logging import BusinessEvents

# Query parameters that may carry platform credentials
REDACTED_PARAMS = {"token", "api_key", "access_token", "secret", "signature"}


def _query_params(request: Request) -> dict | None:
    if os.getenv("DEMO_MODE", "").lower() in {"1", "true", "yes"}:
        return None
    return {
        key: "***" if key.lower() in REDACTED_PARAMS else value
        for key, value in request.query_params.items()
    }


async def log_api_entry(request: Request, call_next):
    """Middleware to log API entries with request details"""
    # Get a fresh logger each time to ensure test configurations are respected
    log = structlog.get_logger(__name__)

    log.info(
        BusinessEvents.API_ENTRY,
        method=request.method,
        url=request.url.path,
        client_host=request.client.host if request.client else None,
        path_params=dict(request.path_params),
        query_params=_query_params(request),
        user_id=request.headers.get("X-User-Id"),
    )
    response = await call_next(request)
    return response
