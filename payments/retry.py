"""
Exponential-backoff retry for idempotent platform calls.
"""

import structlog
import tenacity

from core.logging import BusinessEvents
from payments.exceptions import PlatformAPIError

log = structlog.get_logger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

DEFAULT_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 1
DEFAULT_MAX_WAIT = 8


def is_retryable(exc: BaseException) -> bool:
    """Transport failures, 429 and 5xx are retried; other 4xx are final."""
    return isinstance(exc, PlatformAPIError) and exc.retryable


def _log_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    log.warning(
        BusinessEvents.PLATFORM_RETRY,
        attempt=retry_state.attempt_number,
        wait_seconds=round(retry_state.next_action.sleep, 2)
        if retry_state.next_action
        else None,
        status_code=getattr(exc, "status_code", None),
        platform=getattr(exc, "platform", None),
        error=str(exc) if exc else None,
    )


def build_retrying(
    attempts: int = DEFAULT_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT,
    max_wait: float = DEFAULT_MAX_WAIT,
) -> tenacity.Retrying:
    return tenacity.Retrying(
        stop=tenacity.stop_after_attempt(max(1, attempts)),
        wait=tenacity.wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=tenacity.retry_if_exception(is_retryable),
        before_sleep=_log_retry,
        reraise=True,
    )


def call_with_retry(
    func,
    *args,
    attempts: int = DEFAULT_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT,
    max_wait: float = DEFAULT_MAX_WAIT,
    **kwargs,
):
    """Run ``func`` under the retry policy; the last error is re-raised."""
    return build_retrying(attempts, min_wait, max_wait)(func, *args, **kwargs)
