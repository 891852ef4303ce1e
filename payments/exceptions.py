"""
Payment hub exception hierarchy.

Adapters and services raise these; the API layer maps them onto HTTP
responses in ``main.py``.
"""


class PaymentHubError(Exception):
    """Base class for every domain error raised by the hub."""


class PlatformConfigError(PaymentHubError):
    """Credentials or settings for a platform are missing or invalid."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class UnsupportedPlatformError(PaymentHubError):
    pass


class PlatformNotFoundError(PaymentHubError):
    pass


class TransactionNotFoundError(PaymentHubError):
    pass


class FraudRuleNotFoundError(PaymentHubError):
    pass


class PaymentValidationError(PaymentHubError):
    pass


class PlatformAPIError(PaymentHubError):
    """A payment platform answered with an error or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        platform: str | None = None,
        response_body=None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.platform = platform
        self.response_body = response_body

    @property
    def retryable(self) -> bool:
        # Transport failures carry no status code
        return (
            self.status_code is None
            or self.status_code == 429
            or self.status_code >= 500
        )


class WebhookSignatureError(PaymentHubError):
    pass


class WebhookNotFoundError(PaymentHubError):
    pass


class NotificationError(PaymentHubError):
    pass


class ReportError(PaymentHubError):
    pass
