"""
Base Platform Adapter

Every payment platform adapter derives from ``BasePlatformAdapter``. The base
class owns the shared behaviour:

- sandbox / production URL selection and default headers
- outbound HTTP through ``requests`` with tenacity retries for idempotent calls
- mapping HTTP failures to ``PlatformAPIError``
- status mapping through a flat per-adapter table
- webhook HMAC validation and optional outbound request signing
- a short-lived cache for ``get_status``

Subclasses declare their endpoints, auth headers and status vocabulary, and
override the payload builders / parsers where the platform's shapes differ.
"""

import json
import time
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import requests
import structlog

from core.logging import BusinessEvents
from core.metrics import platform_errors_total, platform_request_latency
from core.tracing import get_tracer
from db.models import Currency, PaymentMethod, PaymentPlatform, TransactionStatus
from payments.exceptions import PaymentValidationError, PlatformAPIError
from payments.retry import IDEMPOTENT_METHODS, build_retrying
from payments.schemas import (
    Customer,
    PaymentRequest,
    PlatformConfig,
    PlatformStatus,
    TransactionRecord,
)
from payments.signatures import sign_request, verify_signature

log = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

DEFAULT_STATUS_MAP = {
    "completed": TransactionStatus.completed,
    "pending": TransactionStatus.pending,
    "processing": TransactionStatus.processing,
    "failed": TransactionStatus.failed,
    "refunded": TransactionStatus.refunded,
    "partially_refunded": TransactionStatus.refunded,
    "cancelled": TransactionStatus.cancelled,
    "expired": TransactionStatus.failed,
}

# Vocabulary shared by the Brazilian infoproduct checkouts
CHECKOUT_STATUS_MAP = {
    "approved": TransactionStatus.completed,
    "paid": TransactionStatus.completed,
    "completed": TransactionStatus.completed,
    "pending": TransactionStatus.pending,
    "waiting_payment": TransactionStatus.pending,
    "processing": TransactionStatus.pending,
    "in_analysis": TransactionStatus.pending,
    "refunded": TransactionStatus.refunded,
    "chargeback": TransactionStatus.refunded,
    "cancelled": TransactionStatus.cancelled,
    "canceled": TransactionStatus.cancelled,
    "expired": TransactionStatus.failed,
    "declined": TransactionStatus.failed,
    "failed": TransactionStatus.failed,
}

PAYMENT_METHOD_ALIASES = {
    "card": PaymentMethod.credit_card,
    "credit": PaymentMethod.credit_card,
    "creditcard": PaymentMethod.credit_card,
    "debit": PaymentMethod.debit_card,
    "billet": PaymentMethod.boleto,
    "bank_slip": PaymentMethod.boleto,
    "bankslip": PaymentMethod.boleto,
    "transfer": PaymentMethod.bank_transfer,
    "bacs": PaymentMethod.bank_transfer,
    "paypal": PaymentMethod.wallet,
    "cod": PaymentMethod.cash,
}

_ERROR_PREFIXES = {
    400: "Invalid request",
    401: "Authentication failed",
    403: "Access denied",
    404: "Resource not found",
    409: "Conflict",
    422: "Invalid request",
    429: "Rate limit exceeded",
}

_LOG_BODY_LIMIT = 400


def _mask(val: str | None, show: int = 4) -> str:
    s = (val or "").strip()
    if not s:
        return ""
    if len(s) <= show:
        return "*" * len(s)
    return "*" * (len(s) - show) + s[-show:]


def _trunc(val: Any, max_len: int = _LOG_BODY_LIMIT) -> str:
    if val is None:
        return ""
    s = str(val)
    return s if len(s) <= max_len else s[: max_len - 3] + "..."


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, UTC)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class BasePlatformAdapter(ABC):
    """Uniform interface over one payment platform account."""

    PLATFORM: PaymentPlatform | None = None

    SANDBOX_API_URL = ""
    PRODUCTION_API_URL = ""
    API_VERSION: str | None = None

    REQUIRED_CREDENTIALS: tuple[str, ...] = ("api_key", "secret_key")

    STATUS_MAP: dict[str, TransactionStatus] = DEFAULT_STATUS_MAP
    DEFAULT_STATUS = TransactionStatus.pending
    STATUS_FIELD = "status"

    # Inbound webhook signature
    SIGNATURE_HEADER = "X-Signature"
    SIGNATURE_ENCODING = "hex"
    SIGNATURE_PREFIX: str | None = None

    # Outbound request signature (HMAC of timestamp + body), when the platform wants one
    REQUEST_SIGNATURE_HEADER: str | None = None
    REQUEST_TIMESTAMP_HEADER = "X-Timestamp"

    PAYMENT_PATH = "/payments"
    TRANSACTIONS_PATH = "/transactions"
    TRANSACTION_PATH = "/transactions/{transaction_id}"
    REFUND_PATH = "/transactions/{transaction_id}/refund"
    CANCEL_PATH = "/transactions/{transaction_id}/cancel"
    CANCEL_METHOD = "POST"
    STATUS_PATH = "/status"
    DATE_PARAMS = ("start_date", "end_date")
    LIST_KEYS = ("transactions", "data", "items", "orders", "results")
    RECORD_KEYS = ("transaction", "payment", "order", "data")

    def __init__(
        self,
        config: PlatformConfig,
        *,
        session: requests.Session | None = None,
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_min_wait: float = 1,
        retry_max_wait: float = 8,
        status_cache_ttl: float = 300,
    ):
        self.config = config
        self.settings = config.settings
        self.session = session or requests.Session()
        self._owns_session = session is None
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait
        self.status_cache_ttl = status_cache_ttl
        self._status_cache: tuple[PlatformStatus, float] | None = None

        log.debug(
            "platform.adapter_initialized",
            platform=self.platform_name,
            platform_id=self.platform_id,
            sandbox=self.settings.sandbox,
            api_key=_mask(self.settings.api_key),
        )

    # ------------------------------------------------------------------ config

    @property
    def platform_id(self) -> str:
        return self.config.platform_id

    @property
    def platform_name(self) -> str:
        return self.PLATFORM.value if self.PLATFORM else type(self).__name__

    @property
    def base_url(self) -> str:
        url = self.SANDBOX_API_URL if self.settings.sandbox else self.PRODUCTION_API_URL
        return url.rstrip("/")

    @property
    def default_currency(self) -> Currency:
        return self.settings.currency or Currency.BRL

    @classmethod
    def missing_credentials(cls, config: PlatformConfig) -> list[str]:
        return [
            name for name in cls.REQUIRED_CREDENTIALS if not config.settings.value(name)
        ]

    @abstractmethod
    def auth_headers(self) -> dict[str, str]:
        """Platform-specific authentication headers."""

    def get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        headers.update(self.auth_headers())
        return headers

    # ------------------------------------------------------------------ status mapping

    @classmethod
    def map_status(cls, status: Any) -> TransactionStatus:
        if status is None or status == "":
            return cls.DEFAULT_STATUS
        return cls.STATUS_MAP.get(str(status).strip().lower(), cls.DEFAULT_STATUS)

    @staticmethod
    def status_metadata(status: Any) -> dict[str, str]:
        """Unmapped provider status as transaction metadata."""
        if status is None or status == "":
            return {}
        return {"platform_status": str(status).strip().lower()}

    @staticmethod
    def map_payment_method(value: Any) -> PaymentMethod | None:
        if not value:
            return None
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return PaymentMethod(key)
        except ValueError:
            return PAYMENT_METHOD_ALIASES.get(key, PaymentMethod.other)

    def map_currency(self, value: Any) -> Currency:
        if not value:
            return self.default_currency
        try:
            return Currency(str(value).upper())
        except ValueError:
            return self.default_currency

    # ------------------------------------------------------------------ HTTP

    def _error_message(self, response: requests.Response) -> str:
        detail = ""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = body.get("message") or body.get("error") or body.get("errors") or ""
            if isinstance(detail, dict):
                detail = detail.get("message") or json.dumps(detail)
        if not detail:
            detail = response.text or response.reason or ""
        if response.status_code >= 500:
            prefix = "Platform unavailable"
        else:
            prefix = _ERROR_PREFIXES.get(response.status_code, "Request failed")
        return f"{prefix}: {_trunc(detail, 200)}" if detail else prefix

    def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        payload: Any,
    ) -> Any:
        url = f"{self.base_url}{path}"
        headers = self.get_headers()
        body = None
        if payload is not None:
            body = json.dumps(payload, separators=(",", ":"), default=str)
            if self.REQUEST_SIGNATURE_HEADER and self.settings.secret_key:
                timestamp = str(int(time.time()))
                headers[self.REQUEST_TIMESTAMP_HEADER] = timestamp
                headers[self.REQUEST_SIGNATURE_HEADER] = sign_request(
                    self.settings.secret_key, timestamp, body
                )

        log.info(
            BusinessEvents.PLATFORM_REQUEST,
            platform=self.platform_name,
            platform_id=self.platform_id,
            method=method,
            url=url,
            params=params,
            body=_trunc(body),
        )

        started = time.perf_counter()
        with tracer.start_as_current_span(
            "platform.request",
            attributes={"payhub.platform": self.platform_name, "http.method": method},
        ):
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    data=body,
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                platform_errors_total.labels(
                    platform=self.platform_name, status_code="network"
                ).inc()
                raise PlatformAPIError(
                    f"Network error: {exc}", platform=self.platform_name
                ) from exc
            finally:
                platform_request_latency.labels(
                    platform=self.platform_name, method=method
                ).observe(time.perf_counter() - started)

        log.info(
            BusinessEvents.PLATFORM_RESPONSE,
            platform=self.platform_name,
            platform_id=self.platform_id,
            method=method,
            url=url,
            status_code=response.status_code,
            body=_trunc(response.text),
        )

        if response.status_code >= 400:
            platform_errors_total.labels(
                platform=self.platform_name, status_code=str(response.status_code)
            ).inc()
            raise PlatformAPIError(
                self._error_message(response),
                status_code=response.status_code,
                platform=self.platform_name,
                response_body=_trunc(response.text),
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise PlatformAPIError(
                "Invalid JSON in platform response",
                status_code=response.status_code,
                platform=self.platform_name,
                response_body=_trunc(response.text),
            ) from exc

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        payload: Any = None,
        idempotent: bool | None = None,
    ) -> Any:
        """Call the platform; idempotent requests are retried with backoff."""
        method = method.upper()
        if idempotent is None:
            idempotent = method in IDEMPOTENT_METHODS
        if not idempotent:
            return self._send(method, path, params, payload)
        retrying = build_retrying(
            self.max_retries, self.retry_min_wait, self.retry_max_wait
        )
        return retrying(self._send, method, path, params, payload)

    # ------------------------------------------------------------------ parsing

    def _unwrap(self, data: Any) -> dict[str, Any]:
        if not isinstance(data, dict):
            return {}
        if "id" in data or "transaction_id" in data:
            return data
        for key in self.RECORD_KEYS:
            inner = data.get(key)
            if isinstance(inner, dict):
                return inner
        return data

    def _extract_list(self, data: Any) -> list[dict[str, Any]]:
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in self.LIST_KEYS:
                inner = data.get(key)
                if isinstance(inner, list):
                    return inner
        return []

    def parse_customer(self, data: Any) -> Customer | None:
        if not isinstance(data, dict) or not data:
            return None
        name = data.get("name")
        if not name:
            parts = (data.get("first_name"), data.get("last_name"))
            name = " ".join(part for part in parts if part)
        address = data.get("address")
        return Customer(
            name=name or "",
            email=data.get("email"),
            document=data.get("document") or data.get("cpf") or data.get("tax_id"),
            phone=data.get("phone") or data.get("mobile"),
            address=address if isinstance(address, dict) else None,
        )

    def parse_transaction(self, data: Any) -> TransactionRecord:
        """Normalise one platform transaction body."""
        record = self._unwrap(data)
        provider_id = record.get("id") or record.get("transaction_id") or ""
        order_id = (
            record.get("order_id")
            or record.get("reference_id")
            or record.get("reference")
        )
        metadata = record.get("metadata")
        metadata = dict(metadata) if isinstance(metadata, dict) else {}
        status = record.get(self.STATUS_FIELD)
        metadata.update(self.status_metadata(status))
        return TransactionRecord(
            provider_id=str(provider_id),
            order_id=_str_or_none(order_id),
            platform_id=self.platform_id,
            platform_type=self.PLATFORM,
            amount=to_decimal(record.get("amount", record.get("total"))),
            currency=self.map_currency(record.get("currency")),
            status=self.map_status(status),
            customer=self.parse_customer(record.get("customer")),
            payment_method=self.map_payment_method(record.get("payment_method")),
            metadata=metadata,
            created_at=parse_datetime(record.get("created_at")),
            updated_at=parse_datetime(record.get("updated_at")),
        )

    def parse_status(self, data: Any, response_time: float) -> PlatformStatus:
        body = data if isinstance(data, dict) else {}
        raw = str(body.get("status", "active")).lower()
        healthy = raw in ("active", "ok", "operational", "online", "up")
        is_active = bool(body.get("is_active", healthy))
        return PlatformStatus(
            is_active=is_active,
            error_rate=float(body.get("error_rate", 0) or 0),
            status=(
                TransactionStatus.active if is_active else TransactionStatus.inactive
            ),
            last_checked=datetime.now(UTC),
            api_version=(
                body.get("api_version") or body.get("version") or self.API_VERSION
            ),
            response_time=response_time,
        )

    # ------------------------------------------------------------------ payloads

    def validate_payment_request(self, request: PaymentRequest) -> None:
        if request.amount is None or request.amount <= 0:
            raise PaymentValidationError("Amount must be greater than zero")
        if not request.customer or not request.customer.email:
            raise PaymentValidationError("Customer email is required")

    def build_payment_payload(self, request: PaymentRequest) -> dict[str, Any]:
        return {
            "amount": float(request.amount),
            "currency": request.currency.value,
            "payment_method": request.payment_method.value,
            "description": request.description,
            "order_id": request.order_id,
            "customer": request.customer.model_dump(exclude_none=True),
            "metadata": request.metadata,
        }

    def build_refund_payload(
        self, amount: Decimal | None, reason: str | None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if amount is not None:
            payload["amount"] = float(amount)
        if reason:
            payload["reason"] = reason
        return payload

    def _path(self, template: str, transaction_id: str) -> str:
        return template.format(transaction_id=transaction_id)

    # ------------------------------------------------------------------ operations

    def process_payment(self, request: PaymentRequest) -> TransactionRecord:
        self.validate_payment_request(request)
        data = self._request(
            "POST", self.PAYMENT_PATH, payload=self.build_payment_payload(request)
        )
        record = self.parse_transaction(data)
        # Fill gaps from the request when the platform echoes a minimal body
        updates: dict[str, Any] = {}
        if not record.order_id and request.order_id:
            updates["order_id"] = request.order_id
        if not record.amount:
            updates["amount"] = request.amount
            updates["currency"] = request.currency
        if record.customer is None:
            updates["customer"] = request.customer
        if record.payment_method is None:
            updates["payment_method"] = request.payment_method
        return record.model_copy(update=updates) if updates else record

    def refund_transaction(
        self,
        transaction_id: str,
        amount: Decimal | None = None,
        reason: str | None = None,
    ) -> TransactionRecord:
        data = self._request(
            "POST",
            self._path(self.REFUND_PATH, transaction_id),
            payload=self.build_refund_payload(amount, reason),
        )
        record = self.parse_transaction(data)
        updates: dict[str, Any] = {
            "status": TransactionStatus.refunded,
            "provider_id": transaction_id,
        }
        if record.provider_id and record.provider_id != transaction_id:
            updates["metadata"] = {**record.metadata, "refund_id": record.provider_id}
        if amount is not None and not record.amount:
            updates["amount"] = amount
        return record.model_copy(update=updates)

    def get_transaction(self, transaction_id: str) -> TransactionRecord:
        data = self._request("GET", self._path(self.TRANSACTION_PATH, transaction_id))
        record = self.parse_transaction(data)
        if not record.provider_id:
            record = record.model_copy(update={"provider_id": transaction_id})
        return record

    def date_params(
        self, start_date: datetime | None, end_date: datetime | None
    ) -> dict[str, str]:
        params = {}
        start_key, end_key = self.DATE_PARAMS
        if start_date:
            params[start_key] = start_date.isoformat()
        if end_date:
            params[end_key] = end_date.isoformat()
        return params

    def get_transactions(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[TransactionRecord]:
        data = self._request(
            "GET",
            self.TRANSACTIONS_PATH,
            params=self.date_params(start_date, end_date) or None,
        )
        return [self.parse_transaction(item) for item in self._extract_list(data)]

    def get_status(self) -> PlatformStatus:
        if self._status_cache is not None:
            cached, stored_at = self._status_cache
            if time.monotonic() - stored_at < self.status_cache_ttl:
                return cached

        started = time.perf_counter()
        try:
            data = self._request("GET", self.STATUS_PATH)
        except PlatformAPIError as exc:
            log.warning(
                BusinessEvents.PLATFORM_STATUS,
                platform=self.platform_name,
                platform_id=self.platform_id,
                is_active=False,
                error=str(exc),
            )
            return PlatformStatus(
                is_active=False,
                error_rate=1.0,
                status=TransactionStatus.error,
                last_checked=datetime.now(UTC),
                errors=[str(exc)],
            )

        status = self.parse_status(data, time.perf_counter() - started)
        self._status_cache = (status, time.monotonic())
        return status

    def clear_status_cache(self) -> None:
        self._status_cache = None

    def cancel_transaction(self, transaction_id: str) -> TransactionRecord:
        data = self._request(
            self.CANCEL_METHOD,
            self.cancel_path(transaction_id),
            payload=self.build_cancel_payload(),
        )
        record = self.parse_transaction(data)
        return record.model_copy(
            update={"status": TransactionStatus.cancelled, "provider_id": transaction_id}
        )

    def cancel_path(self, transaction_id: str) -> str:
        return self._path(self.CANCEL_PATH, transaction_id)

    def build_cancel_payload(self) -> dict[str, Any] | None:
        return None

    # ------------------------------------------------------------------ webhooks

    def validate_webhook_signature(
        self, signature: str | None, payload: bytes | str | dict[str, Any]
    ) -> bool:
        secret = self.settings.webhook_secret or self.settings.secret_key
        return verify_signature(
            secret,
            signature,
            payload,
            encoding=self.SIGNATURE_ENCODING,
            prefix=self.SIGNATURE_PREFIX,
        )

    def webhook_event_name(self, payload: dict[str, Any]) -> str:
        for key in ("event", "type", "topic", "event_type", "action"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
        return "unknown"

    def parse_webhook(self, payload: dict[str, Any]) -> TransactionRecord:
        body = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        return self.parse_transaction(body)

    def close(self) -> None:
        if self._owns_session:
            self.session.close()


def _str_or_none(value: Any) -> str | None:
    return None if value is None or value == "" else str(value)
