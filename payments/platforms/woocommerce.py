import base64
from decimal import Decimal
from typing import Any

from db.models import PaymentPlatform, TransactionStatus
from payments.platforms.base import BasePlatformAdapter, parse_datetime, to_decimal
from payments.registry import register
from payments.schemas import PaymentRequest, TransactionRecord


@register(PaymentPlatform.woocommerce)
class WooCommerceAdapter(BasePlatformAdapter):
    """WooCommerce REST API (v3) of a self-hosted store."""

    API_VERSION = "wc/v3"
    REQUIRED_CREDENTIALS = ("api_key", "secret_key", "store_url")

    STATUS_MAP = {
        "completed": TransactionStatus.completed,
        "approved": TransactionStatus.completed,
        "paid": TransactionStatus.completed,
        "pending": TransactionStatus.pending,
        "waiting_payment": TransactionStatus.pending,
        "processing": TransactionStatus.pending,
        "on-hold": TransactionStatus.pending,
        "failed": TransactionStatus.failed,
        "declined": TransactionStatus.failed,
        "refunded": TransactionStatus.refunded,
        "cancelled": TransactionStatus.cancelled,
        "inactive": TransactionStatus.inactive,
        "error": TransactionStatus.error,
    }
    DEFAULT_STATUS = TransactionStatus.unknown

    SIGNATURE_HEADER = "X-WC-Webhook-Signature"
    SIGNATURE_ENCODING = "base64"

    PAYMENT_PATH = "/orders"
    TRANSACTIONS_PATH = "/orders"
    TRANSACTION_PATH = "/orders/{transaction_id}"
    REFUND_PATH = "/orders/{transaction_id}/refunds"
    CANCEL_PATH = "/orders/{transaction_id}"
    CANCEL_METHOD = "PUT"
    STATUS_PATH = "/system_status"
    DATE_PARAMS = ("after", "before")

    @property
    def base_url(self) -> str:
        store = (self.settings.store_url or "").rstrip("/")
        return f"{store}/wp-json/{self.API_VERSION}"

    def auth_headers(self) -> dict[str, str]:
        token = f"{self.settings.api_key}:{self.settings.secret_key}".encode("utf-8")
        return {"Authorization": f"Basic {base64.b64encode(token).decode('ascii')}"}

    def build_payment_payload(self, request: PaymentRequest) -> dict[str, Any]:
        first, _, last = request.customer.name.partition(" ")
        meta_data = [
            {"key": key, "value": value} for key, value in request.metadata.items()
        ]
        if request.order_id:
            meta_data.append({"key": "order_id", "value": request.order_id})
        return {
            "payment_method": request.payment_method.value,
            "payment_method_title": request.payment_method.value.replace("_", " "),
            "set_paid": False,
            "currency": request.currency.value,
            "customer_note": request.description or "",
            "billing": {
                "first_name": first,
                "last_name": last,
                "email": request.customer.email,
                "phone": request.customer.phone or "",
            },
            "fee_lines": [
                {
                    "name": request.description or "Payment",
                    "total": str(request.amount),
                }
            ],
            "meta_data": meta_data,
        }

    def build_refund_payload(
        self, amount: Decimal | None, reason: str | None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"api_refund": True}
        if amount is not None:
            payload["amount"] = str(amount)
        if reason:
            payload["reason"] = reason
        return payload

    def build_cancel_payload(self) -> dict[str, Any]:
        return {"status": "cancelled"}

    def parse_transaction(self, data: Any) -> TransactionRecord:
        order = self._unwrap(data)
        billing = order.get("billing") or {}
        meta = {
            item.get("key"): item.get("value")
            for item in order.get("meta_data") or []
            if isinstance(item, dict)
        }
        return TransactionRecord(
            provider_id=str(order.get("id") or ""),
            order_id=str(meta.get("order_id") or order.get("number") or "") or None,
            platform_id=self.platform_id,
            platform_type=self.PLATFORM,
            amount=to_decimal(order.get("total", order.get("amount"))),
            currency=self.map_currency(order.get("currency")),
            status=self.map_status(order.get("status")),
            customer=self.parse_customer(billing),
            payment_method=self.map_payment_method(order.get("payment_method")),
            metadata={
                **(
                    {"gateway_transaction_id": order["transaction_id"]}
                    if order.get("transaction_id")
                    else {}
                ),
                **self.status_metadata(order.get("status")),
            },
            created_at=parse_datetime(
                order.get("date_created_gmt") or order.get("date_created")
            ),
            updated_at=parse_datetime(
                order.get("date_modified_gmt") or order.get("date_modified")
            ),
        )

    def parse_status(self, data: Any, response_time: float):
        environment = (data or {}).get("environment") or {}
        status = super().parse_status({"status": "active"}, response_time)
        return status.model_copy(
            update={"api_version": environment.get("version") or self.API_VERSION}
        )

    def webhook_event_name(self, payload: dict[str, Any]) -> str:
        # Topic travels in a header; the body is the bare order
        name = super().webhook_event_name(payload)
        if name == "unknown" and payload.get("id"):
            return "order.updated"
        return name
