from decimal import Decimal
from typing import Any

from db.models import PaymentPlatform, TransactionStatus
from payments.platforms.base import (
    BasePlatformAdapter,
    parse_datetime,
    to_decimal,
)
from payments.registry import register
from payments.schemas import PaymentRequest, TransactionRecord


@register(PaymentPlatform.shopify)
class ShopifyAdapter(BasePlatformAdapter):
    """Shopify Admin REST API; orders stand in for transactions."""

    API_VERSION = "2024-01"
    REQUIRED_CREDENTIALS = ("api_key", "shop_domain")

    STATUS_FIELD = "financial_status"
    STATUS_MAP = {
        "pending": TransactionStatus.pending,
        "authorized": TransactionStatus.processing,
        "partially_paid": TransactionStatus.processing,
        "paid": TransactionStatus.completed,
        "partially_refunded": TransactionStatus.refunded,
        "refunded": TransactionStatus.refunded,
        "voided": TransactionStatus.cancelled,
        "failed": TransactionStatus.failed,
    }

    SIGNATURE_HEADER = "X-Shopify-Hmac-Sha256"
    SIGNATURE_ENCODING = "base64"

    PAYMENT_PATH = "/orders.json"
    TRANSACTIONS_PATH = "/orders.json"
    TRANSACTION_PATH = "/orders/{transaction_id}.json"
    REFUND_PATH = "/orders/{transaction_id}/refunds.json"
    CANCEL_PATH = "/orders/{transaction_id}/cancel.json"
    STATUS_PATH = "/shop.json"
    DATE_PARAMS = ("created_at_min", "created_at_max")
    LIST_KEYS = ("orders",)
    RECORD_KEYS = ("order", "refund")

    @property
    def base_url(self) -> str:
        domain = (self.settings.shop_domain or "").strip().rstrip("/")
        domain = domain.removeprefix("https://").removeprefix("http://")
        return f"https://{domain}/admin/api/{self.API_VERSION}"

    def auth_headers(self) -> dict[str, str]:
        return {"X-Shopify-Access-Token": self.settings.api_key or ""}

    def build_payment_payload(self, request: PaymentRequest) -> dict[str, Any]:
        first, _, last = request.customer.name.partition(" ")
        order: dict[str, Any] = {
            "email": request.customer.email,
            "currency": request.currency.value,
            "financial_status": "pending",
            "line_items": [
                {
                    "title": request.description or "Payment",
                    "price": str(request.amount),
                    "quantity": 1,
                }
            ],
            "customer": {"first_name": first, "last_name": last},
            "transactions": [
                {
                    "kind": "sale",
                    "status": "pending",
                    "amount": str(request.amount),
                    "gateway": request.payment_method.value,
                }
            ],
            "note_attributes": [
                {"name": key, "value": str(value)}
                for key, value in request.metadata.items()
            ],
        }
        if request.customer.phone:
            order["phone"] = request.customer.phone
        if request.order_id:
            order["source_identifier"] = request.order_id
        return {"order": order}

    def build_refund_payload(
        self, amount: Decimal | None, reason: str | None
    ) -> dict[str, Any]:
        refund: dict[str, Any] = {"notify": True}
        if reason:
            refund["note"] = reason
        if amount is not None:
            refund["transactions"] = [{"kind": "refund", "amount": str(amount)}]
        return {"refund": refund}

    def build_cancel_payload(self) -> dict[str, Any]:
        return {}

    def date_params(self, start_date, end_date) -> dict[str, str]:
        params = super().date_params(start_date, end_date)
        params["status"] = "any"
        return params

    def parse_transaction(self, data: Any) -> TransactionRecord:
        order = self._unwrap(data)
        gateways = order.get("payment_gateway_names") or []
        return TransactionRecord(
            provider_id=str(order.get("id") or order.get("order_id") or ""),
            order_id=str(order.get("name") or order.get("order_number") or "") or None,
            platform_id=self.platform_id,
            platform_type=self.PLATFORM,
            amount=to_decimal(
                order.get("total_price", order.get("current_total_price"))
            ),
            currency=self.map_currency(order.get("currency")),
            status=self.map_status(order.get("financial_status")),
            customer=self.parse_customer(
                {**(order.get("customer") or {}), "email": order.get("email")}
                if order.get("email")
                else order.get("customer")
            ),
            payment_method=self.map_payment_method(
                order.get("gateway") or (gateways[0] if gateways else None)
            ),
            metadata={
                "fulfillment_status": order.get("fulfillment_status"),
                "cancelled_at": order.get("cancelled_at"),
                "landing_site": order.get("landing_site"),
                "referring_site": order.get("referring_site"),
                **self.status_metadata(order.get("financial_status")),
            },
            created_at=parse_datetime(order.get("created_at")),
            updated_at=parse_datetime(order.get("updated_at")),
        )

    def parse_status(self, data: Any, response_time: float):
        shop = (data or {}).get("shop") or {}
        return super().parse_status(
            {"status": "active" if shop else "inactive"}, response_time
        )

    def webhook_event_name(self, payload: dict[str, Any]) -> str:
        # Topic travels in a header; the body is the bare order
        name = super().webhook_event_name(payload)
        if name == "unknown" and payload.get("id"):
            return "order.updated"
        return name
