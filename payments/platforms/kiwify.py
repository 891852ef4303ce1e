from typing import Any

from db.models import PaymentPlatform
from payments.platforms.base import CHECKOUT_STATUS_MAP, BasePlatformAdapter
from payments.registry import register
from payments.schemas import TransactionRecord

TRACKING_FIELDS = (
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "fbclid",
    "gclid",
)


@register(PaymentPlatform.kiwify)
class KiwifyAdapter(BasePlatformAdapter):
    """Kiwify orders API; the secret key doubles as the store id."""

    SANDBOX_API_URL = "https://api.sandbox.kiwify.com.br"
    PRODUCTION_API_URL = "https://api.kiwify.com.br"

    STATUS_MAP = CHECKOUT_STATUS_MAP

    SIGNATURE_HEADER = "X-Kiwify-Signature"

    PAYMENT_PATH = "/v1/orders"
    TRANSACTIONS_PATH = "/v1/orders"
    TRANSACTION_PATH = "/v1/orders/{transaction_id}"
    REFUND_PATH = "/v1/orders/{transaction_id}/refund"
    CANCEL_PATH = "/v1/orders/{transaction_id}/cancel"
    STATUS_PATH = "/v1/status"

    def auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.api_key}",
            "X-Store-Id": self.settings.secret_key or "",
        }

    def parse_transaction(self, data: Any) -> TransactionRecord:
        order = self._unwrap(data)
        record = super().parse_transaction(order)

        metadata = dict(record.metadata)
        tracking = order.get("tracking") or {}
        utm = {key: tracking[key] for key in TRACKING_FIELDS if tracking.get(key)}
        if utm:
            metadata["tracking"] = utm
        product = order.get("product")
        if isinstance(product, dict):
            metadata["product"] = {
                key: product.get(key) for key in ("id", "name", "price", "quantity")
            }
        details = order.get("payment_details") or {}
        if details.get("installments"):
            metadata["installments"] = details["installments"]
        return record.model_copy(update={"metadata": metadata})
