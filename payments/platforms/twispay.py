from db.models import PaymentPlatform, TransactionStatus
from payments.platforms.base import BasePlatformAdapter
from payments.registry import register


@register(PaymentPlatform.twispay)
class TwispayAdapter(BasePlatformAdapter):
    SANDBOX_API_URL = "https://api-stage.twispay.com"
    PRODUCTION_API_URL = "https://api.twispay.com"

    STATUS_MAP = {
        "complete-ok": TransactionStatus.completed,
        "paid": TransactionStatus.completed,
        "completed": TransactionStatus.completed,
        "authorized": TransactionStatus.processing,
        "in-progress": TransactionStatus.processing,
        "pending": TransactionStatus.pending,
        "refund-ok": TransactionStatus.refunded,
        "refunded": TransactionStatus.refunded,
        "cancel-ok": TransactionStatus.cancelled,
        "voided": TransactionStatus.cancelled,
        "complete-failed": TransactionStatus.failed,
        "failed": TransactionStatus.failed,
        "active": TransactionStatus.active,
        "inactive": TransactionStatus.inactive,
        "error": TransactionStatus.error,
    }
    DEFAULT_STATUS = TransactionStatus.unknown

    SIGNATURE_HEADER = "X-Twispay-Signature"
    SIGNATURE_ENCODING = "base64"

    PAYMENT_PATH = "/order"
    TRANSACTIONS_PATH = "/transaction"
    TRANSACTION_PATH = "/transaction/{transaction_id}"
    REFUND_PATH = "/transaction/{transaction_id}/refund"
    CANCEL_PATH = "/transaction/{transaction_id}"
    CANCEL_METHOD = "DELETE"
    STATUS_PATH = "/status"
    DATE_PARAMS = ("createdAtFrom", "createdAtTo")

    def auth_headers(self) -> dict[str, str]:
        return {"X-Twispay-Access-Token": self.settings.api_key or ""}
