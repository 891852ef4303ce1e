from db.models import PaymentPlatform, TransactionStatus
from payments.platforms.base import CHECKOUT_STATUS_MAP, BasePlatformAdapter
from payments.registry import register


@register(PaymentPlatform.ticto)
class TictoAdapter(BasePlatformAdapter):
    """Ticto signs every outbound call and flags risky orders as disputes."""

    SANDBOX_API_URL = "https://sandbox.ticto.com.br/api/v1"
    PRODUCTION_API_URL = "https://api.ticto.com.br/v1"

    STATUS_MAP = {
        **CHECKOUT_STATUS_MAP,
        "chargeback": TransactionStatus.failed,
        "high_risk": TransactionStatus.failed,
        "blocked": TransactionStatus.failed,
        "dispute": TransactionStatus.processing,
        "analysis": TransactionStatus.processing,
        "fraud_analysis": TransactionStatus.processing,
    }

    REQUEST_SIGNATURE_HEADER = "X-Ticto-Signature"
    SIGNATURE_HEADER = "X-Ticto-Signature"

    def auth_headers(self) -> dict[str, str]:
        return {"X-Ticto-Key": self.settings.api_key or ""}
