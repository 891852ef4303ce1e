"""
Checkout and gateway platforms that follow the common REST shape.

Each adapter only declares its hosts, authentication headers and status
vocabulary; request and response handling come from ``BasePlatformAdapter``.
"""

from db.models import PaymentPlatform, TransactionStatus
from payments.platforms.base import CHECKOUT_STATUS_MAP, BasePlatformAdapter
from payments.registry import register


class BearerAdapter(BasePlatformAdapter):
    """Platforms authenticated with ``Authorization: Bearer <api key>``."""

    STATUS_MAP = CHECKOUT_STATUS_MAP
    DEFAULT_STATUS = TransactionStatus.failed

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.settings.api_key}"}


@register(PaymentPlatform.appmax)
class AppmaxAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://api.sandbox.appmax.com.br"
    PRODUCTION_API_URL = "https://api.appmax.com.br"

    PAYMENT_PATH = "/api/v3/orders"
    TRANSACTIONS_PATH = "/api/v3/orders"
    TRANSACTION_PATH = "/api/v3/orders/{transaction_id}"
    REFUND_PATH = "/api/v3/orders/{transaction_id}/refund"
    CANCEL_PATH = "/api/v3/orders/{transaction_id}/cancel"
    STATUS_PATH = "/api/v3/status"

    def auth_headers(self) -> dict[str, str]:
        return {**super().auth_headers(), "X-Secret-Key": self.settings.secret_key or ""}


@register(PaymentPlatform.cartpanda)
class CartPandaAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://sandbox.cartpanda.com.br/api/v1"
    PRODUCTION_API_URL = "https://api.cartpanda.com.br/v1"

    STATUS_MAP = {
        "pending": TransactionStatus.pending,
        "processing": TransactionStatus.processing,
        "completed": TransactionStatus.completed,
        "approved": TransactionStatus.completed,
        "failed": TransactionStatus.failed,
        "declined": TransactionStatus.failed,
        "refunded": TransactionStatus.refunded,
        "disputed": TransactionStatus.processing,
        "cancelled": TransactionStatus.cancelled,
    }
    DEFAULT_STATUS = TransactionStatus.pending

    PAYMENT_PATH = "/orders"
    TRANSACTIONS_PATH = "/orders"
    TRANSACTION_PATH = "/orders/{transaction_id}"
    REFUND_PATH = "/orders/{transaction_id}/refunds"
    CANCEL_PATH = "/orders/{transaction_id}/cancel"


@register(PaymentPlatform.clickbank)
class ClickBankAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://api.sandbox.clickbank.com/rest/1.3"
    PRODUCTION_API_URL = "https://api.clickbank.com/rest/1.3"

    STATUS_MAP = {
        **CHECKOUT_STATUS_MAP,
        "complete": TransactionStatus.completed,
        "shipped": TransactionStatus.completed,
        "sale": TransactionStatus.completed,
        "rfnd": TransactionStatus.refunded,
        "cgbk": TransactionStatus.refunded,
        "cancel-rebill": TransactionStatus.cancelled,
    }

    PAYMENT_PATH = "/orders"
    TRANSACTIONS_PATH = "/orders/list"
    TRANSACTION_PATH = "/orders/{transaction_id}"
    REFUND_PATH = "/orders/{transaction_id}/refund"
    CANCEL_PATH = "/orders/{transaction_id}/cancel"
    DATE_PARAMS = ("startDate", "endDate")


@register(PaymentPlatform.digistore24)
class Digistore24Adapter(BasePlatformAdapter):
    SANDBOX_API_URL = "https://sandbox.digistore24.com/api/v1"
    PRODUCTION_API_URL = "https://www.digistore24.com/api/v1"

    REQUIRED_CREDENTIALS = ("api_key",)
    STATUS_MAP = {
        **CHECKOUT_STATUS_MAP,
        "delivered": TransactionStatus.completed,
        "payment_pending": TransactionStatus.pending,
    }
    DEFAULT_STATUS = TransactionStatus.failed

    SIGNATURE_HEADER = "X-DS-Signature"

    PAYMENT_PATH = "/purchases"
    TRANSACTIONS_PATH = "/purchases"
    TRANSACTION_PATH = "/purchases/{transaction_id}"
    REFUND_PATH = "/purchases/{transaction_id}/refund"
    CANCEL_PATH = "/purchases/{transaction_id}/cancel"
    LIST_KEYS = ("purchases", "data")

    def auth_headers(self) -> dict[str, str]:
        return {"X-DS-API-KEY": self.settings.api_key or ""}


@register(PaymentPlatform.doppus)
class DoppusAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://api.sandbox.doppus.com/v1"
    PRODUCTION_API_URL = "https://api.doppus.com/v1"

    def auth_headers(self) -> dict[str, str]:
        merchant = self.settings.merchant_id or self.settings.secret_key
        return {**super().auth_headers(), "X-Merchant-Id": merchant or ""}


@register(PaymentPlatform.fortpay)
class FortPayAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://sandbox.fortpay.com.br/api/v1"
    PRODUCTION_API_URL = "https://api.fortpay.com.br/v1"

    STATUS_MAP = {**CHECKOUT_STATUS_MAP, "captured": TransactionStatus.completed}


@register(PaymentPlatform.hubla)
class HublaAdapter(BasePlatformAdapter):
    SANDBOX_API_URL = "https://sandbox.hub.la/api/v1"
    PRODUCTION_API_URL = "https://api.hub.la/v1"

    STATUS_MAP = CHECKOUT_STATUS_MAP
    DEFAULT_STATUS = TransactionStatus.failed

    def auth_headers(self) -> dict[str, str]:
        return {
            "X-Api-Key": self.settings.api_key or "",
            "X-Secret-Key": self.settings.secret_key or "",
        }


@register(PaymentPlatform.logzz)
class LogzzAdapter(BearerAdapter):
    """Cash-on-delivery logistics; delivery state drives the payment state."""

    SANDBOX_API_URL = "https://sandbox.logzz.com.br/api/v1"
    PRODUCTION_API_URL = "https://api.logzz.com.br/v1"

    STATUS_MAP = {
        **CHECKOUT_STATUS_MAP,
        "delivered": TransactionStatus.completed,
        "in_transit": TransactionStatus.processing,
        "shipped": TransactionStatus.processing,
        "returned": TransactionStatus.refunded,
        "frustrated": TransactionStatus.failed,
    }

    PAYMENT_PATH = "/orders"
    TRANSACTIONS_PATH = "/orders"
    TRANSACTION_PATH = "/orders/{transaction_id}"
    REFUND_PATH = "/orders/{transaction_id}/refund"
    CANCEL_PATH = "/orders/{transaction_id}/cancel"


@register(PaymentPlatform.maxweb)
class MaxWebAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://sandbox.maxweb.com.br/api/v1"
    PRODUCTION_API_URL = "https://api.maxweb.com.br/v1"


@register(PaymentPlatform.mundpay)
class MundPayAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://sandbox.mundpay.com/api/v1"
    PRODUCTION_API_URL = "https://api.mundpay.com/v1"

    STATUS_MAP = {**CHECKOUT_STATUS_MAP, "authorized": TransactionStatus.pending}

    def auth_headers(self) -> dict[str, str]:
        return {
            **super().auth_headers(),
            "X-Account-Token": self.settings.secret_key or "",
        }


@register(PaymentPlatform.nitro)
class NitroAdapter(BasePlatformAdapter):
    SANDBOX_API_URL = "https://sandbox.nitro.com/api/v1"
    PRODUCTION_API_URL = "https://api.nitro.com/v1"

    STATUS_MAP = CHECKOUT_STATUS_MAP
    DEFAULT_STATUS = TransactionStatus.failed

    def auth_headers(self) -> dict[str, str]:
        return {
            "X-API-Key": self.settings.api_key or "",
            "X-Secret-Key": self.settings.secret_key or "",
        }


@register(PaymentPlatform.pagtrust)
class PagTrustAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://sandbox.pagtrust.com.br/api/v1"
    PRODUCTION_API_URL = "https://api.pagtrust.com.br/v1"


@register(PaymentPlatform.pepper)
class PepperAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://sandbox.pepper.com.br/api/v1"
    PRODUCTION_API_URL = "https://api.pepper.com.br/v1"


@register(PaymentPlatform.strivpay)
class StrivPayAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://sandbox.strivpay.com/api/v1"
    PRODUCTION_API_URL = "https://api.strivpay.com/v1"


@register(PaymentPlatform.systeme)
class SystemeAdapter(BasePlatformAdapter):
    SANDBOX_API_URL = "https://api.systeme.io/api"
    PRODUCTION_API_URL = "https://api.systeme.io/api"

    REQUIRED_CREDENTIALS = ("api_key",)
    STATUS_MAP = CHECKOUT_STATUS_MAP
    DEFAULT_STATUS = TransactionStatus.failed

    PAYMENT_PATH = "/orders"
    TRANSACTIONS_PATH = "/orders"
    TRANSACTION_PATH = "/orders/{transaction_id}"
    REFUND_PATH = "/orders/{transaction_id}/refund"
    CANCEL_PATH = "/orders/{transaction_id}/cancel"
    LIST_KEYS = ("items", "orders", "data")

    def auth_headers(self) -> dict[str, str]:
        return {"X-Api-Key": self.settings.api_key or ""}


@register(PaymentPlatform.tray)
class TrayAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://sandbox.tray.com.br/api/v1"
    PRODUCTION_API_URL = "https://api.tray.com.br/v1"

    REQUEST_SIGNATURE_HEADER = "X-Tray-Signature"
    SIGNATURE_HEADER = "X-Tray-Signature"


@register(PaymentPlatform.vindi)
class VindiAdapter(BearerAdapter):
    SANDBOX_API_URL = "https://sandbox-app.vindi.com.br/api/v1"
    PRODUCTION_API_URL = "https://app.vindi.com.br/api/v1"

    STATUS_MAP = {
        **CHECKOUT_STATUS_MAP,
        "review": TransactionStatus.processing,
        "scheduled": TransactionStatus.pending,
    }

    REQUEST_SIGNATURE_HEADER = "X-Vindi-Signature"
    SIGNATURE_HEADER = "X-Vindi-Signature"

    PAYMENT_PATH = "/bills"
    TRANSACTIONS_PATH = "/bills"
    TRANSACTION_PATH = "/bills/{transaction_id}"
    REFUND_PATH = "/charges/{transaction_id}/refund"
    CANCEL_PATH = "/bills/{transaction_id}"
    CANCEL_METHOD = "DELETE"
    LIST_KEYS = ("bills", "data")
    RECORD_KEYS = ("bill", "charge", "data")


@register(PaymentPlatform.yapay)
class YapayAdapter(BasePlatformAdapter):
    SANDBOX_API_URL = "https://api.intermediador.sandbox.yapay.com.br/api/v3"
    PRODUCTION_API_URL = "https://api.intermediador.yapay.com.br/api/v3"

    STATUS_MAP = CHECKOUT_STATUS_MAP
    DEFAULT_STATUS = TransactionStatus.failed

    REQUEST_SIGNATURE_HEADER = "X-Yapay-Signature"
    SIGNATURE_HEADER = "X-Yapay-Signature"

    def auth_headers(self) -> dict[str, str]:
        return {"X-Yapay-Access-Token": self.settings.api_key or ""}
