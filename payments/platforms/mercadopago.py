from typing import Any

from db.models import PaymentPlatform, TransactionStatus
from payments.platforms.base import BasePlatformAdapter
from payments.registry import register
from payments.schemas import PaymentRequest


@register(PaymentPlatform.mercadopago)
class MercadoPagoAdapter(BasePlatformAdapter):
    SANDBOX_API_URL = "https://api.mercadopago.com/sandbox/v1"
    PRODUCTION_API_URL = "https://api.mercadopago.com/v1"

    STATUS_MAP = {
        "approved": TransactionStatus.completed,
        "completed": TransactionStatus.completed,
        "authorized": TransactionStatus.processing,
        "in_process": TransactionStatus.processing,
        "in_mediation": TransactionStatus.processing,
        "processing": TransactionStatus.processing,
        "pending": TransactionStatus.pending,
        "rejected": TransactionStatus.failed,
        "failed": TransactionStatus.failed,
        "refunded": TransactionStatus.refunded,
        "charged_back": TransactionStatus.refunded,
        "cancelled": TransactionStatus.cancelled,
    }

    REQUEST_SIGNATURE_HEADER = "X-MercadoPago-Signature"
    SIGNATURE_HEADER = "X-Signature"

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.settings.api_key}"}

    def build_payment_payload(self, request: PaymentRequest) -> dict[str, Any]:
        payload = super().build_payment_payload(request)
        payload["transaction_amount"] = payload.pop("amount")
        payload["external_reference"] = request.order_id
        payload["payer"] = {
            "email": request.customer.email,
            "first_name": request.customer.name,
            "identification": {"number": request.customer.document}
            if request.customer.document
            else None,
        }
        return payload

    def parse_transaction(self, data: Any):
        record = self._unwrap(data)
        if "transaction_amount" in record and "amount" not in record:
            record = {**record, "amount": record["transaction_amount"]}
        if "external_reference" in record and not record.get("order_id"):
            record = {**record, "order_id": record["external_reference"]}
        if "currency_id" in record and not record.get("currency"):
            record = {**record, "currency": record["currency_id"]}
        if isinstance(record.get("payer"), dict) and not record.get("customer"):
            record = {**record, "customer": record["payer"]}
        if "payment_type_id" in record and not record.get("payment_method"):
            record = {**record, "payment_method": record["payment_type_id"]}
        if "date_created" in record and not record.get("created_at"):
            record = {**record, "created_at": record["date_created"]}
        return super().parse_transaction(record)
