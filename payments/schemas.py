"""
Value types exchanged between the hub and its platform adapters.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from db.models import Currency, PaymentMethod, PaymentPlatform, TransactionStatus


class Customer(BaseModel):
    name: str = ""
    email: str | None = None
    document: str | None = None
    phone: str | None = None
    address: dict[str, Any] | None = None


class PlatformCredentials(BaseModel):
    """Account settings for one platform; camelCase keys are accepted too."""

    api_key: str | None = Field(default=None, alias="apiKey")
    secret_key: str | None = Field(default=None, alias="secretKey")
    webhook_secret: str | None = Field(default=None, alias="webhookSecret")
    sandbox: bool = False
    currency: Currency | None = None
    shop_domain: str | None = Field(default=None, alias="shopDomain")
    store_url: str | None = Field(default=None, alias="storeUrl")
    merchant_id: str | None = Field(default=None, alias="merchantId")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def value(self, name: str):
        """Credential by field name, including free-form extras."""
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.model_extra or {}).get(name)


class PlatformConfig(BaseModel):
    platform_id: str
    platform_type: PaymentPlatform
    settings: PlatformCredentials = Field(default_factory=PlatformCredentials)


class PaymentRequest(BaseModel):
    amount: Decimal
    currency: Currency = Currency.BRL
    payment_method: PaymentMethod = PaymentMethod.credit_card
    customer: Customer
    description: str | None = None
    order_id: str | None = None
    user_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TransactionRecord(BaseModel):
    """A transaction as reported by a payment platform."""

    provider_id: str
    order_id: str | None = None
    platform_id: str
    platform_type: PaymentPlatform
    amount: Decimal = Decimal("0")
    currency: Currency = Currency.BRL
    status: TransactionStatus = TransactionStatus.pending
    customer: Customer | None = None
    payment_method: PaymentMethod | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PlatformStatus(BaseModel):
    is_active: bool
    error_rate: float = 0.0
    status: TransactionStatus
    last_checked: datetime
    api_version: str | None = None
    response_time: float | None = None
    errors: list[str] = Field(default_factory=list)
