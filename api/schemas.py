"""
API Schemas Module

This module defines Pydantic models for request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from db.models import (
    Currency,
    FraudRuleAction,
    FraudRuleType,
    NotificationChannel,
    NotificationType,
    PaymentMethod,
    PaymentPlatform,
    ReportFormat,
    ReportType,
    TransactionStatus,
)


class PlatformCreate(BaseModel):
    platform_id: str = Field(min_length=1, max_length=100)
    name: str
    platform_type: PaymentPlatform
    settings: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None
    is_active: bool = True


class PlatformUpdate(BaseModel):
    name: str | None = None
    settings: dict[str, Any] | None = None
    is_active: bool | None = None


class TransactionOut(BaseModel):
    id: int
    user_id: str | None = None
    platform_id: str
    platform_type: PaymentPlatform
    provider_id: str | None = None
    order_id: str | None = None
    amount: Decimal
    currency: Currency
    status: TransactionStatus
    customer: dict[str, Any] = Field(default_factory=dict)
    payment_method: PaymentMethod | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="meta")
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class RefundRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)
    reason: str | None = None


class DeviceInfo(BaseModel):
    ip_address: str | None = None
    user_agent: str | None = None
    device_id: str | None = None
    country: str | None = Field(default=None, max_length=2)


class FraudRuleCreate(BaseModel):
    name: str
    description: str | None = None
    rule_type: FraudRuleType
    conditions: dict[str, Any] = Field(default_factory=dict)
    score: int = Field(ge=0)
    action: FraudRuleAction = FraudRuleAction.flag
    enabled: bool = True


class FraudRuleUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    conditions: dict[str, Any] | None = None
    score: int | None = Field(default=None, ge=0)
    action: FraudRuleAction | None = None
    enabled: bool | None = None


class ReconciliationRun(BaseModel):
    start_date: datetime
    end_date: datetime
    platform_id: str | None = None


class ResolveRequest(BaseModel):
    resolution: str
    status: TransactionStatus | None = None
    amount: Decimal | None = None
    currency: Currency | None = None
    payment_method: PaymentMethod | None = None

    def updates(self) -> dict[str, Any]:
        return self.model_dump(exclude={"resolution"}, exclude_none=True)


class ReportCreate(BaseModel):
    report_type: ReportType
    format: ReportFormat = ReportFormat.json
    start_date: datetime | None = None
    end_date: datetime | None = None
    platform_id: str | None = None
    status: TransactionStatus | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    user_id: str | None = None

    def filters(self) -> dict[str, Any]:
        return self.model_dump(
            exclude={"report_type", "format", "user_id"}, exclude_none=True
        )


class TemplateCreate(BaseModel):
    type: NotificationType
    channel: NotificationChannel
    subject: str | None = None
    body: str
    enabled: bool = True


class TemplateUpdate(BaseModel):
    subject: str | None = None
    body: str | None = None
    enabled: bool | None = None


class UtmCreate(BaseModel):
    base_url: str
    source: str
    medium: str
    campaign: str
    term: str | None = None
    content: str | None = None
    user_id: str | None = None


class NotificationSend(BaseModel):
    type: NotificationType
    channel: NotificationChannel | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None
    recipient: str | None = None
