import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.payment import (
    PaymentMethodType,
    PayoutStatus,
    TransactionStatus,
    TransactionType,
)


class PaymentMethodCreate(BaseModel):
    processor_payment_method_id: str = Field(min_length=1, max_length=255)
    type: PaymentMethodType = PaymentMethodType.CARD
    last_four: str | None = Field(default=None, pattern=r"^\d{4}$")
    brand: str | None = Field(default=None, max_length=50)
    metadata: dict = Field(default_factory=dict)


class PaymentMethodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    processor_payment_method_id: str | None
    type: PaymentMethodType
    last_four: str | None
    brand: str | None
    is_default: bool
    is_active: bool
    created_at: datetime


class PaymentMethodListResponse(BaseModel):
    items: list[PaymentMethodResponse]


class PaymentCreate(BaseModel):
    service_request_id: uuid.UUID
    amount: float = Field(gt=0)
    payment_method_id: uuid.UUID | None = None


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    service_request_id: uuid.UUID | None
    type: TransactionType
    status: TransactionStatus
    amount: float
    currency: str
    payment_intent_id: str | None
    payment_method_id: uuid.UUID | None
    description: str | None
    processed_at: datetime | None
    created_at: datetime


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]


class MerchantEarningResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    merchant_id: uuid.UUID
    transaction_id: uuid.UUID
    gross_amount: float
    platform_fee: float
    net_amount: float
    payout_status: PayoutStatus
    payout_date: datetime | None
    created_at: datetime


class MerchantEarningListResponse(BaseModel):
    items: list[MerchantEarningResponse]
    total_net: float
