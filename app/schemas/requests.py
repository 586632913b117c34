from pydantic import BaseModel, Field, validator
from typing import Optional


class CaptureRequest(BaseModel):
    gateway_order_id: str = Field(alias="gatewayOrderId", min_length=1)
    gateway_payment_id: str = Field(alias="gatewayPaymentId", min_length=1)
    signature: str = Field(min_length=1)
    service_id: str = Field(alias="serviceId", min_length=1)
    customer_id: str = Field(alias="customerId", min_length=1)
    amount: float
    currency: Optional[str] = None

    @validator("amount")
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError("amount must be positive")
        return v

    @validator("currency")
    def validate_currency(cls, v):
        if v is not None and len(v) != 3:
            raise ValueError("currency must be a 3-letter code")
        return v

    class Config:
        populate_by_name = True


class RefundRequest(BaseModel):
    purchase_id: str = Field(alias="purchaseId", min_length=1)
    reason: str

    @validator("reason")
    def validate_reason(cls, v):
        if not v or not v.strip():
            raise ValueError("reason cannot be empty")
        return v.strip()

    class Config:
        populate_by_name = True


class ReviewNotificationRequest(BaseModel):
    review_id: str = Field(alias="reviewId", min_length=1)

    class Config:
        populate_by_name = True


class ReviewRequest(BaseModel):
    service_id: str = Field(alias="serviceId", min_length=1)
    customer_id: str = Field(alias="customerId", min_length=1)
    rating: int = Field(ge=1, le=5)
    review_text: Optional[str] = Field(default=None, alias="reviewText", max_length=2000)
    is_anonymous: bool = Field(default=False, alias="isAnonymous")

    class Config:
        populate_by_name = True
