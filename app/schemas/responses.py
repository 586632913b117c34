from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class CaptureResponse(BaseModel):
    success: bool
    purchase_id: str = Field(alias="purchaseId")
    message: str

    class Config:
        populate_by_name = True


class PurchaseResponse(BaseModel):
    id: str
    customer_id: str
    service_id: str
    service_title: Optional[str] = None
    amount: float
    currency: str
    gateway_order_id: str
    gateway_payment_id: Optional[str]
    payment_status: str
    status: str
    purchased_at: datetime

    class Config:
        from_attributes = True


class RefundResponse(BaseModel):
    id: str
    purchase_id: str
    amount: float
    currency: str
    reason: str
    status: str
    gateway_refund_id: Optional[str]
    created_at: datetime
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RefundInitResponse(BaseModel):
    success: bool
    refund: RefundResponse
    message: str


class WebhookResponse(BaseModel):
    success: bool


class NotificationResponse(BaseModel):
    success: bool
    message: str


class ReviewResponse(BaseModel):
    success: bool
    review_id: str = Field(alias="reviewId")
    is_complaint: bool = Field(alias="isComplaint")
    created: bool
    message: str

    class Config:
        populate_by_name = True


class ComplaintEntry(BaseModel):
    review_id: str
    service_id: str
    service_title: str
    rating: int
    review_text: Optional[str]
    customer_name: str
    created_at: datetime


class ComplaintInbox(BaseModel):
    developer_id: str
    complaints_found: int
    complaints: List[ComplaintEntry]
