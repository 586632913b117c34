from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.database import get_db
from app.schemas.requests import CaptureRequest
from app.schemas.responses import CaptureResponse, WebhookResponse
from app.services.capture import capture_payment
from app.services.webhooks import ingest_webhook

router = APIRouter()

SIGNATURE_HEADER = "X-Razorpay-Signature"
EVENT_ID_HEADER = "X-Razorpay-Event-Id"


@router.post("/capture", response_model=CaptureResponse)
def capture(
    request: CaptureRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Verify a checkout the customer completed with the gateway and record the purchase.

    - Signature must be HMAC-SHA256("{order}|{payment}") with the key secret
    - Amount must match the service's listed price
    - Repeating the same capture returns the same purchase
    """
    result = capture_payment(
        db,
        settings,
        gateway_order_id=request.gateway_order_id,
        gateway_payment_id=request.gateway_payment_id,
        provided_signature=request.signature,
        service_id=request.service_id,
        customer_id=request.customer_id,
        amount=request.amount,
        currency=request.currency,
    )
    return CaptureResponse(
        success=True,
        purchase_id=result.purchase.id,
        message="Payment verified successfully" if result.created else "Payment already verified",
    )


@router.post("/webhook", response_model=WebhookResponse)
async def webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Gateway webhook endpoint.

    The signature header is checked against the raw body before anything is
    parsed. Authentic deliveries are logged, then applied; unknown event types
    are logged and acknowledged.
    """
    raw_body = await request.body()
    ingest_webhook(
        db,
        settings,
        raw_body,
        request.headers.get(SIGNATURE_HEADER),
        request.headers.get(EVENT_ID_HEADER),
    )
    return WebhookResponse(success=True)
