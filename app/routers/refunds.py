from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_gateway
from app.gateways.base import BaseGateway
from app.schemas.requests import RefundRequest
from app.schemas.responses import RefundInitResponse, RefundResponse
from app.services.refunds import initiate_refund

router = APIRouter()


@router.post("", response_model=RefundInitResponse)
async def create_refund(
    request: RefundRequest,
    db: Session = Depends(get_db),
    gateway: BaseGateway = Depends(get_gateway),
):
    """
    Request a full refund of a purchase.

    - Purchase must have payment_status="success" and a gateway payment id
    - Only one refund per purchase may be in progress
    - The refund is recorded as "processing"; the gateway webhook completes it
    """
    refund = await initiate_refund(db, gateway, request.purchase_id, request.reason)
    return RefundInitResponse(
        success=True,
        refund=RefundResponse.model_validate(refund),
        message="Refund initiated successfully",
    )
