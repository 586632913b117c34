from fastapi import APIRouter, Depends
from typing import List
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.responses import ComplaintEntry, ComplaintInbox, PurchaseResponse, RefundResponse
from app.services import ledger
from app.services.notifier import ANONYMOUS_NAME, UNKNOWN_NAME

router = APIRouter()


@router.get("/purchases/{purchase_id}", response_model=PurchaseResponse)
def get_purchase(purchase_id: str, db: Session = Depends(get_db)):
    return PurchaseResponse.model_validate(ledger.get_purchase(db, purchase_id))


@router.get("/customers/{customer_id}/purchases", response_model=List[PurchaseResponse])
def list_purchases(customer_id: str, db: Session = Depends(get_db)):
    """Payment history: the customer's purchases, newest first."""
    results = []
    for purchase, title in ledger.purchase_history(db, customer_id):
        item = PurchaseResponse.model_validate(purchase)
        item.service_title = title
        results.append(item)
    return results


@router.get("/customers/{customer_id}/refunds", response_model=List[RefundResponse])
def list_refunds(customer_id: str, db: Session = Depends(get_db)):
    return [RefundResponse.model_validate(r) for r in ledger.refund_history(db, customer_id)]


@router.get("/developers/{developer_id}/complaints", response_model=ComplaintInbox)
def list_complaints(developer_id: str, db: Session = Depends(get_db)):
    """Complaints (rating <= 2) left on the developer's services, newest first."""
    complaints = []
    for review, title, name in ledger.developer_complaints(db, developer_id):
        if review.is_anonymous:
            customer_name = ANONYMOUS_NAME
        else:
            customer_name = name or UNKNOWN_NAME
        complaints.append(ComplaintEntry(
            review_id=review.id,
            service_id=review.service_id,
            service_title=title,
            rating=review.rating,
            review_text=review.review_text,
            customer_name=customer_name,
            created_at=review.created_at,
        ))
    return ComplaintInbox(
        developer_id=developer_id,
        complaints_found=len(complaints),
        complaints=complaints,
    )
