"""Read-side queries over purchases, refunds and complaints."""
from typing import List, Tuple, Optional

from sqlalchemy.orm import Session

from app import models
from app.errors import NotFound


def get_purchase(db: Session, purchase_id: str) -> models.Purchase:
    purchase = db.query(models.Purchase).filter(models.Purchase.id == purchase_id).first()
    if purchase is None:
        raise NotFound(f"Purchase {purchase_id} not found")
    return purchase


def purchase_history(db: Session, customer_id: str) -> List[Tuple[models.Purchase, str]]:
    """A customer's purchases with service titles, newest first."""
    return (
        db.query(models.Purchase, models.Service.title)
        .join(models.Service, models.Service.id == models.Purchase.service_id)
        .filter(models.Purchase.customer_id == customer_id)
        .order_by(models.Purchase.purchased_at.desc())
        .all()
    )


def refund_history(db: Session, customer_id: str) -> List[models.Refund]:
    return (
        db.query(models.Refund)
        .join(models.Purchase, models.Purchase.id == models.Refund.purchase_id)
        .filter(models.Purchase.customer_id == customer_id)
        .order_by(models.Refund.created_at.desc())
        .all()
    )


def developer_complaints(
    db: Session, developer_id: str
) -> List[Tuple[models.Review, str, Optional[str]]]:
    """
    Complaint reviews on the developer's services, newest first.
    Returns (review, service title, customer display name) rows; the name is
    None for anonymous reviews.
    """
    rows = (
        db.query(models.Review, models.Service.title, models.Profile.display_name)
        .join(models.Service, models.Service.id == models.Review.service_id)
        .outerjoin(models.Profile, models.Profile.id == models.Review.customer_id)
        .filter(
            models.Service.developer_id == developer_id,
            models.Review.is_complaint.is_(True),
        )
        .order_by(models.Review.created_at.desc())
        .all()
    )
    return [
        (review, title, None if review.is_anonymous else name)
        for review, title, name in rows
    ]
