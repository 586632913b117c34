"""
Review submission service.

A customer who bought a service may leave one review for it; submitting
again edits that review in place. Reviews rated at or below
COMPLAINT_THRESHOLD are flagged as complaints when written.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app import models
from app.errors import InvalidPayload, LedgerWriteFailed, NotFound, NotPurchased

logger = logging.getLogger(__name__)

COMPLAINT_THRESHOLD = 2
MAX_REVIEW_LENGTH = 2000


def is_complaint(rating: int) -> bool:
    return rating <= COMPLAINT_THRESHOLD


class ReviewResult:
    def __init__(self, review: models.Review, created: bool):
        self.review = review
        self.created = created


def _has_purchased(db: Session, customer_id: str, service_id: str) -> bool:
    return db.query(models.Purchase).filter(
        models.Purchase.customer_id == customer_id,
        models.Purchase.service_id == service_id,
        models.Purchase.payment_status == models.PaymentStatus.SUCCESS.value,
    ).first() is not None


def _find_review(db: Session, customer_id: str, service_id: str) -> Optional[models.Review]:
    return db.query(models.Review).filter(
        models.Review.customer_id == customer_id,
        models.Review.service_id == service_id,
    ).first()


def _apply(review: models.Review, rating: int, review_text: Optional[str], is_anonymous: bool):
    review.rating = rating
    review.review_text = review_text
    review.is_anonymous = is_anonymous
    review.is_complaint = is_complaint(rating)


def submit_review(
    db: Session,
    service_id: str,
    customer_id: str,
    rating: int,
    review_text: Optional[str] = None,
    is_anonymous: bool = False,
) -> ReviewResult:
    """
    Create or update the customer's review of a service.

    Raises:
        InvalidPayload: rating outside 1-5 or text too long
        NotFound: service does not exist
        NotPurchased: customer has no successful purchase of the service
        LedgerWriteFailed: the review could not be written
    """
    if not 1 <= rating <= 5:
        raise InvalidPayload("Rating must be between 1 and 5")
    review_text = (review_text or "").strip() or None
    if review_text and len(review_text) > MAX_REVIEW_LENGTH:
        raise InvalidPayload(f"Review must be less than {MAX_REVIEW_LENGTH} characters")

    if db.query(models.Service).filter(models.Service.id == service_id).first() is None:
        raise NotFound(f"Service {service_id} not found")
    if not _has_purchased(db, customer_id, service_id):
        raise NotPurchased("You can only review services you've purchased")

    review = _find_review(db, customer_id, service_id)
    created = review is None
    if created:
        review = models.Review(service_id=service_id, customer_id=customer_id)
        db.add(review)
    _apply(review, rating, review_text, is_anonymous)

    try:
        db.commit()
    except IntegrityError:
        # Lost an insert race with the same customer's other submission.
        db.rollback()
        review = _find_review(db, customer_id, service_id)
        if review is None:
            raise LedgerWriteFailed("Failed to save review")
        created = False
        _apply(review, rating, review_text, is_anonymous)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error saving review for service {service_id}: {e}")
        raise LedgerWriteFailed("Failed to save review") from e

    db.refresh(review)
    logger.info(
        f"Review {review.id} {'created' if created else 'updated'} "
        f"(rating={review.rating}, complaint={review.is_complaint})"
    )
    return ReviewResult(review, created)
