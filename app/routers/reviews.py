from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_notifier, get_session_factory
from app.schemas.requests import ReviewNotificationRequest, ReviewRequest
from app.schemas.responses import NotificationResponse, ReviewResponse
from app.services.notifier import ReviewNotifier, notify_in_background
from app.services.reviews import submit_review

router = APIRouter()


@router.post("", response_model=ReviewResponse)
def create_or_update_review(
    request: ReviewRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: ReviewNotifier = Depends(get_notifier),
    session_factory=Depends(get_session_factory),
):
    """
    Submit (or edit) the customer's review of a purchased service.

    The notification fan-out runs after the response as a background task;
    whatever happens there, the saved review stands.
    """
    result = submit_review(
        db,
        service_id=request.service_id,
        customer_id=request.customer_id,
        rating=request.rating,
        review_text=request.review_text,
        is_anonymous=request.is_anonymous,
    )
    background_tasks.add_task(notify_in_background, session_factory, notifier, result.review.id)

    review = result.review
    if review.is_complaint:
        message = "We're sorry to hear about your experience. Our team will review your feedback."
    else:
        message = "Thank you for your feedback!"
    return ReviewResponse(
        success=True,
        review_id=review.id,
        is_complaint=review.is_complaint,
        created=result.created,
        message=message,
    )


@router.post("/notify", response_model=NotificationResponse)
async def notify(
    request: ReviewNotificationRequest,
    db: Session = Depends(get_db),
    notifier: ReviewNotifier = Depends(get_notifier),
):
    """
    Dispatch notifications for a stored review.

    Complaints go to the operator channel and the developer; other reviews are
    a no-op. Channel failures never fail this request.
    """
    result = await notifier.dispatch(db, request.review_id)
    return NotificationResponse(success=True, message=result.message)
