"""
Review notification service.

Complaints (rating <= 2) go to two optional channels:
- the operator channel, a Slack incoming webhook (SLACK_WEBHOOK_URL)
- the developer, by email through the mail dispatch endpoint (EMAIL_DISPATCH_URL)

Both are best-effort. The review is already stored when this runs, so a
channel failure is logged and reported in the result, never raised.
Non-complaint reviews send nothing.
"""
import asyncio
import logging
from datetime import datetime
from typing import Dict, Any, Optional

import httpx
from sqlalchemy.orm import Session

from app import models
from app.config import Settings
from app.errors import NotFound

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous Customer"
UNKNOWN_NAME = "Unknown Customer"


class ReviewContext:
    """A review joined with what the messages need from services/profiles."""

    def __init__(
        self,
        review: models.Review,
        service_title: str,
        developer_id: str,
        customer_name: Optional[str],
    ):
        self.review = review
        self.service_title = service_title
        self.developer_id = developer_id
        self.customer_name = customer_name

    @property
    def display_name(self) -> str:
        if self.review.is_anonymous:
            return ANONYMOUS_NAME
        return self.customer_name or UNKNOWN_NAME


class NotificationResult:
    def __init__(self, is_complaint: bool, operator_notified: bool = False, developer_notified: bool = False):
        self.is_complaint = is_complaint
        self.operator_notified = operator_notified
        self.developer_notified = developer_notified

    @property
    def message(self) -> str:
        if self.is_complaint:
            return "Complaint notification sent to support team"
        return "Positive feedback recorded"


def _format_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC")


def stars(rating: int) -> str:
    return "⭐" * rating


def build_operator_message(ctx: ReviewContext) -> Dict[str, Any]:
    """Slack Block Kit payload for a complaint."""
    review = ctx.review
    return {
        "text": "🚨 New Customer Complaint Received",
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "🚨 New Customer Complaint"},
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Service:*\n{ctx.service_title}"},
                    {"type": "mrkdwn", "text": f"*Rating:*\n{stars(review.rating)} ({review.rating}/5)"},
                    {"type": "mrkdwn", "text": f"*Customer:*\n{ctx.display_name}"},
                    {"type": "mrkdwn", "text": f"*Date:*\n{_format_date(review.created_at)}"},
                ],
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Review:*\n{review.review_text or '_No review text provided_'}",
                },
            },
            {"type": "divider"},
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Review ID: {review.id}"}],
            },
        ],
    }


def build_developer_email(ctx: ReviewContext, to: str) -> Dict[str, Any]:
    review = ctx.review
    complaint = review.is_complaint
    subject = f"New {'Complaint' if complaint else 'Review'} for {ctx.service_title}"
    html = (
        f"<h2>{'⚠️ Customer Complaint' if complaint else '⭐ New Review'}</h2>"
        f"<p><strong>Service:</strong> {ctx.service_title}</p>"
        f"<p><strong>Rating:</strong> {review.rating}/5 stars</p>"
        f"<p><strong>Customer:</strong> {ctx.display_name}</p>"
        f"<p><strong>Review:</strong> {review.review_text or 'No review text provided'}</p>"
        f"<p><strong>Date:</strong> {_format_date(review.created_at)}</p>"
    )
    return {"to": to, "subject": subject, "html": html, "isComplaint": complaint}


def load_review_context(db: Session, review_id: str) -> ReviewContext:
    row = (
        db.query(models.Review, models.Service, models.Profile)
        .join(models.Service, models.Service.id == models.Review.service_id)
        .outerjoin(models.Profile, models.Profile.id == models.Review.customer_id)
        .filter(models.Review.id == review_id)
        .first()
    )
    if row is None:
        raise NotFound(f"Review {review_id} not found")
    review, service, profile = row
    return ReviewContext(
        review=review,
        service_title=service.title,
        developer_id=service.developer_id,
        customer_name=profile.display_name if profile else None,
    )


class ReviewNotifier:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.notification_timeout_seconds,
            transport=self._transport,
        )

    async def _notify_operator(self, ctx: ReviewContext) -> bool:
        url = self.settings.slack_webhook_url
        if not url:
            return False
        try:
            async with self._client() as client:
                resp = await client.post(url, json=build_operator_message(ctx))
            if resp.status_code >= 400:
                logger.error(f"Slack API error for review {ctx.review.id}: {resp.text}")
                return False
        except httpx.HTTPError:
            logger.exception(f"Failed to send complaint {ctx.review.id} to Slack")
            return False
        logger.info(f"Complaint {ctx.review.id} sent to Slack")
        return True

    async def _notify_developer(self, db: Session, ctx: ReviewContext) -> bool:
        url = self.settings.email_dispatch_url
        if not url:
            return False
        developer = db.query(models.Profile).filter(models.Profile.id == ctx.developer_id).first()
        if developer is None or not developer.email:
            logger.info(f"No contact email for developer {ctx.developer_id}; skipping email")
            return False

        headers = {}
        if self.settings.email_dispatch_token:
            headers["Authorization"] = f"Bearer {self.settings.email_dispatch_token}"
        try:
            async with self._client() as client:
                resp = await client.post(url, json=build_developer_email(ctx, developer.email), headers=headers)
            if resp.status_code >= 400:
                logger.error(f"Error sending email for review {ctx.review.id}: {resp.text}")
                return False
        except httpx.HTTPError:
            logger.exception(f"Failed to email developer {ctx.developer_id} about review {ctx.review.id}")
            return False
        logger.info(f"Email notification for review {ctx.review.id} sent")
        return True

    async def dispatch(self, db: Session, review_id: str) -> NotificationResult:
        """
        Fan a stored review out to the configured channels.

        Raises:
            NotFound: no review with this id
        """
        ctx = load_review_context(db, review_id)
        review = ctx.review
        logger.info(
            f"Processing review {review.id}: rating={review.rating}, "
            f"is_complaint={review.is_complaint}"
        )
        if not review.is_complaint:
            return NotificationResult(is_complaint=False)

        operator_notified, developer_notified = await asyncio.gather(
            self._notify_operator(ctx),
            self._notify_developer(db, ctx),
        )
        return NotificationResult(
            is_complaint=True,
            operator_notified=operator_notified,
            developer_notified=developer_notified,
        )


async def notify_in_background(session_factory, notifier: ReviewNotifier, review_id: str) -> None:
    """Background-task entry point: own session, every error logged and dropped."""
    db = session_factory()
    try:
        await notifier.dispatch(db, review_id)
    except Exception:
        logger.exception(f"Error sending notification for review {review_id}")
    finally:
        db.close()
