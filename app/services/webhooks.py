"""
Webhook ingestion service.

Orchestrates:
1. Verify the signature over the raw body (nothing is parsed before this)
2. Parse the envelope
3. Append the delivery to the webhook_events log and commit
4. Decode to a typed event and apply it to the ledger

The gateway delivers at least once and in no particular order, so every
ledger change is a conditional UPDATE that only fires while the row is in a
state that permits it. States only move forward:

  payment_status: pending -> failed -> success   (success is never undone)
  purchase status: completed -> refunded          (refunded/cancelled are final)
  refund status:   processing -> completed | failed
"""
import json
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import models
from app.config import Settings
from app.errors import ConfigurationMissing, EventNotReady, InvalidPayload, InvalidSignature, LedgerWriteFailed
from app.services import signature
from app.services.webhook_events import (
    PaymentCaptured,
    PaymentFailed,
    RefundFailed,
    RefundProcessed,
    WebhookEvent,
    decode_event,
    event_type_of,
)

logger = logging.getLogger(__name__)

REFUND_RECORD_GRACE = timedelta(minutes=5)


class IngestResult:
    def __init__(self, event_type: str, log_id: str, applied: bool):
        self.event_type = event_type
        self.log_id = log_id
        self.applied = applied


def _apply_payment_captured(db: Session, event: PaymentCaptured) -> bool:
    updated = db.query(models.Purchase).filter(
        models.Purchase.gateway_order_id == event.order_id,
        models.Purchase.payment_status != models.PaymentStatus.SUCCESS.value,
        models.Purchase.status.notin_(models.FINAL_ORDER_STATES),
    ).update(
        {
            models.Purchase.payment_status: models.PaymentStatus.SUCCESS.value,
            models.Purchase.gateway_payment_id: event.payment_id,
            models.Purchase.status: models.OrderStatus.COMPLETED.value,
            models.Purchase.updated_at: models.utcnow(),
        },
        synchronize_session=False,
    )
    if updated:
        logger.info(f"Payment captured: {event.payment_id} (order {event.order_id})")
    return bool(updated)


def _apply_payment_failed(db: Session, event: PaymentFailed) -> bool:
    updated = db.query(models.Purchase).filter(
        models.Purchase.gateway_order_id == event.order_id,
        models.Purchase.payment_status == models.PaymentStatus.PENDING.value,
    ).update(
        {
            models.Purchase.payment_status: models.PaymentStatus.FAILED.value,
            models.Purchase.updated_at: models.utcnow(),
        },
        synchronize_session=False,
    )
    if updated:
        logger.info(f"Payment failed: {event.payment_id} (order {event.order_id})")
    return bool(updated)


def _find_refund(db: Session, refund_id: str) -> Optional[models.Refund]:
    return db.query(models.Refund).filter(
        models.Refund.gateway_refund_id == refund_id
    ).first()


def _recover_refund(db: Session, event: WebhookEvent) -> Optional[models.Refund]:
    """
    Handle a refund event whose Refund row does not exist.

    The event can beat the row the initiator writes after the gateway call
    returns, so while the payment's refund claim is fresh we ask for
    redelivery. Once the claim is older than REFUND_RECORD_GRACE the
    initiator's write is taken as lost: the row is recorded from the event
    as "processing" so the caller can apply the transition.
    """
    if not event.payment_id:
        return None
    purchase = db.query(models.Purchase).filter(
        models.Purchase.gateway_payment_id == event.payment_id,
        models.Purchase.refund_claimed_at.isnot(None),
        models.Purchase.status.notin_(models.FINAL_ORDER_STATES),
    ).first()
    if purchase is None:
        return None
    if models.utcnow() - purchase.refund_claimed_at < REFUND_RECORD_GRACE:
        raise EventNotReady(f"Refund {event.refund_id} is not recorded yet")

    active = db.query(models.Refund).filter(
        models.Refund.purchase_id == purchase.id,
        models.Refund.status != models.RefundStatus.FAILED.value,
    ).first()
    if active is not None:
        logger.warning(
            f"Refund {event.refund_id} is unknown but purchase {purchase.id} "
            f"already has refund {active.gateway_refund_id}"
        )
        return None

    refund = models.Refund(
        purchase_id=purchase.id,
        amount=purchase.amount,
        currency=purchase.currency,
        reason="Recorded from gateway refund event",
        status=models.RefundStatus.PROCESSING.value,
        gateway_refund_id=event.refund_id,
    )
    db.add(refund)
    db.flush()
    logger.warning(
        f"Refund {event.refund_id} for purchase {purchase.id} was never recorded; "
        f"recovered from {event.event_type}"
    )
    return refund


def _apply_refund_processed(db: Session, event: RefundProcessed) -> bool:
    refund = _find_refund(db, event.refund_id) or _recover_refund(db, event)
    if refund is None:
        return False

    now = models.utcnow()
    updated = db.query(models.Refund).filter(
        models.Refund.id == refund.id,
        models.Refund.status == models.RefundStatus.PROCESSING.value,
    ).update(
        {
            models.Refund.status: models.RefundStatus.COMPLETED.value,
            models.Refund.processed_at: now,
        },
        synchronize_session=False,
    )
    if updated:
        db.query(models.Purchase).filter(
            models.Purchase.id == refund.purchase_id,
            models.Purchase.status != models.OrderStatus.REFUNDED.value,
        ).update(
            {
                models.Purchase.status: models.OrderStatus.REFUNDED.value,
                models.Purchase.updated_at: now,
            },
            synchronize_session=False,
        )
        logger.info(f"Refund processed: {event.refund_id} (purchase {refund.purchase_id})")
    return bool(updated)


def _apply_refund_failed(db: Session, event: RefundFailed) -> bool:
    refund = _find_refund(db, event.refund_id) or _recover_refund(db, event)
    if refund is None:
        return False

    now = models.utcnow()
    updated = db.query(models.Refund).filter(
        models.Refund.id == refund.id,
        models.Refund.status == models.RefundStatus.PROCESSING.value,
    ).update(
        {
            models.Refund.status: models.RefundStatus.FAILED.value,
            models.Refund.processed_at: now,
        },
        synchronize_session=False,
    )
    if updated:
        # Let the customer request again.
        db.query(models.Purchase).filter(
            models.Purchase.id == refund.purchase_id,
            models.Purchase.status != models.OrderStatus.REFUNDED.value,
        ).update(
            {
                models.Purchase.refund_claimed_at: None,
                models.Purchase.updated_at: now,
            },
            synchronize_session=False,
        )
        logger.info(f"Refund failed: {event.refund_id} (purchase {refund.purchase_id})")
    return bool(updated)


HANDLERS = {
    PaymentCaptured: _apply_payment_captured,
    PaymentFailed: _apply_payment_failed,
    RefundProcessed: _apply_refund_processed,
    RefundFailed: _apply_refund_failed,
}


def _append_log(db: Session, event_type: str, raw_body: bytes, gateway_event_id: Optional[str]) -> models.WebhookEvent:
    entry = models.WebhookEvent(
        event_type=event_type,
        gateway_event_id=gateway_event_id,
        payload=raw_body.decode("utf-8"),
    )
    db.add(entry)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error logging webhook event {event_type}: {e}")
        raise LedgerWriteFailed("Failed to record webhook event") from e
    db.refresh(entry)
    return entry


def ingest_webhook(
    db: Session,
    settings: Settings,
    raw_body: bytes,
    provided_signature: Optional[str],
    gateway_event_id: Optional[str] = None,
) -> IngestResult:
    """
    Authenticate, log and apply one gateway webhook delivery.

    Raises:
        ConfigurationMissing: no webhook secret configured
        InvalidSignature: signature does not match the raw body
        InvalidPayload: body is not a well-formed event envelope
        EventNotReady: refund event arrived before its refund was recorded
        LedgerWriteFailed: log append or ledger update failed
    """
    secret = settings.webhook_secret
    if not secret:
        raise ConfigurationMissing("Required configuration missing: RAZORPAY_WEBHOOK_SECRET")

    if not signature.verify(raw_body, provided_signature, secret):
        logger.warning("Invalid webhook signature")
        raise InvalidSignature("Invalid signature")

    try:
        envelope = json.loads(raw_body)
    except ValueError:
        raise InvalidPayload("Webhook body is not valid JSON")
    event_type = event_type_of(envelope)

    entry = _append_log(db, event_type, raw_body, gateway_event_id)
    logger.info(f"Webhook event received: {event_type} (log {entry.id})")

    event = decode_event(envelope)
    handler = HANDLERS.get(type(event))
    if handler is None:
        logger.info(f"Ignoring unhandled webhook event type: {event_type}")
        return IngestResult(event_type, entry.id, applied=False)

    try:
        applied = handler(db, event)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error applying webhook event {event_type} (log {entry.id}): {e}")
        raise LedgerWriteFailed(f"Failed to apply {event_type}") from e
    except EventNotReady:
        db.rollback()
        raise

    if not applied:
        logger.warning(f"Webhook event {event_type} (log {entry.id}) changed nothing")
    return IngestResult(event_type, entry.id, applied=applied)
