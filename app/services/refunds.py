"""
Refund initiation service.

Orchestrates:
1. Check preconditions (purchase exists, payment succeeded, gateway payment id present)
2. Claim the purchase with a conditional update so only one request proceeds
3. Ask the gateway to refund the full amount, in minor units
4. Record the refund as "processing"

The purchase is not marked refunded here; the gateway's refund.processed
webhook does that once the money has actually moved.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app import models
from app.errors import GatewayError, InvalidPayload, InvalidState, LedgerWriteFailed, NotFound
from app.gateways.base import BaseGateway

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500


def to_minor_units(amount: float) -> int:
    """49.99 -> 4999. Rounds half up on the decimal value, not the float."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _check_refundable(purchase: models.Purchase) -> None:
    if purchase.payment_status != models.PaymentStatus.SUCCESS.value:
        raise InvalidState(
            f"Purchase {purchase.id} cannot be refunded (payment status: {purchase.payment_status})"
        )
    if not purchase.gateway_payment_id:
        raise InvalidState("No payment ID found for this purchase")
    if purchase.status in models.FINAL_ORDER_STATES:
        raise InvalidState(f"Purchase {purchase.id} cannot be refunded (status: {purchase.status})")


def _claim(db: Session, purchase_id: str) -> bool:
    claimed = db.query(models.Purchase).filter(
        models.Purchase.id == purchase_id,
        models.Purchase.refund_claimed_at.is_(None),
        models.Purchase.payment_status == models.PaymentStatus.SUCCESS.value,
        models.Purchase.status.notin_(models.FINAL_ORDER_STATES),
    ).update(
        {models.Purchase.refund_claimed_at: models.utcnow()},
        synchronize_session=False,
    )
    db.commit()
    return bool(claimed)


def _release(db: Session, purchase_id: str) -> None:
    db.query(models.Purchase).filter(models.Purchase.id == purchase_id).update(
        {models.Purchase.refund_claimed_at: None},
        synchronize_session=False,
    )
    db.commit()


async def initiate_refund(
    db: Session,
    gateway: BaseGateway,
    purchase_id: str,
    reason: str,
) -> models.Refund:
    """
    Request a full refund of a captured purchase.

    Raises:
        InvalidPayload: reason is blank or too long
        NotFound: purchase does not exist
        InvalidState: purchase not refundable, or a refund is already in progress
        GatewayError: the gateway rejected the refund (no refund row written)
        LedgerWriteFailed: the refund row could not be written (the claim is kept;
            the refund webhook records the refund once it arrives)
    """
    reason = (reason or "").strip()
    if not reason:
        raise InvalidPayload("A refund reason is required")
    if len(reason) > MAX_REASON_LENGTH:
        raise InvalidPayload(f"Refund reason must be at most {MAX_REASON_LENGTH} characters")

    purchase = db.query(models.Purchase).filter(models.Purchase.id == purchase_id).first()
    if purchase is None:
        raise NotFound("Purchase not found")
    _check_refundable(purchase)

    if not _claim(db, purchase_id):
        raise InvalidState(f"A refund is already in progress for purchase {purchase_id}")

    amount_minor = to_minor_units(purchase.amount)
    try:
        gateway_refund = await gateway.create_refund(
            purchase.gateway_payment_id, amount_minor, {"reason": reason}
        )
    except GatewayError:
        _release(db, purchase_id)
        raise

    refund = models.Refund(
        purchase_id=purchase.id,
        amount=purchase.amount,
        currency=purchase.currency,
        reason=reason,
        status=models.RefundStatus.PROCESSING.value,
        gateway_refund_id=gateway_refund["id"],
    )
    db.add(refund)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.error(
            f"Refund {gateway_refund['id']} for purchase {purchase_id} accepted by "
            f"{gateway.gateway_name} but conflicts with an existing refund: {e}"
        )
        raise InvalidState(f"A refund is already in progress for purchase {purchase_id}") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Refund {gateway_refund['id']} for purchase {purchase_id} accepted by "
            f"{gateway.gateway_name} but could not be recorded: {e}"
        )
        raise LedgerWriteFailed("Failed to record refund") from e

    db.refresh(refund)
    logger.info(f"Refund initiated: {refund.id} ({amount_minor} minor units, purchase {purchase_id})")
    return refund
