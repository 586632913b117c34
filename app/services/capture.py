"""
Payment capture service.

Orchestrates:
1. Check the gateway secret is configured
2. Verify the order-confirmation signature ("{order}|{payment}")
3. Return the existing purchase if this gateway order was already captured
4. Cross-check the amount against the service's listed price
5. Insert the purchase (payment_status=success, status=completed)

No row is written unless every check passes. Retries of the same capture
resolve to the same purchase; the unique gateway_order_id column settles
races between concurrent retries.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app import models
from app.config import Settings
from app.errors import AmountMismatch, InvalidSignature, InvalidState, LedgerWriteFailed, NotFound
from app.services import signature

logger = logging.getLogger(__name__)


class CaptureResult:
    def __init__(self, purchase: models.Purchase, created: bool):
        self.purchase = purchase
        self.created = created


def _find_by_order(db: Session, gateway_order_id: str) -> Optional[models.Purchase]:
    return db.query(models.Purchase).filter(
        models.Purchase.gateway_order_id == gateway_order_id
    ).first()


def _resolve_existing(existing: models.Purchase, gateway_payment_id: str) -> CaptureResult:
    if existing.gateway_payment_id != gateway_payment_id:
        raise InvalidState(
            f"Order {existing.gateway_order_id} was already captured with a different payment"
        )
    logger.info(
        f"Capture for order {existing.gateway_order_id} already recorded "
        f"as purchase {existing.id}"
    )
    return CaptureResult(existing, created=False)


def capture_payment(
    db: Session,
    settings: Settings,
    gateway_order_id: str,
    gateway_payment_id: str,
    provided_signature: str,
    service_id: str,
    customer_id: str,
    amount: float,
    currency: Optional[str] = None,
) -> CaptureResult:
    """
    Verify a client-reported payment and record the purchase.

    Raises:
        ConfigurationMissing: gateway secret not configured
        InvalidSignature: signature does not match "{order}|{payment}"
        NotFound: service does not exist
        AmountMismatch: amount differs from the service price
        InvalidState: order already captured under another payment id
        LedgerWriteFailed: the insert failed for any other reason
    """
    settings.require("razorpay_key_secret")

    payload = signature.order_confirmation_payload(gateway_order_id, gateway_payment_id)
    if not signature.verify(payload, provided_signature, settings.razorpay_key_secret):
        logger.warning(f"Payment signature verification failed for order {gateway_order_id}")
        raise InvalidSignature("Invalid payment signature")

    # Retries return the recorded purchase even if the price has since changed.
    existing = _find_by_order(db, gateway_order_id)
    if existing is not None:
        return _resolve_existing(existing, gateway_payment_id)

    service = db.query(models.Service).filter(models.Service.id == service_id).first()
    if service is None:
        raise NotFound(f"Service {service_id} not found")

    if abs(service.price - amount) > settings.price_tolerance:
        logger.warning(
            f"Amount {amount} for order {gateway_order_id} does not match "
            f"price {service.price} of service {service_id}"
        )
        raise AmountMismatch(
            f"Amount {amount:.2f} does not match the service price {service.price:.2f}"
        )

    purchase = models.Purchase(
        customer_id=customer_id,
        service_id=service_id,
        amount=amount,
        currency=(currency or settings.default_currency).upper(),
        gateway_order_id=gateway_order_id,
        gateway_payment_id=gateway_payment_id,
        payment_status=models.PaymentStatus.SUCCESS.value,
        status=models.OrderStatus.COMPLETED.value,
    )
    db.add(purchase)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent retry inserted the same order first.
        db.rollback()
        existing = _find_by_order(db, gateway_order_id)
        if existing is None:
            raise LedgerWriteFailed("Failed to record purchase")
        return _resolve_existing(existing, gateway_payment_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating purchase for order {gateway_order_id}: {e}")
        raise LedgerWriteFailed(f"Failed to record purchase: {e.__class__.__name__}") from e

    db.refresh(purchase)
    logger.info(f"Payment verified and purchase created: {purchase.id}")
    return CaptureResult(purchase, created=True)
