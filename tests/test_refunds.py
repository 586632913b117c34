"""
Unit tests for app/services/refunds.py.

Mocks the gateway client so tests are fast and deterministic.
Covers: minor-unit conversion, preconditions, gateway rejection,
one-refund-per-purchase guard, refund.failed retry path.
"""
import pytest

from app import models
from app.errors import GatewayError, InvalidPayload, InvalidState, NotFound
from app.services.refunds import initiate_refund, to_minor_units
from tests.conftest import make_purchase, make_refund, make_service, mock_gateway


def fetch_purchase(db, purchase_id="pur_1"):
    db.expire_all()
    return db.query(models.Purchase).filter(models.Purchase.id == purchase_id).one()


class TestMinorUnits:
    @pytest.mark.parametrize("amount,expected", [
        (100.00, 10000),
        (49.99, 4999),
        (0.29, 29),
        (1.005, 101),
        (999.995, 100000),
    ])
    def test_conversion(self, amount, expected):
        assert to_minor_units(amount) == expected


class TestInitiateRefundHappyPath:
    async def test_full_amount_in_minor_units(self, db):
        make_service(db)
        make_purchase(db, amount=100.00, currency="INR", gateway_payment_id="pay_P1")
        gateway = mock_gateway(refund_id="rfnd_A")

        refund = await initiate_refund(db, gateway, "pur_1", "Did not work on my device")

        gateway.create_refund.assert_awaited_once_with(
            "pay_P1", 10000, {"reason": "Did not work on my device"}
        )
        assert refund.status == "processing"
        assert refund.gateway_refund_id == "rfnd_A"
        assert refund.amount == 100.00
        assert refund.currency == "INR"
        assert refund.processed_at is None

    async def test_purchase_not_marked_refunded(self, db):
        make_service(db)
        make_purchase(db)
        await initiate_refund(db, mock_gateway(), "pur_1", "Changed my mind")

        purchase = fetch_purchase(db)
        assert purchase.status == "completed"
        assert purchase.payment_status == "success"
        assert purchase.refund_claimed_at is not None

    async def test_reason_is_trimmed(self, db):
        make_service(db)
        make_purchase(db)
        refund = await initiate_refund(db, mock_gateway(), "pur_1", "  Broken  ")
        assert refund.reason == "Broken"


class TestInitiateRefundPreconditions:
    @pytest.mark.parametrize("payment_status", ["pending", "failed"])
    async def test_unsuccessful_payment_rejected(self, db, payment_status):
        make_service(db)
        make_purchase(db, payment_status=payment_status, gateway_payment_id=None, status="pending")
        gateway = mock_gateway()

        with pytest.raises(InvalidState):
            await initiate_refund(db, gateway, "pur_1", "Refund please")

        gateway.create_refund.assert_not_awaited()
        assert db.query(models.Refund).count() == 0

    async def test_missing_payment_id_rejected(self, db):
        make_service(db)
        make_purchase(db, gateway_payment_id=None)
        gateway = mock_gateway()
        with pytest.raises(InvalidState) as exc:
            await initiate_refund(db, gateway, "pur_1", "Refund please")
        assert "payment ID" in exc.value.message
        gateway.create_refund.assert_not_awaited()

    @pytest.mark.parametrize("status", ["refunded", "cancelled"])
    async def test_final_order_status_rejected(self, db, status):
        make_service(db)
        make_purchase(db, status=status)
        gateway = mock_gateway()
        with pytest.raises(InvalidState) as exc:
            await initiate_refund(db, gateway, "pur_1", "Again")
        assert status in exc.value.message
        gateway.create_refund.assert_not_awaited()
        assert fetch_purchase(db).refund_claimed_at is None

    async def test_unknown_purchase(self, db):
        with pytest.raises(NotFound):
            await initiate_refund(db, mock_gateway(), "pur_missing", "Refund please")

    @pytest.mark.parametrize("reason", ["", "   ", None])
    async def test_blank_reason_rejected(self, db, reason):
        make_service(db)
        make_purchase(db)
        gateway = mock_gateway()
        with pytest.raises(InvalidPayload):
            await initiate_refund(db, gateway, "pur_1", reason)
        gateway.create_refund.assert_not_awaited()

    async def test_overlong_reason_rejected(self, db):
        make_service(db)
        make_purchase(db)
        with pytest.raises(InvalidPayload):
            await initiate_refund(db, mock_gateway(), "pur_1", "x" * 501)


class TestGatewayRejection:
    async def test_no_refund_row_and_claim_released(self, db):
        make_service(db)
        make_purchase(db)
        gateway = mock_gateway(error=GatewayError("Razorpay refund failed: The payment has been fully refunded already"))

        with pytest.raises(GatewayError) as exc:
            await initiate_refund(db, gateway, "pur_1", "Refund please")

        assert "fully refunded already" in exc.value.message
        assert db.query(models.Refund).count() == 0
        assert fetch_purchase(db).refund_claimed_at is None

    async def test_can_retry_after_gateway_rejection(self, db):
        make_service(db)
        make_purchase(db)
        with pytest.raises(GatewayError):
            await initiate_refund(db, mock_gateway(error=GatewayError("timeout")), "pur_1", "Refund")
        refund = await initiate_refund(db, mock_gateway(refund_id="rfnd_retry"), "pur_1", "Refund")
        assert refund.gateway_refund_id == "rfnd_retry"


class TestOneRefundPerPurchase:
    async def test_second_request_rejected_without_gateway_call(self, db):
        make_service(db)
        make_purchase(db)
        await initiate_refund(db, mock_gateway(refund_id="rfnd_1"), "pur_1", "First")
        second_gateway = mock_gateway(refund_id="rfnd_2")

        with pytest.raises(InvalidState):
            await initiate_refund(db, second_gateway, "pur_1", "Second")

        second_gateway.create_refund.assert_not_awaited()
        assert db.query(models.Refund).count() == 1

    async def test_unique_index_blocks_second_active_refund(self, db):
        make_service(db)
        make_purchase(db)
        make_refund(db, "ref_1", gateway_refund_id="rfnd_1", status="processing")
        db.add(models.Refund(
            id="ref_2", purchase_id="pur_1", amount=100.0, currency="INR",
            reason="dup", status="processing", gateway_refund_id="rfnd_2",
        ))
        from sqlalchemy.exc import IntegrityError
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    async def test_failed_refund_does_not_block_new_one(self, db):
        make_service(db)
        make_purchase(db)
        make_refund(db, "ref_old", gateway_refund_id="rfnd_old", status="failed")
        refund = await initiate_refund(db, mock_gateway(refund_id="rfnd_new"), "pur_1", "Try again")
        assert refund.status == "processing"
        assert db.query(models.Refund).count() == 2
