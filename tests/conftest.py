"""
Shared pytest fixtures for all test modules.

Uses an in-memory SQLite database (StaticPool) so every test
function gets a clean, isolated database — no disk I/O, no state leakage.
Outbound HTTP (gateway, Slack, mail dispatch) never leaves the process:
the gateway is an AsyncMock and notification channels run on
httpx.MockTransport.
"""
import json
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import httpx
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from typing import Optional

from app.config import Settings, get_settings
from app.database import Base, get_db
from app.dependencies import get_gateway, get_notifier, get_session_factory
from app.services import signature
from app.services.notifier import ReviewNotifier
from app import models

KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"
SLACK_URL = "https://hooks.slack.test/services/T000/B000/XXX"
EMAIL_URL = "https://mail.test/functions/v1/send-review-email"


# ---------------------------------------------------------------------------
# In-memory database engine shared across all fixtures in a test session.
# StaticPool forces all SQLAlchemy connections to reuse the same underlying
# sqlite3 connection, which is required for in-memory SQLite.
# ---------------------------------------------------------------------------
TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=TEST_ENGINE)


@pytest.fixture(autouse=True)
def reset_db():
    """Drop and recreate all tables before each test for full isolation."""
    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)
    yield
    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db(reset_db):
    """Yield a SQLAlchemy session backed by the in-memory test database."""
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


def make_settings(**overrides) -> Settings:
    values = dict(
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret=KEY_SECRET,
        razorpay_webhook_secret=WEBHOOK_SECRET,
        slack_webhook_url=SLACK_URL,
        email_dispatch_url=EMAIL_URL,
        email_dispatch_token="mail-token",
        seed_demo_data=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings():
    return make_settings()


class ChannelRecorder:
    """httpx transport double: records every request, answers with `status`."""

    def __init__(self, status: int = 200):
        self.status = status
        self.requests = []
        self.raise_error = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_error is not None:
            raise self.raise_error
        return httpx.Response(self.status, text="ok" if self.status < 400 else "boom")

    def to(self, url: str):
        return [r for r in self.requests if str(r.url) == url]

    def json_to(self, url: str):
        return [json.loads(r.content) for r in self.to(url)]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def channels():
    return ChannelRecorder()


@pytest.fixture
def notifier(settings, channels):
    return ReviewNotifier(settings, transport=channels.transport)


def mock_gateway(refund_id: str = "rfnd_test_001", error: Optional[Exception] = None):
    """AsyncMock standing in for the payment gateway client."""
    m = AsyncMock()
    m.gateway_name = "razorpay"
    if error is not None:
        m.create_refund = AsyncMock(side_effect=error)
    else:
        m.create_refund = AsyncMock(return_value={
            "id": refund_id,
            "entity": "refund",
            "status": "pending",
        })
    return m


@pytest.fixture
def gateway():
    return mock_gateway()


@pytest.fixture
def client(db, settings, gateway, notifier):
    """
    FastAPI TestClient with the DB, settings, gateway and notifier
    dependencies overridden. The TestClient is NOT used as a context
    manager so the lifespan hook (which seeds the on-disk DB) is skipped.
    """
    from app.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_session_factory] = lambda: TestingSession
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers — not fixtures — so any test file can import and call them directly.
# ---------------------------------------------------------------------------
def sign_order(order_id: str, payment_id: str, secret: str = KEY_SECRET) -> str:
    return signature.sign(signature.order_confirmation_payload(order_id, payment_id), secret)


def webhook_body(event: str, **entities) -> bytes:
    """Razorpay-style envelope: payload.<name>.entity for each keyword."""
    envelope = {
        "entity": "event",
        "event": event,
        "payload": {name: {"entity": entity} for name, entity in entities.items()},
    }
    return json.dumps(envelope).encode("utf-8")


def make_profile(
    db,
    profile_id: str,
    display_name: Optional[str] = None,
    email: Optional[str] = None,
    role: str = "customer",
) -> models.Profile:
    profile = models.Profile(id=profile_id, display_name=display_name, email=email, role=role)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def make_service(
    db,
    service_id: str = "svc_1",
    developer_id: str = "dev_1",
    title: str = "Invoice Generator Pro",
    price: float = 49.99,
    currency: str = "USD",
) -> models.Service:
    service = models.Service(
        id=service_id,
        developer_id=developer_id,
        title=title,
        price=price,
        currency=currency,
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def make_purchase(
    db,
    purchase_id: str = "pur_1",
    customer_id: str = "cust_1",
    service_id: str = "svc_1",
    amount: float = 100.00,
    currency: str = "INR",
    gateway_order_id: str = "order_1",
    gateway_payment_id: Optional[str] = "pay_1",
    payment_status: str = "success",
    status: str = "completed",
    purchased_at: Optional[datetime] = None,   # defaults to 1 hour ago
) -> models.Purchase:
    if purchased_at is None:
        purchased_at = models.utcnow() - timedelta(hours=1)
    purchase = models.Purchase(
        id=purchase_id,
        customer_id=customer_id,
        service_id=service_id,
        amount=amount,
        currency=currency,
        gateway_order_id=gateway_order_id,
        gateway_payment_id=gateway_payment_id,
        payment_status=payment_status,
        status=status,
        purchased_at=purchased_at,
    )
    db.add(purchase)
    db.commit()
    db.refresh(purchase)
    return purchase


def make_refund(
    db,
    refund_id: str = "ref_1",
    purchase_id: str = "pur_1",
    amount: float = 100.00,
    currency: str = "INR",
    status: str = "processing",
    gateway_refund_id: Optional[str] = "rfnd_1",
    reason: str = "Not as described",
) -> models.Refund:
    refund = models.Refund(
        id=refund_id,
        purchase_id=purchase_id,
        amount=amount,
        currency=currency,
        status=status,
        gateway_refund_id=gateway_refund_id,
        reason=reason,
    )
    db.add(refund)
    db.commit()
    db.refresh(refund)
    return refund


def make_review(
    db,
    review_id: str = "rev_1",
    service_id: str = "svc_1",
    customer_id: str = "cust_1",
    rating: int = 1,
    review_text: Optional[str] = "Crashes on startup",
    is_anonymous: bool = False,
    created_at: Optional[datetime] = None,
) -> models.Review:
    review = models.Review(
        id=review_id,
        service_id=service_id,
        customer_id=customer_id,
        rating=rating,
        review_text=review_text,
        is_anonymous=is_anonymous,
        is_complaint=rating <= 2,
        created_at=created_at or datetime(2024, 1, 15, 10, 30, 0),
    )
    db.add(review)
    db.commit()
    db.refresh(review)
    return review
