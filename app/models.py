from datetime import datetime, timezone
from enum import Enum
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)

from app.database import Base


def generate_id():
    return str(uuid.uuid4())


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


FINAL_ORDER_STATES = (OrderStatus.REFUNDED.value, OrderStatus.CANCELLED.value)


class RefundStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Profile(Base):
    """Marketplace user. Owned by the identity service; read-only here."""

    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=generate_id)
    display_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    role = Column(String(20), nullable=False, default="customer")
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Service(Base):
    """A developer's listing. Owned by the catalog; read-only here."""

    __tablename__ = "services"

    id = Column(String, primary_key=True, default=generate_id)
    developer_id = Column(String, nullable=False, index=True)
    title = Column(String(100), nullable=False)
    price = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(String(20), nullable=False, default="published")
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Purchase(Base):
    __tablename__ = "purchases"

    id = Column(String, primary_key=True, default=generate_id)
    customer_id = Column(String, nullable=False, index=True)
    service_id = Column(String, ForeignKey("services.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False)
    gateway_order_id = Column(String, nullable=False, unique=True)
    gateway_payment_id = Column(String, nullable=True, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    # Set while a refund is being requested or is in flight; cleared if it fails.
    refund_claimed_at = Column(DateTime, nullable=True)
    purchased_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Refund(Base):
    __tablename__ = "refunds"

    id = Column(String, primary_key=True, default=generate_id)
    purchase_id = Column(String, ForeignKey("purchases.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=RefundStatus.PROCESSING.value)
    gateway_refund_id = Column(String, nullable=True, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # At most one refund per purchase may be processing or completed.
        Index(
            "uq_refunds_active_purchase",
            "purchase_id",
            unique=True,
            sqlite_where=text("status != 'failed'"),
            postgresql_where=text("status != 'failed'"),
        ),
    )


class Review(Base):
    __tablename__ = "reviews"

    id = Column(String, primary_key=True, default=generate_id)
    service_id = Column(String, ForeignKey("services.id"), nullable=False, index=True)
    customer_id = Column(String, nullable=False)
    rating = Column(Integer, nullable=False)
    review_text = Column(Text, nullable=True)
    is_anonymous = Column(Boolean, nullable=False, default=False)
    is_complaint = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("customer_id", "service_id", name="uq_reviews_customer_service"),
    )


class WebhookEvent(Base):
    """Append-only audit log of every authenticated gateway delivery."""

    __tablename__ = "webhook_events"

    id = Column(String, primary_key=True, default=generate_id)
    event_type = Column(String, nullable=False, index=True)
    gateway_event_id = Column(String, nullable=True)
    payload = Column(Text, nullable=False)
    received_at = Column(DateTime, nullable=False, default=utcnow)
