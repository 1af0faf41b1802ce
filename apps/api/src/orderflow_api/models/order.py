from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, Integer, JSON, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from orderflow_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStatusEnum(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class FulfillmentStatusEnum(str, Enum):
    WAITING_PAYMENT = "waiting_payment"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class KitchenStatusEnum(str, Enum):
    PREPARING = "preparing"
    READY = "ready"
    COLLECTED = "collected"
    CANCELLED = "cancelled"


class Order(Base):
    """Shop order with its line items embedded as an ordered JSON array."""

    __tablename__ = "orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_number = Column(String, nullable=False, unique=True)
    user_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    outlet_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    outlet_name = Column(String, nullable=True)

    items = Column(JSON, nullable=False, default=list)

    gross_sales = Column(Numeric(12, 2), nullable=True)
    subtotal = Column(Numeric(12, 2), nullable=False, default=Decimal("0"), server_default="0")
    voucher_discount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"), server_default="0")
    tier_discount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"), server_default="0")
    bonus_discount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"), server_default="0")
    total_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"), server_default="0")

    payment_status = Column(
        SqlEnum(PaymentStatusEnum, name="payment_status_enum"),
        nullable=False,
        default=PaymentStatusEnum.PENDING,
        server_default=PaymentStatusEnum.PENDING.name,
    )
    status = Column(
        SqlEnum(FulfillmentStatusEnum, name="fulfillment_status_enum"),
        nullable=False,
        default=FulfillmentStatusEnum.WAITING_PAYMENT,
        server_default=FulfillmentStatusEnum.WAITING_PAYMENT.name,
    )
    fnbstatus = Column(SqlEnum(KitchenStatusEnum, name="kitchen_status_enum"), nullable=True)
    fnbstatus_updated_at = Column(DateTime(timezone=True), nullable=True)
    preparation_ended_at = Column(DateTime(timezone=True), nullable=True)
    ready_episode = Column(Integer, nullable=False, default=0, server_default="0")
    notified_episode = Column(Integer, nullable=False, default=0, server_default="0")

    qr_code = Column(String, nullable=True, unique=True)
    payment_error = Column(Text, nullable=True)
    staff_name_last_action = Column(String, nullable=True)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    refund_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    @property
    def kitchen_status(self) -> KitchenStatusEnum:
        """Kitchen status with NULL treated as preparing."""

        return self.fnbstatus or KitchenStatusEnum.PREPARING
