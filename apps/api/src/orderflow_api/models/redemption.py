"""Per line item redemption ledger."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from orderflow_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RedemptionStatusEnum(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class OrderItemRedemption(Base):
    """Ledger entry tracking how much of one order line item has been handed over.

    ``item_index`` is the position of the line item inside ``orders.items``; it is the join
    key, there is no separate items table.
    """

    __tablename__ = "order_item_redemptions"
    __table_args__ = (
        UniqueConstraint("order_id", "item_index", name="uq_order_item_redemptions_order_index"),
        CheckConstraint("redeemed_quantity <= quantity", name="ck_order_item_redemptions_quantity"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)
    item_index = Column(Integer, nullable=False)
    product_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=1, server_default="1")
    redeemed_quantity = Column(Integer, nullable=False, default=0, server_default="0")
    status = Column(
        SqlEnum(RedemptionStatusEnum, name="order_item_redemption_status_enum"),
        nullable=False,
        default=RedemptionStatusEnum.PENDING,
        server_default=RedemptionStatusEnum.PENDING.name,
    )
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    redeemed_at_outlet_id = Column(UUID(as_uuid=True), nullable=True)
    redemption_method = Column(String(32), nullable=True)
    staff_passcode_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
