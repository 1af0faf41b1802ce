from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from orderflow_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KitchenItemTracking(Base):
    """Whether the kitchen has physically prepared one line item of an order."""

    __tablename__ = "kitchen_item_tracking"
    __table_args__ = (
        UniqueConstraint("order_id", "item_index", name="uq_kitchen_item_tracking_order_index"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)
    item_index = Column(Integer, nullable=False)
    is_prepared = Column(Boolean, nullable=False, default=False, server_default="false")
    staff_id = Column(UUID(as_uuid=True), nullable=True)
    prepared_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )
