from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, String, func
from sqlalchemy.dialects.postgresql import UUID

from orderflow_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StampRedemptionStatusEnum(str, Enum):
    ACTIVE = "active"
    USED = "used"


class GiftRedemption(Base):
    """Gift reward claimed by a customer and collected at an outlet."""

    __tablename__ = "gift_redemptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    outlet_id = Column(UUID(as_uuid=True), nullable=True)
    title = Column(String, nullable=False)
    qr_code = Column(String, nullable=False, unique=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


class StampRedemption(Base):
    """Stamp card reward (e.g. a free ice cream) awaiting collection."""

    __tablename__ = "stamp_redemptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    outlet_id = Column(UUID(as_uuid=True), nullable=True)
    title = Column(String, nullable=False)
    qr_code = Column(String, nullable=False, unique=True)
    status = Column(
        SqlEnum(StampRedemptionStatusEnum, name="stamp_redemption_status_enum"),
        nullable=False,
        default=StampRedemptionStatusEnum.ACTIVE,
        server_default=StampRedemptionStatusEnum.ACTIVE.name,
    )
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
