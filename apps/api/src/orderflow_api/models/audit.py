"""Append-only staff audit tables.

``staff_redemption_logs`` records every passcode and redemption attempt; ``staff_scan_logs``
feeds the scan history screens. The two overlap on purpose and are queried independently.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Enum as SqlEnum, Integer, JSON, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from orderflow_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RedemptionTypeEnum(str, Enum):
    GIFT = "gift"
    STAMP = "stamp"
    ORDER = "order"


class ScanTypeEnum(str, Enum):
    CUSTOMER = "customer"
    ORDER = "order"
    WORKSHOP = "workshop"
    REWARD = "reward"


class ScanResultEnum(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"


class StaffRedemptionLog(Base):
    __tablename__ = "staff_redemption_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    staff_passcode_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    redemption_type = Column(SqlEnum(RedemptionTypeEnum, name="redemption_type_enum"), nullable=False)
    redemption_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    user_id = Column(UUID(as_uuid=True), nullable=True)
    outlet_id = Column(UUID(as_uuid=True), nullable=True)
    items_redeemed = Column(JSON, nullable=False, default=list)
    success = Column(Boolean, nullable=False)
    failure_reason = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


class StaffScanLog(Base):
    __tablename__ = "staff_scan_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    staff_id = Column(UUID(as_uuid=True), nullable=True)
    staff_name = Column(String, nullable=True)
    scan_type = Column(SqlEnum(ScanTypeEnum, name="scan_type_enum"), nullable=False)
    qr_code = Column(String, nullable=False)
    scan_result = Column(SqlEnum(ScanResultEnum, name="scan_result_enum"), nullable=False)
    customer_id = Column(UUID(as_uuid=True), nullable=True)
    order_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    order_number = Column(String, nullable=True)
    outlet_id = Column(UUID(as_uuid=True), nullable=True)
    outlet_name = Column(String, nullable=True)
    items_redeemed = Column(Integer, nullable=True)
    success = Column(Boolean, nullable=False)
    failure_reason = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    scanned_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
