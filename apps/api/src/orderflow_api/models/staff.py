from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from orderflow_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StaffPasscode(Base):
    """Staff member authorised to confirm redemptions with a short numeric passcode."""

    __tablename__ = "staff_passcodes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    staff_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    role = Column(String(32), nullable=False, default="staff", server_default="staff")
    outlet_id = Column(UUID(as_uuid=True), nullable=True)
    passcode_digest = Column(String(64), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    is_superadmin = Column(Boolean, nullable=False, default=False, server_default="false")
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
