"""SQLAlchemy-backed staff and audit log repositories."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.models.audit import StaffRedemptionLog, StaffScanLog
from orderflow_api.models.staff import StaffPasscode


class SqlAlchemyStaffRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_digest(self, digest: str) -> StaffPasscode | None:
        """Return the active staff row for ``digest``; inactive rows never match."""

        return await self._session.scalar(
            select(StaffPasscode)
            .where(StaffPasscode.passcode_digest == digest, StaffPasscode.is_active.is_(True))
            .limit(1)
        )

    async def add(self, staff: StaffPasscode) -> StaffPasscode:
        self._session.add(staff)
        await self._session.flush()
        return staff


class SqlAlchemyAuditLogRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_redemption_log(self, **values: object) -> StaffRedemptionLog:
        log = StaffRedemptionLog(**values)
        self._session.add(log)
        await self._session.flush()
        return log

    async def add_scan_log(self, **values: object) -> StaffScanLog:
        log = StaffScanLog(**values)
        self._session.add(log)
        await self._session.flush()
        return log

    async def list_redemption_logs(
        self, *, redemption_id: UUID | None = None, limit: int = 100
    ) -> list[StaffRedemptionLog]:
        stmt = select(StaffRedemptionLog).order_by(StaffRedemptionLog.created_at.desc()).limit(limit)
        if redemption_id is not None:
            stmt = stmt.where(StaffRedemptionLog.redemption_id == redemption_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_scan_logs(self, *, order_id: UUID | None = None, limit: int = 100) -> list[StaffScanLog]:
        stmt = select(StaffScanLog).order_by(StaffScanLog.scanned_at.desc()).limit(limit)
        if order_id is not None:
            stmt = stmt.where(StaffScanLog.order_id == order_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


__all__ = ["SqlAlchemyAuditLogRepository", "SqlAlchemyStaffRepository"]
