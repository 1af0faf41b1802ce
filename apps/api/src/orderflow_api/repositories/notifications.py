"""SQLAlchemy-backed notification repository."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.models.notification import Notification


class SqlAlchemyNotificationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, notification: Notification) -> Notification:
        self._session.add(notification)
        await self._session.flush()
        return notification

    async def list_for_user(self, user_id: UUID, *, order_id: UUID | None = None) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
        )
        if order_id is not None:
            stmt = stmt.where(Notification.order_id == order_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


__all__ = ["SqlAlchemyNotificationRepository"]
