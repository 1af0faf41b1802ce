"""SQLAlchemy-backed order repository."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.models.order import Order, PaymentStatusEnum


class SqlAlchemyOrderRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, order_id: UUID) -> Order | None:
        return await self._session.get(Order, order_id)

    async def get_many(self, order_ids: Iterable[UUID]) -> list[Order]:
        ids = list(order_ids)
        if not ids:
            return []
        result = await self._session.execute(select(Order).where(Order.id.in_(ids)))
        return list(result.scalars().all())

    async def add(self, order: Order) -> Order:
        self._session.add(order)
        await self._session.flush()
        return order

    async def list_orders(
        self,
        *,
        user_id: UUID | None = None,
        outlet_id: UUID | None = None,
        paid_only: bool = False,
        with_qr_code: bool = False,
        created_after: datetime | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        stmt = select(Order).order_by(Order.created_at.desc(), Order.order_number.desc())
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        if outlet_id is not None:
            stmt = stmt.where(Order.outlet_id == outlet_id)
        if paid_only:
            stmt = stmt.where(Order.payment_status == PaymentStatusEnum.PAID)
        if with_qr_code:
            stmt = stmt.where(Order.qr_code.is_not(None), Order.qr_code != "")
        if created_after is not None:
            stmt = stmt.where(Order.created_at >= created_after)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def delete_many(self, order_ids: Sequence[UUID]) -> int:
        orders = await self.get_many(order_ids)
        for order in orders:
            await self._session.delete(order)
        await self._session.flush()
        return len(orders)


__all__ = ["SqlAlchemyOrderRepository"]
