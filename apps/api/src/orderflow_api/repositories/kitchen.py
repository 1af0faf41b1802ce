"""SQLAlchemy-backed kitchen tracking repository."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.models.kitchen import KitchenItemTracking


class SqlAlchemyKitchenTrackingRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_for_orders(self, order_ids: Iterable[UUID]) -> dict[UUID, dict[int, KitchenItemTracking]]:
        ids = list(order_ids)
        grouped: dict[UUID, dict[int, KitchenItemTracking]] = defaultdict(dict)
        if not ids:
            return grouped
        result = await self._session.execute(
            select(KitchenItemTracking).where(KitchenItemTracking.order_id.in_(ids))
        )
        for row in result.scalars().all():
            grouped[row.order_id][row.item_index] = row
        return grouped

    async def get(self, order_id: UUID, item_index: int) -> KitchenItemTracking | None:
        return await self._session.scalar(
            select(KitchenItemTracking).where(
                KitchenItemTracking.order_id == order_id,
                KitchenItemTracking.item_index == item_index,
            )
        )

    async def set_prepared(
        self,
        order_id: UUID,
        item_index: int,
        *,
        prepared: bool,
        staff_id: UUID | None,
        at: datetime,
    ) -> KitchenItemTracking:
        row = await self.get(order_id, item_index)
        if row is None:
            row = KitchenItemTracking(order_id=order_id, item_index=item_index)
            self._session.add(row)
        row.is_prepared = prepared
        row.staff_id = staff_id
        row.prepared_at = at if prepared else None
        row.updated_at = at
        await self._session.flush()
        return row

    async def delete_for_orders(self, order_ids: Sequence[UUID]) -> int:
        grouped = await self.list_for_orders(order_ids)
        count = 0
        for rows in grouped.values():
            for row in rows.values():
                await self._session.delete(row)
                count += 1
        await self._session.flush()
        return count


__all__ = ["SqlAlchemyKitchenTrackingRepository"]
