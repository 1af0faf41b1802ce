"""SQLAlchemy-backed redemption ledger repository."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.models.redemption import OrderItemRedemption, RedemptionStatusEnum
from orderflow_api.services.realtime.change_feed import ChangeEventType, instance_values, stage_change


class SqlAlchemyRedemptionLedgerRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_for_order(self, order_id: UUID) -> list[OrderItemRedemption]:
        result = await self._session.execute(
            select(OrderItemRedemption)
            .where(OrderItemRedemption.order_id == order_id)
            .order_by(OrderItemRedemption.item_index)
        )
        return list(result.scalars().all())

    async def list_for_orders(self, order_ids: Iterable[UUID]) -> dict[UUID, list[OrderItemRedemption]]:
        ids = list(order_ids)
        grouped: dict[UUID, list[OrderItemRedemption]] = defaultdict(list)
        if not ids:
            return grouped
        result = await self._session.execute(
            select(OrderItemRedemption)
            .where(OrderItemRedemption.order_id.in_(ids))
            .order_by(OrderItemRedemption.order_id, OrderItemRedemption.item_index)
        )
        for entry in result.scalars().all():
            grouped[entry.order_id].append(entry)
        return grouped

    async def add_entries(self, entries: Sequence[OrderItemRedemption]) -> None:
        self._session.add_all(list(entries))
        await self._session.flush()

    async def complete_pending(
        self,
        order_id: UUID,
        item_index: int,
        *,
        redeemed_at: datetime,
        outlet_id: UUID | None,
        method: str,
        staff_passcode_id: UUID | None,
    ) -> bool:
        lookup = (
            OrderItemRedemption.order_id == order_id,
            OrderItemRedemption.item_index == item_index,
        )
        before = await self._session.scalar(select(OrderItemRedemption).where(*lookup))
        if before is None:
            return False
        old = instance_values(before)

        result = await self._session.execute(
            update(OrderItemRedemption)
            .where(*lookup, OrderItemRedemption.status == RedemptionStatusEnum.PENDING)
            .values(
                status=RedemptionStatusEnum.COMPLETED,
                redeemed_quantity=OrderItemRedemption.quantity,
                redeemed_at=redeemed_at,
                redeemed_at_outlet_id=outlet_id,
                redemption_method=method,
                staff_passcode_id=staff_passcode_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        after = await self._session.scalar(
            select(OrderItemRedemption)
            .where(*lookup)
            .execution_options(populate_existing=True)
        )
        stage_change(
            self._session,
            OrderItemRedemption.__tablename__,
            ChangeEventType.UPDATE,
            new=instance_values(after),
            old=old,
        )
        return True

    async def delete_for_orders(self, order_ids: Sequence[UUID]) -> int:
        grouped = await self.list_for_orders(order_ids)
        count = 0
        for entries in grouped.values():
            for entry in entries:
                await self._session.delete(entry)
                count += 1
        await self._session.flush()
        return count


__all__ = ["SqlAlchemyRedemptionLedgerRepository"]
