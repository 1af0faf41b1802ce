"""CMS orders console: every order, its redemption progress and headline stats."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderflow_api.domain.orders.financials import to_decimal
from orderflow_api.domain.redemption.redeemables import OrderRedemptionState, derive_order_state
from orderflow_api.models.order import FulfillmentStatusEnum, PaymentStatusEnum
from orderflow_api.models.redemption import RedemptionStatusEnum
from orderflow_api.repositories.ledger import SqlAlchemyRedemptionLedgerRepository
from orderflow_api.repositories.orders import SqlAlchemyOrderRepository
from orderflow_api.services.realtime.change_feed import ChangeFeed
from orderflow_api.services.realtime.channel import RealtimeChannel

from .base import LiveBoard, Sleeper


@dataclass(slots=True)
class ConsoleRow:
    order_id: UUID
    order_number: str
    user_id: UUID | None
    outlet_name: str | None
    payment_status: PaymentStatusEnum
    status: FulfillmentStatusEnum
    total_amount: Decimal
    has_qr_code: bool
    redeemed_items: int
    total_items: int
    redemption_state: OrderRedemptionState
    created_at: datetime | None

    @property
    def pending_items(self) -> int:
        return self.total_items - self.redeemed_items

    @property
    def redemption_ratio(self) -> str:
        return f"{self.redeemed_items}/{self.total_items}"

    def as_dict(self) -> dict[str, Any]:
        return {
            "order_id": str(self.order_id),
            "order_number": self.order_number,
            "user_id": str(self.user_id) if self.user_id else None,
            "outlet_name": self.outlet_name,
            "payment_status": self.payment_status.value,
            "status": self.status.value,
            "total_amount": float(self.total_amount),
            "has_qr_code": self.has_qr_code,
            "redeemed_items": self.redeemed_items,
            "total_items": self.total_items,
            "pending_items": self.pending_items,
            "redemption_ratio": self.redemption_ratio,
            "redemption_state": self.redemption_state.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(slots=True)
class ConsoleStats:
    total: int = 0
    ready: int = 0
    completed: int = 0
    revenue: Decimal = Decimal("0")

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "ready": self.ready,
            "completed": self.completed,
            "revenue": float(self.revenue),
        }


@dataclass(slots=True)
class ConsoleView:
    rows: list[ConsoleRow] = field(default_factory=list)
    stats: ConsoleStats = field(default_factory=ConsoleStats)


async def load_console(session: AsyncSession, *, limit: int | None = None) -> ConsoleView:
    """All orders, paid or not, newest first."""

    orders = await SqlAlchemyOrderRepository(session).list_orders(limit=limit)
    ledger = await SqlAlchemyRedemptionLedgerRepository(session).list_for_orders(
        order.id for order in orders
    )
    view = ConsoleView()
    for order in orders:
        entries = ledger.get(order.id, [])
        redeemed = sum(1 for entry in entries if entry.status == RedemptionStatusEnum.COMPLETED)
        view.rows.append(
            ConsoleRow(
                order_id=order.id,
                order_number=order.order_number,
                user_id=order.user_id,
                outlet_name=order.outlet_name,
                payment_status=order.payment_status,
                status=order.status,
                total_amount=to_decimal(order.total_amount),
                has_qr_code=bool(order.qr_code),
                redeemed_items=redeemed,
                total_items=len(entries),
                redemption_state=derive_order_state(entry.status for entry in entries),
                created_at=order.created_at,
            )
        )
        view.stats.total += 1
        if order.status == FulfillmentStatusEnum.READY:
            view.stats.ready += 1
        elif order.status == FulfillmentStatusEnum.COMPLETED:
            view.stats.completed += 1
        if order.payment_status == PaymentStatusEnum.PAID:
            view.stats.revenue += to_decimal(order.total_amount)
    return view


class OrdersConsoleBoard(LiveBoard):
    name = "orders-console"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        limit: int | None = None,
        feed: ChangeFeed | None = None,
        sleep: Sleeper = asyncio.sleep,
        max_retries: int | None = None,
    ) -> None:
        self.limit = limit
        self.view = ConsoleView()
        self.rows_by_id: dict[UUID, ConsoleRow] = {}
        super().__init__(session_factory, feed=feed, sleep=sleep, max_retries=max_retries)

    def _bind(self, channel: RealtimeChannel) -> None:
        channel.on("orders", self._on_change)
        channel.on("order_item_redemptions", self._on_change)

    async def _load(self, session: AsyncSession) -> None:
        view = await load_console(session, limit=self.limit)
        self.view = view
        self.rows_by_id = {row.order_id: row for row in view.rows}


__all__ = ["ConsoleRow", "ConsoleStats", "ConsoleView", "OrdersConsoleBoard", "load_console"]
