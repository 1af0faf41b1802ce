"""Customer QR wallet: redeemable codes plus the order-ready toast."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderflow_api.core.settings import settings
from orderflow_api.domain.orders.collection import collection_number, parse_ready_message
from orderflow_api.domain.redemption.redeemables import (
    LedgerEntryView,
    OrderRedemptionState,
    derive_order_state,
)
from orderflow_api.models.notification import NotificationTypeEnum
from orderflow_api.models.order import FulfillmentStatusEnum
from orderflow_api.repositories.ledger import SqlAlchemyRedemptionLedgerRepository
from orderflow_api.repositories.orders import SqlAlchemyOrderRepository
from orderflow_api.repositories.rewards import SqlAlchemyRewardRepository
from orderflow_api.services.realtime.change_feed import ChangeEvent, ChangeFeed
from orderflow_api.services.realtime.channel import RealtimeChannel
from orderflow_api.services.redemption.service import entry_view

from .base import LiveBoard, Sleeper

_HIDDEN_ORDER_STATUSES = {FulfillmentStatusEnum.CANCELLED, FulfillmentStatusEnum.REFUNDED}


@dataclass(slots=True)
class WalletCode:
    kind: str
    id: UUID
    qr_code: str
    title: str
    state: OrderRedemptionState
    created_at: datetime | None = None
    order_number: str | None = None
    collection_number: str | None = None
    outlet_name: str | None = None
    entries: list[LedgerEntryView] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "id": str(self.id),
            "qr_code": self.qr_code,
            "title": self.title,
            "state": self.state.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "order_number": self.order_number,
            "collection_number": self.collection_number,
            "outlet_name": self.outlet_name,
            "items": [
                {
                    "item_index": entry.item_index,
                    "product_name": entry.product_name,
                    "quantity": entry.quantity,
                    "redeemed_quantity": entry.redeemed_quantity,
                    "status": entry.status.value,
                }
                for entry in self.entries
            ],
        }


@dataclass(frozen=True, slots=True)
class ReadyToast:
    collection_number: str
    outlet_name: str
    order_id: UUID | None
    shown_at: datetime


async def load_wallet(session: AsyncSession, user_id: UUID) -> list[WalletCode]:
    """The customer's redeemable codes; orders without a QR code (unpaid) never appear."""

    orders = await SqlAlchemyOrderRepository(session).list_orders(user_id=user_id, with_qr_code=True)
    orders = [order for order in orders if order.status not in _HIDDEN_ORDER_STATUSES]
    ledger = await SqlAlchemyRedemptionLedgerRepository(session).list_for_orders(
        order.id for order in orders
    )
    codes: list[WalletCode] = []
    for order in orders:
        entries = [entry_view(entry) for entry in ledger.get(order.id, [])]
        codes.append(
            WalletCode(
                kind="order",
                id=order.id,
                qr_code=order.qr_code,
                title=f"Order {order.order_number}",
                state=derive_order_state(entry.status for entry in entries),
                created_at=order.created_at,
                order_number=order.order_number,
                collection_number=collection_number(order.order_number),
                outlet_name=order.outlet_name,
                entries=entries,
            )
        )

    rewards = await SqlAlchemyRewardRepository(session).list_unused_for_user(user_id)
    for kind, items in rewards.items():
        for reward in items:
            codes.append(
                WalletCode(
                    kind=kind.value,
                    id=reward.id,
                    qr_code=reward.qr_code,
                    title=reward.title,
                    state=OrderRedemptionState.ACTIVE,
                    created_at=reward.created_at,
                )
            )
    return codes


class CustomerQRBoard(LiveBoard):
    name = "customer"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        user_id: UUID,
        feed: ChangeFeed | None = None,
        sleep: Sleeper = asyncio.sleep,
        max_retries: int | None = None,
    ) -> None:
        self.user_id = user_id
        self.codes: list[WalletCode] = []
        self.codes_by_id: dict[UUID, WalletCode] = {}
        self.toasts: list[ReadyToast] = []
        super().__init__(session_factory, feed=feed, sleep=sleep, max_retries=max_retries)

    def _bind(self, channel: RealtimeChannel) -> None:
        channel.on(
            "notifications",
            self._on_notification,
            filters={"user_id": self.user_id},
            events=("INSERT",),
        )
        channel.on("orders", self._on_change, filters={"user_id": self.user_id})
        channel.on("order_item_redemptions", self._on_ledger_change)

    async def _load(self, session: AsyncSession) -> None:
        codes = await load_wallet(session, self.user_id)
        self.codes = codes
        self.codes_by_id = {code.id: code for code in codes}

    @property
    def active_toast(self) -> ReadyToast | None:
        return self.toasts[-1] if self.toasts else None

    def dismiss_toast(self) -> None:
        if self.toasts:
            self.toasts.pop()

    async def _on_notification(self, change: ChangeEvent) -> None:
        if change.new.get("notification_type") != NotificationTypeEnum.ORDER_READY.value:
            return
        number, outlet = parse_ready_message(
            change.new.get("message"), default_outlet=settings.default_outlet_name
        )
        order_id = change.new.get("order_id")
        toast = ReadyToast(
            collection_number=number,
            outlet_name=outlet,
            order_id=UUID(order_id) if order_id else None,
            shown_at=datetime.now(timezone.utc),
        )
        self.toasts.append(toast)
        logger.info("Order ready toast", board=self.name, collection_number=number)
        await self.resync()

    async def _on_ledger_change(self, change: ChangeEvent) -> None:
        order_id = change.row.get("order_id")
        if order_id is None or UUID(str(order_id)) not in self.codes_by_id:
            return
        await self.resync()


__all__ = ["CustomerQRBoard", "ReadyToast", "WalletCode", "load_wallet"]
