"""Repository contracts the services depend on."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping, Protocol, Sequence
from uuid import UUID

from orderflow_api.domain.redemption.redeemables import RewardKind
from orderflow_api.models.audit import StaffRedemptionLog, StaffScanLog
from orderflow_api.models.kitchen import KitchenItemTracking
from orderflow_api.models.notification import Notification
from orderflow_api.models.order import Order
from orderflow_api.models.redemption import OrderItemRedemption
from orderflow_api.models.reward import GiftRedemption, StampRedemption
from orderflow_api.models.staff import StaffPasscode


class OrderRepository(Protocol):
    async def get(self, order_id: UUID) -> Order | None:
        ...

    async def get_many(self, order_ids: Iterable[UUID]) -> list[Order]:
        ...

    async def add(self, order: Order) -> Order:
        ...

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
        ...

    async def delete_many(self, order_ids: Sequence[UUID]) -> int:
        ...


class RedemptionLedgerRepository(Protocol):
    async def list_for_order(self, order_id: UUID) -> list[OrderItemRedemption]:
        ...

    async def list_for_orders(self, order_ids: Iterable[UUID]) -> dict[UUID, list[OrderItemRedemption]]:
        ...

    async def add_entries(self, entries: Sequence[OrderItemRedemption]) -> None:
        ...

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
        """Complete one entry only if it is still pending; ``False`` when no row changed."""
        ...

    async def delete_for_orders(self, order_ids: Sequence[UUID]) -> int:
        ...


class KitchenTrackingRepository(Protocol):
    async def list_for_orders(self, order_ids: Iterable[UUID]) -> dict[UUID, dict[int, KitchenItemTracking]]:
        ...

    async def get(self, order_id: UUID, item_index: int) -> KitchenItemTracking | None:
        ...

    async def set_prepared(
        self,
        order_id: UUID,
        item_index: int,
        *,
        prepared: bool,
        staff_id: UUID | None,
        at: datetime,
    ) -> KitchenItemTracking:
        ...

    async def delete_for_orders(self, order_ids: Sequence[UUID]) -> int:
        ...


class StaffRepository(Protocol):
    async def find_by_digest(self, digest: str) -> StaffPasscode | None:
        ...

    async def add(self, staff: StaffPasscode) -> StaffPasscode:
        ...


class AuditLogRepository(Protocol):
    async def add_redemption_log(self, **values: object) -> StaffRedemptionLog:
        ...

    async def add_scan_log(self, **values: object) -> StaffScanLog:
        ...

    async def list_redemption_logs(
        self, *, redemption_id: UUID | None = None, limit: int = 100
    ) -> list[StaffRedemptionLog]:
        ...

    async def list_scan_logs(self, *, order_id: UUID | None = None, limit: int = 100) -> list[StaffScanLog]:
        ...


class NotificationRepository(Protocol):
    async def add(self, notification: Notification) -> Notification:
        ...

    async def list_for_user(self, user_id: UUID, *, order_id: UUID | None = None) -> list[Notification]:
        ...


class RewardRepository(Protocol):
    async def get(self, kind: RewardKind, reward_id: UUID) -> GiftRedemption | StampRedemption | None:
        ...

    async def mark_used(self, kind: RewardKind, reward_id: UUID, *, used_at: datetime) -> bool:
        """Mark a reward used only if it is still unused; ``False`` when no row changed."""
        ...

    async def list_unused_for_user(self, user_id: UUID) -> Mapping[RewardKind, list[GiftRedemption | StampRedemption]]:
        ...


__all__ = [
    "AuditLogRepository",
    "KitchenTrackingRepository",
    "NotificationRepository",
    "OrderRepository",
    "RedemptionLedgerRepository",
    "RewardRepository",
    "StaffRepository",
]
