"""Redemption confirmation over orders and single rewards."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.domain.orders.financials import is_redeemable_item
from orderflow_api.domain.redemption.redeemables import (
    EmptySelectionError,
    LedgerEntryView,
    OrderItems,
    OrderRedemptionState,
    Redeemable,
    RewardKind,
    SingleReward,
    derive_order_state,
)
from orderflow_api.models.audit import RedemptionTypeEnum, ScanResultEnum, ScanTypeEnum
from orderflow_api.models.order import FulfillmentStatusEnum, Order, PaymentStatusEnum
from orderflow_api.models.redemption import OrderItemRedemption, RedemptionStatusEnum
from orderflow_api.models.reward import StampRedemptionStatusEnum
from orderflow_api.observability.redemption import get_redemption_store
from orderflow_api.observability.tracing import get_tracer
from orderflow_api.repositories.errors import BackendRejectionError
from orderflow_api.repositories.interfaces import (
    AuditLogRepository,
    OrderRepository,
    RedemptionLedgerRepository,
    RewardRepository,
)
from orderflow_api.repositories.ledger import SqlAlchemyRedemptionLedgerRepository
from orderflow_api.repositories.orders import SqlAlchemyOrderRepository
from orderflow_api.repositories.rewards import SqlAlchemyRewardRepository
from orderflow_api.repositories.staff import SqlAlchemyAuditLogRepository
from orderflow_api.services.staff.passcode_gate import StaffIdentity

from .exceptions import (
    InvalidSelectionError,
    RedeemableNotFoundError,
    RedemptionConflictError,
    RedemptionError,
    RedemptionNotAllowedError,
)

REDEMPTION_METHOD_SCAN = "scan"

_REDEEMABLE_STATUSES = {FulfillmentStatusEnum.READY, FulfillmentStatusEnum.COMPLETED}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def entry_view(entry: OrderItemRedemption) -> LedgerEntryView:
    return LedgerEntryView(
        item_index=entry.item_index,
        product_name=entry.product_name,
        quantity=entry.quantity,
        redeemed_quantity=entry.redeemed_quantity,
        status=entry.status,
        redeemed_at=entry.redeemed_at,
    )


def build_ledger_entries(order: Order, existing_indices: set[int] | None = None) -> list[OrderItemRedemption]:
    """Ledger rows for the order's redeemable line items not yet tracked."""

    existing = existing_indices or set()
    entries: list[OrderItemRedemption] = []
    for index, item in enumerate(order.items or []):
        if index in existing or not is_redeemable_item(item):
            continue
        entries.append(
            OrderItemRedemption(
                order_id=order.id,
                item_index=index,
                product_name=item.get("product_name") or "Item",
                quantity=int(item.get("quantity") or 1),
                redeemed_quantity=0,
                status=RedemptionStatusEnum.PENDING,
            )
        )
    return entries


@dataclass(slots=True)
class OrderLedger:
    order: Order
    entries: list[LedgerEntryView]

    @property
    def state(self) -> OrderRedemptionState:
        return derive_order_state(entry.status for entry in self.entries)

    @property
    def redeemed_count(self) -> int:
        return sum(1 for entry in self.entries if entry.is_completed)


@dataclass(slots=True)
class RedemptionOutcome:
    redeemable: Redeemable
    redeemed_items: list[dict[str, Any]]
    state: OrderRedemptionState
    order_completed: bool = False
    entries: list[LedgerEntryView] = field(default_factory=list)


@dataclass(slots=True)
class _Attempt:
    """Plain values captured up front so failure logging survives a rollback."""

    redemption_type: RedemptionTypeEnum
    redemption_id: UUID
    scan_type: ScanTypeEnum
    qr_code: str = ""
    user_id: UUID | None = None
    order_id: UUID | None = None
    order_number: str | None = None
    outlet_name: str | None = None
    items: list[dict[str, Any]] = field(default_factory=list)


class RedemptionService:
    """Confirm redemptions atomically and keep both audit trails complete.

    Every confirmation attempt, successful or not, writes one ``staff_redemption_logs`` row and one
    ``staff_scan_logs`` row. Successful attempts write them inside the redemption transaction; failed
    attempts write them after the rollback in their own commit.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        orders: OrderRepository | None = None,
        ledger: RedemptionLedgerRepository | None = None,
        rewards: RewardRepository | None = None,
        audit: AuditLogRepository | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session = session
        self._orders = orders or SqlAlchemyOrderRepository(session)
        self._ledger = ledger or SqlAlchemyRedemptionLedgerRepository(session)
        self._rewards = rewards or SqlAlchemyRewardRepository(session)
        self._audit = audit or SqlAlchemyAuditLogRepository(session)
        self._clock = clock

    async def ensure_ledger(self, order: Order) -> list[OrderItemRedemption]:
        """Create missing ledger rows for ``order`` (flushed, not committed) and return all rows."""

        entries = await self._ledger.list_for_order(order.id)
        missing = build_ledger_entries(order, {entry.item_index for entry in entries})
        if missing:
            await self._ledger.add_entries(missing)
            logger.info("Ledger entries created", order_id=str(order.id), count=len(missing))
            entries = await self._ledger.list_for_order(order.id)
        return entries

    async def get_order_ledger(self, order_id: UUID) -> OrderLedger:
        """Staff lookup of an order's checklist; creates the ledger lazily on first lookup."""

        order = await self._orders.get(order_id)
        if order is None:
            raise RedeemableNotFoundError(f"Order {order_id} not found")
        try:
            entries = await self.ensure_ledger(order)
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise BackendRejectionError.from_sqlalchemy(exc, action="load the redemption ledger") from exc
        return OrderLedger(order=order, entries=[entry_view(entry) for entry in entries])

    async def confirm(
        self,
        redeemable: Redeemable,
        staff: StaffIdentity,
        *,
        outlet_id: UUID | None = None,
    ) -> RedemptionOutcome:
        if isinstance(redeemable, OrderItems):
            if not redeemable.item_indices:
                raise EmptySelectionError()
            attempt = _Attempt(
                redemption_type=RedemptionTypeEnum.ORDER,
                redemption_id=redeemable.order_id,
                scan_type=ScanTypeEnum.ORDER,
                order_id=redeemable.order_id,
            )
            run = self._confirm_order_items
        elif isinstance(redeemable, SingleReward):
            attempt = _Attempt(
                redemption_type=RedemptionTypeEnum(redeemable.kind.value),
                redemption_id=redeemable.reward_id,
                scan_type=ScanTypeEnum.REWARD,
            )
            run = self._confirm_reward
        else:
            raise TypeError(f"Unsupported redeemable: {redeemable!r}")

        store = get_redemption_store()
        try:
            with get_tracer().start_as_current_span("redemption.confirm") as span:
                span.set_attribute("redemption.type", attempt.redemption_type.value)
                span.set_attribute("redemption.id", str(attempt.redemption_id))
                outcome = await run(redeemable, staff, outlet_id, attempt)
                await self._session.commit()
        except RedemptionError as exc:
            await self._session.rollback()
            await self._record_failure(attempt, staff, outlet_id, str(exc))
            store.record_redemption(attempt.redemption_type.value, "failure")
            logger.warning(
                "Redemption rejected",
                redemption_type=attempt.redemption_type.value,
                redemption_id=str(attempt.redemption_id),
                reason=str(exc),
            )
            raise
        except SQLAlchemyError as exc:
            await self._session.rollback()
            error = BackendRejectionError.from_sqlalchemy(exc, action="confirm the redemption")
            try:
                await self._record_failure(attempt, staff, outlet_id, error.message)
            except SQLAlchemyError:
                await self._session.rollback()
                logger.exception(
                    "Redemption failure log not written", redemption_id=str(attempt.redemption_id)
                )
            store.record_redemption(attempt.redemption_type.value, "failure")
            logger.exception("Redemption write failed", redemption_id=str(attempt.redemption_id))
            raise error from exc

        store.record_redemption(
            attempt.redemption_type.value, "success", items=len(outcome.redeemed_items)
        )
        logger.info(
            "Redemption confirmed",
            redemption_type=attempt.redemption_type.value,
            redemption_id=str(attempt.redemption_id),
            items=len(outcome.redeemed_items),
            staff_id=str(staff.staff_id),
            order_completed=outcome.order_completed,
        )
        return outcome

    async def _confirm_order_items(
        self,
        redeemable: OrderItems,
        staff: StaffIdentity,
        outlet_id: UUID | None,
        attempt: _Attempt,
    ) -> RedemptionOutcome:
        order = await self._orders.get(redeemable.order_id)
        if order is None:
            raise RedeemableNotFoundError(f"Order {redeemable.order_id} not found")
        attempt.qr_code = order.qr_code or ""
        attempt.user_id = order.user_id
        attempt.order_number = order.order_number
        attempt.outlet_name = order.outlet_name

        if order.payment_status != PaymentStatusEnum.PAID or order.status not in _REDEEMABLE_STATUSES:
            raise RedemptionNotAllowedError(
                f"Order {order.order_number} cannot be redeemed while {order.status.value}"
            )

        entries = {entry.item_index: entry for entry in await self.ensure_ledger(order)}
        indices = sorted(set(redeemable.item_indices))
        attempt.items = [
            {
                "item_index": index,
                "product_name": entries[index].product_name if index in entries else None,
                "quantity": entries[index].quantity if index in entries else None,
            }
            for index in indices
        ]

        unknown = [index for index in indices if index not in entries]
        if unknown:
            raise InvalidSelectionError(unknown)
        already = [index for index in indices if entries[index].status == RedemptionStatusEnum.COMPLETED]
        if already:
            raise RedemptionConflictError(order.id, already)

        now = self._clock()
        for index in indices:
            updated = await self._ledger.complete_pending(
                order.id,
                index,
                redeemed_at=now,
                outlet_id=outlet_id,
                method=REDEMPTION_METHOD_SCAN,
                staff_passcode_id=staff.staff_id,
            )
            if not updated:
                raise RedemptionConflictError(order.id, [index])

        refreshed = await self._ledger.list_for_order(order.id)
        state = derive_order_state(entry.status for entry in refreshed)
        order_completed = False
        if state == OrderRedemptionState.COMPLETED and order.status != FulfillmentStatusEnum.COMPLETED:
            order.status = FulfillmentStatusEnum.COMPLETED
            order.completed_at = now
            order.staff_name_last_action = staff.staff_name
            order_completed = True

        await self._write_logs(
            attempt,
            staff,
            outlet_id,
            success=True,
            scan_result=ScanResultEnum.SUCCESS if order_completed else ScanResultEnum.PARTIAL,
            metadata={
                "staff_name": staff.staff_name,
                "order_number": order.order_number,
                "order_completed": order_completed,
                "redemption_state": state.value,
            },
        )
        return RedemptionOutcome(
            redeemable=redeemable,
            redeemed_items=attempt.items,
            state=state,
            order_completed=order_completed,
            entries=[entry_view(entry) for entry in refreshed],
        )

    async def _confirm_reward(
        self,
        redeemable: SingleReward,
        staff: StaffIdentity,
        outlet_id: UUID | None,
        attempt: _Attempt,
    ) -> RedemptionOutcome:
        reward = await self._rewards.get(redeemable.kind, redeemable.reward_id)
        if reward is None:
            raise RedeemableNotFoundError(f"{redeemable.kind.value.title()} {redeemable.reward_id} not found")
        attempt.qr_code = reward.qr_code
        attempt.user_id = reward.user_id
        attempt.items = [{"item_index": 0, "product_name": reward.title, "quantity": 1}]

        used = reward.used_at is not None
        if redeemable.kind == RewardKind.STAMP and reward.status != StampRedemptionStatusEnum.ACTIVE:
            used = True
        if used:
            raise RedemptionConflictError(redeemable.reward_id, [0])

        now = self._clock()
        if not await self._rewards.mark_used(redeemable.kind, redeemable.reward_id, used_at=now):
            raise RedemptionConflictError(redeemable.reward_id, [0])

        entry = LedgerEntryView(
            item_index=0,
            product_name=reward.title,
            quantity=1,
            redeemed_quantity=1,
            status=RedemptionStatusEnum.COMPLETED,
            redeemed_at=now,
        )
        await self._write_logs(
            attempt,
            staff,
            outlet_id,
            success=True,
            scan_result=ScanResultEnum.SUCCESS,
            metadata={"staff_name": staff.staff_name, "reward_title": reward.title},
        )
        return RedemptionOutcome(
            redeemable=redeemable,
            redeemed_items=attempt.items,
            state=OrderRedemptionState.COMPLETED,
            entries=[entry],
        )

    async def _write_logs(
        self,
        attempt: _Attempt,
        staff: StaffIdentity,
        outlet_id: UUID | None,
        *,
        success: bool,
        scan_result: ScanResultEnum,
        metadata: dict[str, Any],
        failure_reason: str | None = None,
    ) -> None:
        await self._audit.add_redemption_log(
            staff_passcode_id=staff.staff_id,
            redemption_type=attempt.redemption_type,
            redemption_id=attempt.redemption_id,
            user_id=attempt.user_id,
            outlet_id=outlet_id,
            items_redeemed=attempt.items,
            success=success,
            failure_reason=failure_reason,
            metadata_json=metadata,
        )
        await self._audit.add_scan_log(
            staff_id=staff.staff_id,
            staff_name=staff.staff_name,
            scan_type=attempt.scan_type,
            qr_code=attempt.qr_code,
            scan_result=scan_result,
            customer_id=attempt.user_id,
            order_id=attempt.order_id,
            order_number=attempt.order_number,
            outlet_id=outlet_id,
            outlet_name=attempt.outlet_name,
            items_redeemed=len(attempt.items) if success else 0,
            success=success,
            failure_reason=failure_reason,
            metadata_json=metadata,
            scanned_at=self._clock(),
        )

    async def _record_failure(
        self,
        attempt: _Attempt,
        staff: StaffIdentity,
        outlet_id: UUID | None,
        reason: str,
    ) -> None:
        await self._write_logs(
            attempt,
            staff,
            outlet_id,
            success=False,
            scan_result=ScanResultEnum.FAILURE,
            metadata={"staff_name": staff.staff_name, "order_number": attempt.order_number},
            failure_reason=reason,
        )
        await self._session.commit()


__all__ = [
    "OrderLedger",
    "REDEMPTION_METHOD_SCAN",
    "RedemptionOutcome",
    "RedemptionService",
    "build_ledger_entries",
    "entry_view",
]
