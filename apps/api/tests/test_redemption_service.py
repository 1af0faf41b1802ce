from uuid import UUID, uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from orderflow_api.domain.redemption.redeemables import (
    EmptySelectionError,
    OrderItems,
    OrderRedemptionState,
    RewardKind,
    SingleReward,
)
from orderflow_api.models.audit import (
    RedemptionTypeEnum,
    ScanResultEnum,
    ScanTypeEnum,
    StaffRedemptionLog,
    StaffScanLog,
)
from orderflow_api.models.order import FulfillmentStatusEnum, Order
from orderflow_api.models.redemption import OrderItemRedemption, RedemptionStatusEnum
from orderflow_api.models.reward import GiftRedemption, StampRedemption, StampRedemptionStatusEnum
from orderflow_api.observability.redemption import get_redemption_store
from orderflow_api.repositories.errors import BackendRejectionError
from orderflow_api.repositories.ledger import SqlAlchemyRedemptionLedgerRepository
from orderflow_api.repositories.staff import SqlAlchemyAuditLogRepository
from orderflow_api.services.redemption import (
    InvalidSelectionError,
    RedeemableNotFoundError,
    RedemptionConflictError,
    RedemptionNotAllowedError,
    RedemptionService,
)
from orderflow_api.services.staff import StaffIdentity


def line_item(
    product_name: str, *, product_id: str | None = "prod", quantity: int = 1, unit_price: float = 10.0
) -> dict:
    item = {"product_name": product_name, "quantity": quantity, "unit_price": unit_price}
    if product_id is not None:
        item["product_id"] = f"{product_id}-{product_name.lower()}"
    return item


def _identity(staff) -> StaffIdentity:
    return StaffIdentity(staff_id=staff.id, staff_name=staff.staff_name)


async def _three_item_order(make_order) -> Order:
    return await make_order(
        "ORD-0042",
        items=[line_item("Latte"), line_item("Croissant"), line_item("Muffin", quantity=2)],
    )


async def _ledger(session_factory, order_id: UUID) -> list[OrderItemRedemption]:
    async with session_factory() as session:
        result = await session.execute(
            select(OrderItemRedemption)
            .where(OrderItemRedemption.order_id == order_id)
            .order_by(OrderItemRedemption.item_index)
        )
        return list(result.scalars().all())


async def _audit_rows(session_factory) -> tuple[list[StaffRedemptionLog], list[StaffScanLog]]:
    async with session_factory() as session:
        logs = await session.execute(select(StaffRedemptionLog).order_by(StaffRedemptionLog.created_at))
        scans = await session.execute(select(StaffScanLog).order_by(StaffScanLog.scanned_at))
        return list(logs.scalars().all()), list(scans.scalars().all())


async def _confirm(session_factory, redeemable, staff, **kwargs):
    async with session_factory() as session:
        return await RedemptionService(session).confirm(redeemable, _identity(staff), **kwargs)


@pytest.mark.asyncio
async def test_partial_redemption_leaves_order_ready(session_factory, make_order, make_staff) -> None:
    staff = await make_staff()
    order = await _three_item_order(make_order)
    outlet_id = uuid4()

    outcome = await _confirm(
        session_factory, OrderItems(order_id=order.id, item_indices=(2, 0)), staff, outlet_id=outlet_id
    )

    assert outcome.state == OrderRedemptionState.PARTIAL
    assert outcome.order_completed is False
    assert [item["item_index"] for item in outcome.redeemed_items] == [0, 2]

    entries = await _ledger(session_factory, order.id)
    assert [entry.status for entry in entries] == [
        RedemptionStatusEnum.COMPLETED,
        RedemptionStatusEnum.PENDING,
        RedemptionStatusEnum.COMPLETED,
    ]
    muffin = entries[2]
    assert muffin.redeemed_quantity == muffin.quantity == 2
    assert muffin.redeemed_at_outlet_id == outlet_id
    assert muffin.staff_passcode_id == staff.id
    assert muffin.redemption_method == "scan"
    assert entries[1].redeemed_quantity == 0

    async with session_factory() as session:
        stored = await session.get(Order, order.id)
        assert stored.status == FulfillmentStatusEnum.READY
        assert stored.completed_at is None


@pytest.mark.asyncio
async def test_redeeming_last_item_completes_order(session_factory, make_order, make_staff) -> None:
    staff = await make_staff(staff_name="Hafiz")
    order = await _three_item_order(make_order)

    await _confirm(session_factory, OrderItems(order_id=order.id, item_indices=(0, 2)), staff)
    outcome = await _confirm(session_factory, OrderItems(order_id=order.id, item_indices=(1,)), staff)

    assert outcome.state == OrderRedemptionState.COMPLETED
    assert outcome.order_completed is True
    assert all(entry.is_completed for entry in outcome.entries)

    async with session_factory() as session:
        stored = await session.get(Order, order.id)
        assert stored.status == FulfillmentStatusEnum.COMPLETED
        assert stored.completed_at is not None
        assert stored.staff_name_last_action == "Hafiz"

    logs, scans = await _audit_rows(session_factory)
    assert len(logs) == 2 and len(scans) == 2
    assert all(log.success for log in logs)
    assert [scan.scan_result for scan in scans] == [ScanResultEnum.PARTIAL, ScanResultEnum.SUCCESS]
    assert scans[-1].scan_type == ScanTypeEnum.ORDER
    assert scans[-1].order_number == "ORD-0042"
    assert scans[-1].items_redeemed == 1
    assert get_redemption_store().snapshot().redemptions["by_outcome"] == {
        "success": 2,
        "items_redeemed": 3,
    }


@pytest.mark.asyncio
async def test_already_redeemed_item_is_a_conflict(session_factory, make_order, make_staff) -> None:
    staff = await make_staff()
    order = await _three_item_order(make_order)
    await _confirm(session_factory, OrderItems(order_id=order.id, item_indices=(1,)), staff)

    with pytest.raises(RedemptionConflictError) as excinfo:
        await _confirm(session_factory, OrderItems(order_id=order.id, item_indices=(0, 1)), staff)

    assert excinfo.value.item_indices == [1]
    entries = await _ledger(session_factory, order.id)
    assert entries[0].status == RedemptionStatusEnum.PENDING

    logs, scans = await _audit_rows(session_factory)
    assert len(logs) == 2 and len(scans) == 2
    assert logs[-1].success is False
    assert logs[-1].failure_reason.startswith("Already redeemed")
    assert scans[-1].scan_result == ScanResultEnum.FAILURE
    assert scans[-1].items_redeemed == 0


class RacingLedgerRepository(SqlAlchemyRedemptionLedgerRepository):
    """Loses the conditional update for one index, as if another device got there first."""

    def __init__(self, session, lost_index: int) -> None:
        super().__init__(session)
        self.lost_index = lost_index

    async def complete_pending(self, order_id, item_index, **kwargs) -> bool:
        if item_index == self.lost_index:
            return False
        return await super().complete_pending(order_id, item_index, **kwargs)


@pytest.mark.asyncio
async def test_lost_race_rolls_back_whole_batch(session_factory, make_order, make_staff) -> None:
    staff = await make_staff()
    order = await _three_item_order(make_order)

    async with session_factory() as session:
        service = RedemptionService(session, ledger=RacingLedgerRepository(session, lost_index=2))
        with pytest.raises(RedemptionConflictError):
            await service.confirm(OrderItems(order_id=order.id, item_indices=(0, 2)), _identity(staff))

    entries = await _ledger(session_factory, order.id)
    assert all(entry.status == RedemptionStatusEnum.PENDING for entry in entries)
    assert all(entry.redeemed_quantity == 0 for entry in entries)


@pytest.mark.asyncio
async def test_conditional_update_only_applies_once(session_factory, make_order) -> None:
    order = await _three_item_order(make_order)

    async with session_factory() as session:
        repository = SqlAlchemyRedemptionLedgerRepository(session)
        first = await repository.complete_pending(
            order.id, 0, redeemed_at=order.created_at, outlet_id=None, method="scan", staff_passcode_id=None
        )
        second = await repository.complete_pending(
            order.id, 0, redeemed_at=order.created_at, outlet_id=None, method="scan", staff_passcode_id=None
        )
        missing = await repository.complete_pending(
            order.id, 9, redeemed_at=order.created_at, outlet_id=None, method="scan", staff_passcode_id=None
        )
        await session.commit()

    assert (first, second, missing) == (True, False, False)


@pytest.mark.asyncio
async def test_unknown_item_index_is_rejected(session_factory, make_order, make_staff) -> None:
    staff = await make_staff()
    order = await _three_item_order(make_order)

    with pytest.raises(InvalidSelectionError) as excinfo:
        await _confirm(session_factory, OrderItems(order_id=order.id, item_indices=(0, 5)), staff)

    assert excinfo.value.item_indices == [5]
    entries = await _ledger(session_factory, order.id)
    assert entries[0].status == RedemptionStatusEnum.PENDING


@pytest.mark.asyncio
async def test_unpaid_order_cannot_be_redeemed(session_factory, make_order, make_staff) -> None:
    staff = await make_staff()
    order = await make_order("ORD-0099", paid=False)

    with pytest.raises(RedemptionNotAllowedError):
        await _confirm(session_factory, OrderItems(order_id=order.id, item_indices=(0,)), staff)

    logs, scans = await _audit_rows(session_factory)
    assert len(logs) == 1 and logs[0].success is False
    assert len(scans) == 1


@pytest.mark.asyncio
async def test_missing_order_still_leaves_an_audit_trail(session_factory, make_staff) -> None:
    staff = await make_staff()
    order_id = uuid4()

    with pytest.raises(RedeemableNotFoundError):
        await _confirm(session_factory, OrderItems(order_id=order_id, item_indices=(0,)), staff)

    logs, scans = await _audit_rows(session_factory)
    assert logs[0].redemption_id == order_id
    assert logs[0].redemption_type == RedemptionTypeEnum.ORDER
    assert scans[0].qr_code == ""


@pytest.mark.asyncio
async def test_empty_selection_writes_nothing(session_factory, make_order, make_staff) -> None:
    staff = await make_staff()
    order = await _three_item_order(make_order)

    with pytest.raises(EmptySelectionError):
        await _confirm(session_factory, OrderItems(order_id=order.id, item_indices=()), staff)

    logs, scans = await _audit_rows(session_factory)
    assert logs == [] and scans == []


@pytest.mark.asyncio
async def test_wallet_topups_never_block_completion(session_factory, make_order, make_staff) -> None:
    staff = await make_staff()
    order = await make_order(
        "ORD-0107",
        items=[line_item("Latte"), line_item("Wallet Reload", product_id=None, unit_price=50.0)],
    )

    entries = await _ledger(session_factory, order.id)
    assert [entry.item_index for entry in entries] == [0]

    outcome = await _confirm(session_factory, OrderItems(order_id=order.id, item_indices=(0,)), staff)
    assert outcome.order_completed is True


@pytest.mark.asyncio
async def test_ledger_lookup_creates_missing_entries(session_factory, make_order) -> None:
    order = await _three_item_order(make_order)
    async with session_factory() as session:
        for entry in await SqlAlchemyRedemptionLedgerRepository(session).list_for_order(order.id):
            await session.delete(entry)
        await session.commit()

    async with session_factory() as session:
        ledger = await RedemptionService(session).get_order_ledger(order.id)

    assert [entry.item_index for entry in ledger.entries] == [0, 1, 2]
    assert ledger.state == OrderRedemptionState.ACTIVE
    assert ledger.redeemed_count == 0
    assert len(await _ledger(session_factory, order.id)) == 3


@pytest.mark.asyncio
async def test_gift_reward_redeems_once(session_factory, make_reward, make_staff) -> None:
    staff = await make_staff()
    user_id = uuid4()
    gift = await make_reward(RewardKind.GIFT, user_id=user_id, title="Birthday Cupcake")
    redeemable = SingleReward(kind=RewardKind.GIFT, reward_id=gift.id)

    outcome = await _confirm(session_factory, redeemable, staff)

    assert outcome.state == OrderRedemptionState.COMPLETED
    assert outcome.redeemed_items == [{"item_index": 0, "product_name": "Birthday Cupcake", "quantity": 1}]
    async with session_factory() as session:
        stored = await session.get(GiftRedemption, gift.id)
        assert stored.used_at is not None

    with pytest.raises(RedemptionConflictError):
        await _confirm(session_factory, redeemable, staff)

    logs, scans = await _audit_rows(session_factory)
    assert [log.success for log in logs] == [True, False]
    assert all(log.redemption_type == RedemptionTypeEnum.GIFT for log in logs)
    assert scans[0].scan_type == ScanTypeEnum.REWARD
    assert scans[0].customer_id == user_id


@pytest.mark.asyncio
async def test_stamp_reward_is_marked_used(session_factory, make_reward, make_staff) -> None:
    staff = await make_staff()
    stamp = await make_reward(RewardKind.STAMP, title="Free Ice Cream")

    await _confirm(session_factory, SingleReward(kind=RewardKind.STAMP, reward_id=stamp.id), staff)

    async with session_factory() as session:
        stored = await session.get(StampRedemption, stamp.id)
        assert stored.status == StampRedemptionStatusEnum.USED
        assert stored.used_at is not None


@pytest.mark.asyncio
async def test_missing_reward_is_not_found(session_factory, make_staff) -> None:
    staff = await make_staff()

    with pytest.raises(RedeemableNotFoundError):
        await _confirm(session_factory, SingleReward(kind=RewardKind.STAMP, reward_id=uuid4()), staff)


def _offline() -> OperationalError:
    return OperationalError("UPDATE order_item_redemptions", {}, Exception("server closed the connection"))


class OfflineLedgerRepository(SqlAlchemyRedemptionLedgerRepository):
    async def complete_pending(self, order_id, item_index, **kwargs) -> bool:
        raise _offline()


class OfflineAuditRepository(SqlAlchemyAuditLogRepository):
    async def add_redemption_log(self, **values):
        raise _offline()


@pytest.mark.asyncio
async def test_backend_rejection_survives_failed_audit_write(session_factory, make_order, make_staff) -> None:
    staff = await make_staff()
    order = await _three_item_order(make_order)

    async with session_factory() as session:
        service = RedemptionService(
            session,
            ledger=OfflineLedgerRepository(session),
            audit=OfflineAuditRepository(session),
        )
        with pytest.raises(BackendRejectionError) as excinfo:
            await service.confirm(OrderItems(order_id=order.id, item_indices=(0,)), _identity(staff))

    assert excinfo.value.message == "Could not confirm the redemption"
    assert "server closed the connection" in excinfo.value.detail
    assert [entry.status for entry in await _ledger(session_factory, order.id)] == [
        RedemptionStatusEnum.PENDING
    ] * 3
    assert get_redemption_store().snapshot().redemptions["by_outcome"] == {"failure": 1}
