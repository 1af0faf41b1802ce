import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from orderflow_api.domain.redemption.redeemables import OrderItems, OrderRedemptionState, RewardKind
from orderflow_api.models.notification import Notification
from orderflow_api.models.order import FulfillmentStatusEnum, KitchenStatusEnum, PaymentStatusEnum
from orderflow_api.services.boards import (
    CustomerQRBoard,
    KitchenBoardSession,
    OrdersConsoleBoard,
    RecordingAlertSink,
    load_console,
    load_wallet,
)
from orderflow_api.services.kitchen import (
    AlreadyNotifiedError,
    KitchenBoardError,
    KitchenBoardService,
    OrderNotReadyError,
    StatusFilter,
)
from orderflow_api.services.orders import OrderService, OrderStateMachine
from orderflow_api.services.realtime import ChangeFeed
from orderflow_api.services.redemption import RedemptionService
from orderflow_api.services.staff import StaffIdentity


async def _eventually(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


async def _settle(board) -> None:
    """Wait until change-driven reloads stop arriving."""

    previous = -1
    while previous != board.reload_count:
        previous = board.reload_count
        await asyncio.sleep(0.05)


@pytest.mark.asyncio
async def test_kitchen_board_alerts_when_an_order_is_paid(session_factory, make_order) -> None:
    outlet_id = uuid4()
    alerts = RecordingAlertSink()
    board = KitchenBoardSession(session_factory, outlet_id=outlet_id, alerts=alerts)
    await board.start()
    assert await board.channel.wait_subscribed(timeout=1.0)

    order = await make_order("ORD-20261019-0042", outlet_id=outlet_id, paid=False)
    await _settle(board)
    assert alerts.played == []
    assert board.tickets == {}

    async with session_factory() as session:
        await OrderService(session).confirm_payment(order.id)
    await _eventually(lambda: alerts.played == ["new_order"])
    await _settle(board)

    assert board.new_order_banner == "New order #0042"
    assert list(board.tickets) == [order.id]

    await make_order("ORD-20261019-0043", outlet_id=uuid4())
    await _settle(board)
    await board.stop()

    assert alerts.played == ["new_order"]
    assert list(board.tickets) == [order.id]


@pytest.mark.asyncio
async def test_kitchen_board_notifies_once_per_ready_episode(session_factory, make_order) -> None:
    outlet_id = uuid4()
    ready = await make_order("ORD-20261019-5678", outlet_id=outlet_id, user_id=uuid4())
    preparing = await make_order("ORD-20261019-5679", outlet_id=outlet_id, user_id=uuid4())
    alerts = RecordingAlertSink()
    board = KitchenBoardSession(session_factory, outlet_id=outlet_id, alerts=alerts)
    await board.resync()

    await board.mark_all_prepared(ready.id)
    assert board.can_notify(ready.id) is True
    assert board.can_notify(preparing.id) is False

    notification = await board.notify(ready.id)
    assert "#5678" in notification.message
    assert alerts.played == ["notify_success"]
    assert board.can_notify(ready.id) is False

    with pytest.raises(AlreadyNotifiedError):
        await board.notify(ready.id)
    with pytest.raises(OrderNotReadyError):
        await board.notify(preparing.id)
    with pytest.raises(KitchenBoardError):
        await board.notify(uuid4())

    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(Notification)) == 1


@pytest.mark.asyncio
async def test_kitchen_board_filters_and_item_toggles(session_factory, make_order) -> None:
    outlet_id = uuid4()
    order = await make_order("ORD-0700", outlet_id=outlet_id)
    board = KitchenBoardSession(session_factory, outlet_id=outlet_id)
    await board.resync()

    await board.toggle_item(order.id, 0)
    assert [item.is_prepared for item in board.tickets[order.id].items] == [True, False]

    await board.toggle_item(order.id, 1)
    assert board.tickets[order.id].prepared_count == 2
    assert board.tickets[order.id].kitchen_status == KitchenStatusEnum.PREPARING

    await board.apply_filters(status_filter=StatusFilter.READY)
    assert board.tickets == {}
    assert board.view.counts["preparing"] == 1


@pytest.mark.asyncio
async def test_customer_board_shows_ready_toast(session_factory, make_order) -> None:
    user_id = uuid4()
    order = await make_order("ORD-20261019-5678", user_id=user_id, outlet_name="WonderStars Cafe")
    async with session_factory() as session:
        await KitchenBoardService(session).mark_all_prepared(order.id)

    board = CustomerQRBoard(session_factory, user_id=user_id)
    await board.start()
    assert await board.channel.wait_subscribed(timeout=1.0)
    assert [code.id for code in board.codes] == [order.id]

    async with session_factory() as session:
        await KitchenBoardService(session).notify_customer(order.id)
    await _eventually(lambda: board.active_toast is not None)
    await _settle(board)
    await board.stop()

    toast = board.active_toast
    assert toast.collection_number == "5678"
    assert toast.outlet_name == "WonderStars Cafe"
    assert toast.order_id == order.id

    board.dismiss_toast()
    assert board.active_toast is None


@pytest.mark.asyncio
async def test_customer_board_ignores_other_customers(session_factory, make_order) -> None:
    user_id = uuid4()
    other = await make_order("ORD-20261019-1111", user_id=uuid4())
    async with session_factory() as session:
        await KitchenBoardService(session).mark_all_prepared(other.id)

    board = CustomerQRBoard(session_factory, user_id=user_id)
    await board.start()
    assert await board.channel.wait_subscribed(timeout=1.0)

    async with session_factory() as session:
        await KitchenBoardService(session).notify_customer(other.id)
    await _settle(board)
    await board.stop()

    assert board.toasts == []
    assert board.codes == []


@pytest.mark.asyncio
async def test_wallet_lists_paid_orders_and_unused_rewards(session_factory, make_order, make_reward) -> None:
    user_id = uuid4()
    paid = await make_order("ORD-0098", user_id=user_id)
    await make_order("ORD-0099", user_id=user_id, paid=False)
    cancelled = await make_order("ORD-0100", user_id=user_id)
    gift = await make_reward(RewardKind.GIFT, user_id=user_id)
    stamp = await make_reward(RewardKind.STAMP, user_id=user_id, title="Free Coffee")
    await make_reward(RewardKind.GIFT, user_id=uuid4(), title="Someone Else")

    async with session_factory() as session:
        await OrderStateMachine(session).transition(
            cancelled.id, FulfillmentStatusEnum.CANCELLED, reason="Duplicate"
        )

    async with session_factory() as session:
        codes = await load_wallet(session, user_id)

    assert {(code.kind, code.id) for code in codes} == {
        ("order", paid.id),
        ("gift", gift.id),
        ("stamp", stamp.id),
    }
    order_code = next(code for code in codes if code.kind == "order")
    assert order_code.qr_code == paid.qr_code
    assert order_code.collection_number == "0098"
    assert order_code.state == OrderRedemptionState.ACTIVE
    assert [item["product_name"] for item in order_code.as_dict()["items"]] == ["Latte", "Croissant"]


@pytest.mark.asyncio
async def test_unpaid_order_shows_on_console_but_not_in_wallet(
    session_factory, make_order, make_staff
) -> None:
    user_id = uuid4()
    staff = await make_staff()
    unpaid = await make_order("ORD-0099", user_id=user_id, paid=False, total_amount=Decimal("15.00"))
    paid = await make_order("ORD-0101", user_id=user_id)

    async with session_factory() as session:
        await RedemptionService(session).confirm(
            OrderItems(order_id=paid.id, item_indices=(0,)),
            StaffIdentity(staff_id=staff.id, staff_name=staff.staff_name),
        )

    async with session_factory() as session:
        wallet = await load_wallet(session, user_id)
        console = await load_console(session)

    assert [code.id for code in wallet] == [paid.id]

    rows = {row.order_number: row for row in console.rows}
    assert rows["ORD-0099"].payment_status == PaymentStatusEnum.PENDING
    assert rows["ORD-0099"].has_qr_code is False
    assert rows["ORD-0099"].redemption_ratio == "0/0"
    assert rows["ORD-0101"].redemption_ratio == "1/2"
    assert rows["ORD-0101"].pending_items == 1
    assert rows["ORD-0101"].redemption_state == OrderRedemptionState.PARTIAL
    assert rows["ORD-0101"].as_dict()["redemption_state"] == "partial"

    assert console.stats.total == 2
    assert console.stats.ready == 1
    assert console.stats.completed == 0
    assert console.stats.revenue == Decimal("20.00")
    assert unpaid.id in {row.order_id for row in console.rows}


@pytest.mark.asyncio
async def test_board_resyncs_when_visible_again(session_factory) -> None:
    board = OrdersConsoleBoard(session_factory)
    await board.resync()
    assert board.reload_count == 1

    await board.set_visibility(False)
    await board.set_visibility(True)
    await board.set_visibility(True)
    assert board.reload_count == 2

    await board.refresh()
    assert board.reload_count == 3


@pytest.mark.asyncio
async def test_board_falls_back_to_manual_refresh(session_factory) -> None:
    feed = ChangeFeed(queue_size=5)
    feed.set_available(False)

    async def no_wait(delay: float) -> None:
        return None

    board = OrdersConsoleBoard(session_factory, feed=feed, sleep=no_wait, max_retries=2)
    await board.start()
    await board.channel.wait_closed()

    assert board.connection_error is True
    assert board.channel.delays == [1.0, 2.0]
    assert board.reload_count == 2
