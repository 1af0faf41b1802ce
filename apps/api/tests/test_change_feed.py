import pytest

from orderflow_api.models.order import Order
from orderflow_api.services.realtime import (
    ChangeBinding,
    ChangeEvent,
    ChangeEventType,
    ChangeFeed,
    ChangeFeedUnavailableError,
    ChannelStatus,
    get_change_feed,
)


def _event(table: str = "orders", event_type: ChangeEventType = ChangeEventType.INSERT, **row) -> ChangeEvent:
    if event_type == ChangeEventType.DELETE:
        return ChangeEvent(table=table, event_type=event_type, old=row)
    return ChangeEvent(table=table, event_type=event_type, new=row)


def test_binding_filters_compare_as_strings() -> None:
    binding = ChangeBinding(table="orders", filters={"user_id": "42", "outlet_id": None})

    assert binding.matches(_event(user_id=42))
    assert not binding.matches(_event(user_id=7))
    assert not binding.matches(_event(table="notifications", user_id=42))


def test_binding_event_filter_and_deleted_rows() -> None:
    inserts = ChangeBinding(table="notifications", events=frozenset({"INSERT"}))
    deletes = ChangeBinding(table="orders", filters={"id": "abc"})

    assert inserts.matches(_event("notifications"))
    assert not inserts.matches(_event("notifications", ChangeEventType.UPDATE))
    assert deletes.matches(_event("orders", ChangeEventType.DELETE, id="abc"))


@pytest.mark.asyncio
async def test_publish_numbers_events_in_order() -> None:
    feed = ChangeFeed(queue_size=10)
    subscription = feed.subscribe([ChangeBinding(table="orders")], name="test")

    delivered = feed.publish(
        [_event(order_number="A"), _event("notifications"), _event(order_number="B")]
    )

    assert delivered == 2
    first = await subscription.next_event(timeout=0.1)
    second = await subscription.next_event(timeout=0.1)
    assert [first.new["order_number"], second.new["order_number"]] == ["A", "B"]
    assert (first.sequence, second.sequence) == (1, 3)
    assert first.committed_at is not None
    assert first.as_dict()["eventType"] == "INSERT"
    assert await subscription.next_event(timeout=0.01) is None


@pytest.mark.asyncio
async def test_slow_subscriber_is_closed_as_timed_out() -> None:
    feed = ChangeFeed(queue_size=2)
    subscription = feed.subscribe([ChangeBinding(table="orders")])

    feed.publish([_event(), _event(), _event()])

    assert subscription.close_status == ChannelStatus.TIMED_OUT
    with pytest.raises(StopAsyncIteration):
        await subscription.next_event(timeout=0.1)
    assert feed.publish([_event()]) == 0
    assert feed.subscriptions == ()


@pytest.mark.asyncio
async def test_unavailable_feed_errors_subscriptions() -> None:
    feed = ChangeFeed(queue_size=10)
    subscription = feed.subscribe([ChangeBinding(table="orders")])

    feed.set_available(False)

    assert subscription.close_status == ChannelStatus.CHANNEL_ERROR
    with pytest.raises(ChangeFeedUnavailableError):
        feed.subscribe([ChangeBinding(table="orders")])

    feed.set_available(True)
    assert feed.subscribe([ChangeBinding(table="orders")]).closed is False


@pytest.mark.asyncio
async def test_unsubscribe_ends_iteration() -> None:
    feed = ChangeFeed(queue_size=10)
    subscription = feed.subscribe([ChangeBinding(table="orders")])
    feed.publish([_event(order_number="A")])
    feed.unsubscribe(subscription)

    received = [change async for change in subscription]

    assert received == []
    assert subscription.close_status == ChannelStatus.CLOSED


def test_subscription_needs_bindings() -> None:
    with pytest.raises(ValueError):
        ChangeFeed(queue_size=1).subscribe([])


@pytest.mark.asyncio
async def test_committed_writes_reach_subscribers(session_factory, make_order) -> None:
    subscription = get_change_feed().subscribe([ChangeBinding(table="orders")], name="orders")

    order = await make_order("ORD-0600")

    inserted = await subscription.next_event(timeout=0.5)
    updated = await subscription.next_event(timeout=0.5)
    assert inserted.event_type == ChangeEventType.INSERT
    assert inserted.new["order_number"] == "ORD-0600"
    assert inserted.new["id"] == str(order.id)
    assert updated.event_type == ChangeEventType.UPDATE
    assert updated.new["payment_status"] == "paid"
    assert updated.old["payment_status"] == "pending"
    assert updated.sequence > inserted.sequence


@pytest.mark.asyncio
async def test_rolled_back_writes_are_never_published(session_factory) -> None:
    subscription = get_change_feed().subscribe([ChangeBinding(table="orders")], name="orders")

    async with session_factory() as session:
        session.add(Order(order_number="ORD-0601", items=[]))
        await session.flush()
        await session.rollback()

    assert await subscription.next_event(timeout=0.05) is None
