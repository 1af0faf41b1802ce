from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from orderflow_api.domain.redemption.redeemables import RewardKind
from orderflow_api.models.redemption import OrderItemRedemption, RedemptionStatusEnum
from orderflow_api.models.reward import GiftRedemption


@pytest.mark.asyncio
async def test_order_ledger_lists_every_item(app_with_db, make_order) -> None:
    app, _ = app_with_db
    order = await make_order("ORD-0800")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get(f"/api/v1/orders/{order.id}/redemptions")
        missing = await client.get(f"/api/v1/orders/{uuid4()}/redemptions")

    assert response.status_code == 200
    body = response.json()
    assert body["order_number"] == "ORD-0800"
    assert body["payment_status"] == "paid"
    assert body["state"] == "active"
    assert (body["redeemed_count"], body["total_count"]) == (0, 2)
    assert [entry["product_name"] for entry in body["entries"]] == ["Latte", "Croissant"]
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_redeem_items_then_conflict_on_repeat(app_with_db, make_order, make_staff) -> None:
    app, session_factory = app_with_db
    await make_staff("1234", staff_name="Aina")
    order = await make_order("ORD-0801")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await client.post(
            f"/api/v1/orders/{order.id}/redemptions",
            json={"passcode": "1234", "item_indices": [0]},
        )
        repeat = await client.post(
            f"/api/v1/orders/{order.id}/redemptions",
            json={"passcode": "1234", "item_indices": [0, 1]},
        )

    assert first.status_code == 200
    body = first.json()
    assert body["state"] == "partial"
    assert body["order_completed"] is False
    assert body["staff"]["staff_name"] == "Aina"
    assert [item["item_index"] for item in body["redeemed_items"]] == [0]

    assert repeat.status_code == 409
    detail = repeat.json()["detail"]
    assert detail["message"].startswith("Already redeemed")
    assert detail["hint"] == "Reload the checklist"

    async with session_factory() as session:
        result = await session.execute(
            select(OrderItemRedemption.item_index, OrderItemRedemption.status)
            .where(OrderItemRedemption.order_id == order.id)
            .order_by(OrderItemRedemption.item_index)
        )
        assert result.all() == [(0, RedemptionStatusEnum.COMPLETED), (1, RedemptionStatusEnum.PENDING)]


@pytest.mark.asyncio
async def test_redeem_rejects_bad_passcode_and_empty_selection(app_with_db, make_order, make_staff) -> None:
    app, _ = app_with_db
    await make_staff("1234")
    order = await make_order("ORD-0802")
    unpaid = await make_order("ORD-0803", paid=False)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        wrong = await client.post(
            f"/api/v1/orders/{order.id}/redemptions",
            json={"passcode": "0000", "item_indices": [0]},
        )
        empty = await client.post(
            f"/api/v1/orders/{order.id}/redemptions",
            json={"passcode": "1234", "item_indices": []},
        )
        out_of_range = await client.post(
            f"/api/v1/orders/{order.id}/redemptions",
            json={"passcode": "1234", "item_indices": [7]},
        )
        not_paid = await client.post(
            f"/api/v1/orders/{unpaid.id}/redemptions",
            json={"passcode": "1234", "item_indices": [0]},
        )

    assert wrong.status_code == 401
    assert empty.status_code == 422
    assert empty.json()["detail"]["message"] == "Please select at least one item to redeem"
    assert out_of_range.status_code == 400
    assert not_paid.status_code == 409


@pytest.mark.asyncio
async def test_redeem_gift_reward_once(app_with_db, make_reward, make_staff) -> None:
    app, session_factory = app_with_db
    await make_staff("1234")
    gift = await make_reward(RewardKind.GIFT, user_id=uuid4())

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await client.post(f"/api/v1/rewards/gift/{gift.id}/redeem", json={"passcode": "1234"})
        second = await client.post(f"/api/v1/rewards/gift/{gift.id}/redeem", json={"passcode": "1234"})
        missing = await client.post(f"/api/v1/rewards/stamp/{uuid4()}/redeem", json={"passcode": "1234"})

    assert first.status_code == 200
    assert first.json()["state"] == "completed"
    assert first.json()["redeemable_id"] == str(gift.id)
    assert second.status_code == 409
    assert missing.status_code == 404

    async with session_factory() as session:
        stored = await session.get(GiftRedemption, gift.id)
        assert stored.used_at is not None
