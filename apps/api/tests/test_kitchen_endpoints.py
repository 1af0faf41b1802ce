from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient


@pytest.mark.asyncio
async def test_kitchen_board_lists_todays_paid_orders(app_with_db, make_order) -> None:
    app, _ = app_with_db
    outlet_id = uuid4()
    order = await make_order("ORD-20261019-0901", outlet_id=outlet_id)
    await make_order("ORD-20261019-0902", outlet_id=outlet_id, paid=False)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get(
            "/api/v1/kitchen/orders", params={"outlet_id": str(outlet_id), "status": "all"}
        )

    assert response.status_code == 200
    body = response.json()
    assert [ticket["order_id"] for ticket in body["tickets"]] == [str(order.id)]
    ticket = body["tickets"][0]
    assert ticket["collection_number"] == "0901"
    assert ticket["kitchen_status"] == "preparing"
    assert ticket["can_notify"] is False
    assert body["counts"]["preparing"] == 1


@pytest.mark.asyncio
async def test_prepare_toggle_and_notify_flow(app_with_db, make_order) -> None:
    app, _ = app_with_db
    order = await make_order("ORD-20261019-0903", user_id=uuid4())

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        toggled = await client.post(f"/api/v1/kitchen/orders/{order.id}/items/0/toggle")
        bad_index = await client.post(f"/api/v1/kitchen/orders/{order.id}/items/9/toggle")
        early_notify = await client.post(f"/api/v1/kitchen/orders/{order.id}/notify")
        prepared = await client.post(f"/api/v1/kitchen/orders/{order.id}/prepare-all")
        notified = await client.post(
            f"/api/v1/kitchen/orders/{order.id}/notify", json={"staff_name": "Chef Lim"}
        )
        repeat = await client.post(f"/api/v1/kitchen/orders/{order.id}/notify")

    assert toggled.status_code == 200
    assert toggled.json()["is_prepared"] is True
    assert bad_index.status_code == 404
    assert early_notify.status_code == 409

    assert prepared.status_code == 200
    assert prepared.json()["kitchen_status"] == "ready"
    assert prepared.json()["ready_episode"] == 1

    assert notified.status_code == 201
    assert "#0903" in notified.json()["message"]
    assert notified.json()["user_id"] == str(order.user_id)
    assert repeat.status_code == 409


@pytest.mark.asyncio
async def test_notify_without_customer_is_a_conflict(app_with_db, make_order) -> None:
    app, _ = app_with_db
    order = await make_order("ORD-20261019-0904", user_id=None)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post(f"/api/v1/kitchen/orders/{order.id}/prepare-all")
        response = await client.post(f"/api/v1/kitchen/orders/{order.id}/notify")

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_kitchen_status_changes_and_two_step_cancel(app_with_db, make_order) -> None:
    app, _ = app_with_db
    order = await make_order("ORD-20261019-0905")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        jump = await client.post(f"/api/v1/kitchen/orders/{order.id}/status", json={"status": "collected"})
        direct_cancel = await client.post(
            f"/api/v1/kitchen/orders/{order.id}/status", json={"status": "cancelled"}
        )
        requested = await client.post(f"/api/v1/kitchen/orders/{order.id}/cancel-request", json={})
        wrong_token = await client.post(
            f"/api/v1/kitchen/orders/{order.id}/cancel-confirm", json={"token": "nope"}
        )
        confirmed = await client.post(
            f"/api/v1/kitchen/orders/{order.id}/cancel-confirm",
            json={"token": requested.json()["token"], "staff_name": "Chef Lim"},
        )
        missing = await client.post(f"/api/v1/kitchen/orders/{uuid4()}/status", json={"status": "ready"})

    assert jump.status_code == 409
    assert direct_cancel.status_code == 400
    assert direct_cancel.json()["detail"]["hint"] == "Use cancel-request then cancel-confirm"
    assert requested.status_code == 202
    assert wrong_token.status_code == 400
    assert confirmed.status_code == 200
    assert confirmed.json()["kitchen_status"] == "cancelled"
    assert missing.status_code == 404
