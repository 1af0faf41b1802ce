from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from orderflow_api.core.settings import settings
from orderflow_api.models.order import Order


def _payload(order_number: str = "ORD-20261019-1200", **overrides):
    payload = {
        "order_number": order_number,
        "items": [
            {"product_id": "p-latte", "product_name": "Latte", "quantity": 1, "unit_price": 12.0},
            {
                "product_id": "p-cake",
                "product_name": "Cake",
                "quantity": 1,
                "unit_price": 9.0,
                "metadata": {
                    "selected_modifiers": [
                        {
                            "group_name": "Topping",
                            "selected_options": [{"option_name": "Cream", "addon_price": 1.5}],
                        }
                    ]
                },
            },
        ],
        "total_amount": 19.0,
        "subtotal": 21.0,
        "gross_sales": 21.0,
        "voucher_discount": 1.0,
        "outlet_name": "WonderStars Cafe",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_pay_and_read_order(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        created = await client.post("/api/v1/orders/", json=_payload())
        order_id = created.json()["id"]
        paid = await client.post(f"/api/v1/orders/{order_id}/payment/confirm", json={})
        again = await client.post(f"/api/v1/orders/{order_id}/payment/confirm")
        detail = await client.get(f"/api/v1/orders/{order_id}")
        financials = await client.get(f"/api/v1/orders/{order_id}/financials")

    assert created.status_code == 201
    assert created.json()["payment_status"] == "pending"
    assert created.json()["status"] == "waiting_payment"
    assert created.json()["qr_code"] is None

    assert paid.status_code == 200
    assert paid.json()["payment_status"] == "paid"
    assert paid.json()["qr_code"].startswith("ORD-20261019-1200-")
    assert again.status_code == 409

    assert detail.status_code == 200
    body = detail.json()
    assert body["redemption_state"] == "active"
    assert [entry["item_index"] for entry in body["redemptions"]] == [0, 1]
    assert body["items"][1]["modifiers"] == ["Topping: Cream (+RM 1.50)"]
    assert {option["status"] for option in body["allowed_transitions"]} == {
        "cancelled",
        "completed",
        "refunded",
    }

    assert financials.status_code == 200
    assert financials.json()["unaccounted_discount"] == 1.0
    assert financials.json()["has_unaccounted_discount"] is True


@pytest.mark.asyncio
async def test_create_order_rejects_duplicates_and_bad_payloads(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await client.post("/api/v1/orders/", json=_payload("ORD-1201"))
        duplicate = await client.post("/api/v1/orders/", json=_payload("ORD-1201"))
        no_items = await client.post("/api/v1/orders/", json=_payload("ORD-1202", items=[]))

    assert first.status_code == 201
    assert duplicate.status_code == 400
    assert "already exists" in duplicate.json()["detail"]["message"]
    assert no_items.status_code == 422


@pytest.mark.asyncio
async def test_failed_payment_then_status_transitions(app_with_db, make_order) -> None:
    app, _ = app_with_db
    unpaid = await make_order("ORD-1203", paid=False)
    paid = await make_order("ORD-1204")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        failed = await client.post(
            f"/api/v1/orders/{unpaid.id}/payment/fail", json={"error": "Card declined"}
        )
        complete = await client.post(f"/api/v1/orders/{paid.id}/status", json={"status": "completed"})
        no_reason = await client.post(f"/api/v1/orders/{paid.id}/status", json={"status": "refunded"})
        cancelled = await client.post(
            f"/api/v1/orders/{paid.id}/status",
            json={"status": "cancelled", "reason": "Customer left", "staff_name": "Aina"},
        )
        reopen = await client.post(f"/api/v1/orders/{paid.id}/status", json={"status": "ready"})
        manual_ready = await client.post(f"/api/v1/orders/{unpaid.id}/status", json={"status": "ready"})

    assert failed.status_code == 200
    assert failed.json()["payment_status"] == "failed"
    assert failed.json()["payment_error"] == "Card declined"
    assert complete.status_code == 409
    assert no_reason.status_code == 400
    assert cancelled.status_code == 200
    assert cancelled.json()["cancellation_reason"] == "Customer left"
    assert cancelled.json()["kitchen_status"] == "cancelled"
    assert cancelled.json()["allowed_transitions"] == []
    assert reopen.status_code == 409
    assert manual_ready.status_code == 409


@pytest.mark.asyncio
async def test_console_lists_unpaid_orders_with_stats(app_with_db, make_order) -> None:
    app, _ = app_with_db
    await make_order("ORD-0099", paid=False)
    await make_order("ORD-0100")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/orders/")
        limited = await client.get("/api/v1/orders/", params={"limit": 1})

    assert response.status_code == 200
    body = response.json()
    rows = {row["order_number"]: row for row in body["orders"]}
    assert rows["ORD-0099"]["payment_status"] == "pending"
    assert rows["ORD-0099"]["has_qr_code"] is False
    assert rows["ORD-0100"]["redemption_ratio"] == "0/2"
    assert body["stats"] == {"total": 2, "ready": 1, "completed": 0, "revenue": 20.0}
    assert len(limited.json()["orders"]) == 1


@pytest.mark.asyncio
async def test_delete_requires_confirm_flag(app_with_db, make_order) -> None:
    app, session_factory = app_with_db
    first = await make_order("ORD-1205")
    second = await make_order("ORD-1206")
    third = await make_order("ORD-1207")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        unconfirmed = await client.delete(f"/api/v1/orders/{first.id}")
        deleted = await client.delete(f"/api/v1/orders/{first.id}", params={"confirm": "true"})
        missing = await client.delete(f"/api/v1/orders/{uuid4()}", params={"confirm": "true"})
        bulk_unconfirmed = await client.post(
            "/api/v1/orders/bulk-delete", json={"order_ids": [str(second.id), str(third.id)]}
        )
        bulk = await client.post(
            "/api/v1/orders/bulk-delete",
            json={"order_ids": [str(second.id), str(third.id)], "confirm": True},
        )

    assert unconfirmed.status_code == 400
    assert deleted.json() == {"deleted": 1}
    assert missing.status_code == 404
    assert bulk_unconfirmed.status_code == 400
    assert bulk.json() == {"deleted": 2}

    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(Order)) == 0


@pytest.mark.asyncio
async def test_orders_require_api_key_when_configured(app_with_db) -> None:
    app, _ = app_with_db
    previous_key = settings.staff_api_key
    settings.staff_api_key = "cms-key"

    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            rejected = await client.get("/api/v1/orders/")
            accepted = await client.get("/api/v1/orders/", headers={"X-API-Key": "cms-key"})
    finally:
        settings.staff_api_key = previous_key

    assert rejected.status_code == 401
    assert accepted.status_code == 200
