import pytest
from httpx import ASGITransport, AsyncClient

from orderflow_api.observability.redemption import RedemptionObservabilityStore


def test_store_counts_by_type_and_outcome() -> None:
    store = RedemptionObservabilityStore()
    store.record_redemption("order", "success", items=2)
    store.record_redemption("gift", "success", items=1)
    store.record_redemption("order", "failure")
    store.record_passcode_attempt("success")
    store.record_kitchen_action("notified")
    store.record_realtime_event("retry")

    snapshot = store.snapshot()

    assert snapshot.redemptions == {
        "by_type": {"order": 2, "gift": 1},
        "by_outcome": {"success": 2, "failure": 1, "items_redeemed": 3},
    }
    assert snapshot.passcode == {"success": 1}
    assert snapshot.kitchen == {"notified": 1}
    assert snapshot.realtime == {"retry": 1}

    store.reset()
    assert store.snapshot().as_dict() == {
        "passcode": {},
        "redemptions": {"by_type": {}, "by_outcome": {}},
        "kitchen": {},
        "realtime": {},
    }


@pytest.mark.asyncio
async def test_redemption_snapshot_endpoint(app_with_db, make_staff) -> None:
    app, _ = app_with_db
    await make_staff("1234")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post("/api/v1/staff/passcode/verify", json={"passcode": "1234"})
        await client.post("/api/v1/staff/passcode/verify", json={"passcode": "4321"})
        response = await client.get("/api/v1/observability/redemption")

    assert response.status_code == 200
    body = response.json()
    assert body["passcode"] == {"success": 1, "failure": 1}
    assert body["change_feed"] == {"available": True, "subscriptions": 0}
