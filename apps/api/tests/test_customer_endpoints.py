from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from orderflow_api.domain.redemption.redeemables import RewardKind
from orderflow_api.models.order import Order


@pytest.mark.asyncio
async def test_customer_reads_own_qr_codes(app_with_db, make_order, make_reward) -> None:
    app, _ = app_with_db
    user_id = uuid4()
    order = await make_order("ORD-20261019-4321", user_id=user_id)
    await make_order("ORD-20261019-4322", user_id=user_id, paid=False)
    stamp = await make_reward(RewardKind.STAMP, user_id=user_id, title="Free Coffee")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get(
            f"/api/v1/customers/{user_id}/qr-codes",
            headers={"X-Session-User": str(user_id)},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == str(user_id)
    codes = {code["id"]: code for code in body["codes"]}
    assert set(codes) == {str(order.id), str(stamp.id)}
    assert codes[str(order.id)]["collection_number"] == "4321"
    assert codes[str(order.id)]["qr_code"] == order.qr_code
    assert codes[str(stamp.id)]["kind"] == "stamp"
    assert codes[str(stamp.id)]["title"] == "Free Coffee"


@pytest.mark.asyncio
async def test_customer_session_is_enforced(app_with_db) -> None:
    app, _ = app_with_db
    user_id = uuid4()
    path = f"/api/v1/customers/{user_id}/qr-codes"

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        anonymous = await client.get(path)
        malformed = await client.get(path, headers={"X-Session-User": "not-a-uuid"})
        someone_else = await client.get(path, headers={"X-Session-User": str(uuid4())})

    assert anonymous.status_code == 401
    assert malformed.status_code == 400
    assert someone_else.status_code == 403


@pytest.mark.asyncio
async def test_blank_qr_codes_are_not_listed(app_with_db, make_order) -> None:
    app, session_factory = app_with_db
    user_id = uuid4()
    order = await make_order("ORD-20261019-4400", user_id=user_id)
    blank = await make_order("ORD-20261019-4401", user_id=user_id)
    async with session_factory() as session:
        stored = await session.get(Order, blank.id)
        stored.qr_code = ""
        await session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get(
            f"/api/v1/customers/{user_id}/qr-codes",
            headers={"X-Session-User": str(user_id)},
        )

    assert response.status_code == 200
    assert [code["id"] for code in response.json()["codes"]] == [str(order.id)]
