from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import orderflow_api.models  # noqa: F401
from orderflow_api.app import create_app
from orderflow_api.db.base import Base
from orderflow_api.db.session import get_session
from orderflow_api.domain.redemption.redeemables import RewardKind
from orderflow_api.models.order import Order
from orderflow_api.models.reward import GiftRedemption, StampRedemption
from orderflow_api.models.staff import StaffPasscode
from orderflow_api.observability.redemption import get_redemption_store
from orderflow_api.services.kitchen import get_cancellation_registry
from orderflow_api.services.orders import OrderDraft, OrderService
from orderflow_api.services.realtime import get_change_feed
from orderflow_api.services.staff import hash_passcode

STAFF_PASSCODE = "1234"


def line_item(
    product_name: str,
    *,
    product_id: str | None = "prod",
    quantity: int = 1,
    unit_price: str = "10.00",
    **extra: Any,
) -> dict[str, Any]:
    item: dict[str, Any] = {
        "product_name": product_name,
        "quantity": quantity,
        "unit_price": float(unit_price),
    }
    if product_id is not None:
        item["product_id"] = f"{product_id}-{product_name.lower().replace(' ', '-')}"
    item.update(extra)
    return item


@pytest.fixture(autouse=True)
def reset_shared_state():
    get_change_feed().reset()
    get_redemption_store().reset()
    get_cancellation_registry().reset()
    yield
    get_change_feed().reset()
    get_redemption_store().reset()
    get_cancellation_registry().reset()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_staff(session_factory):
    async def _make(
        passcode: str = STAFF_PASSCODE,
        *,
        staff_name: str = "Aina",
        role: str = "staff",
        outlet_id: UUID | None = None,
        is_active: bool = True,
        is_superadmin: bool = False,
    ) -> StaffPasscode:
        async with session_factory() as session:
            staff = StaffPasscode(
                staff_name=staff_name,
                role=role,
                outlet_id=outlet_id,
                passcode_digest=hash_passcode(passcode),
                is_active=is_active,
                is_superadmin=is_superadmin,
            )
            session.add(staff)
            await session.commit()
            return staff

    return _make


@pytest.fixture
def make_order(session_factory):
    async def _make(
        order_number: str = "ORD-20261019-0042",
        *,
        items: list[dict[str, Any]] | None = None,
        paid: bool = True,
        user_id: UUID | None = None,
        outlet_id: UUID | None = None,
        outlet_name: str | None = "WonderStars Cafe",
        total_amount: Decimal | None = None,
        created_at: datetime | None = None,
        **amounts: Any,
    ) -> Order:
        items = items if items is not None else [line_item("Latte"), line_item("Croissant")]
        if total_amount is None:
            total_amount = sum(
                (Decimal(str(item["unit_price"])) * item["quantity"] for item in items), Decimal("0")
            )
        async with session_factory() as session:
            service = OrderService(session)
            order = await service.create_order(
                OrderDraft(
                    order_number=order_number,
                    items=items,
                    total_amount=total_amount,
                    subtotal=amounts.pop("subtotal", total_amount),
                    user_id=user_id,
                    outlet_id=outlet_id,
                    outlet_name=outlet_name,
                    **amounts,
                )
            )
            if created_at is not None:
                order.created_at = created_at
                await session.commit()
            if paid:
                order = await service.confirm_payment(order.id)
            return order

    return _make


@pytest.fixture
def make_reward(session_factory):
    async def _make(
        kind: RewardKind = RewardKind.GIFT,
        *,
        user_id: UUID | None = None,
        title: str = "Free Ice Cream",
        qr_code: str | None = None,
    ) -> GiftRedemption | StampRedemption:
        model = GiftRedemption if kind == RewardKind.GIFT else StampRedemption
        async with session_factory() as session:
            reward = model(
                user_id=user_id,
                title=title,
                qr_code=qr_code or f"{kind.value.upper()}-{title.upper().replace(' ', '-')}",
            )
            session.add(reward)
            await session.commit()
            return reward

    return _make
