"""SQLAlchemy-backed gift and stamp reward repository."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.domain.redemption.redeemables import RewardKind
from orderflow_api.models.reward import GiftRedemption, StampRedemption, StampRedemptionStatusEnum

_MODELS = {
    RewardKind.GIFT: GiftRedemption,
    RewardKind.STAMP: StampRedemption,
}


class SqlAlchemyRewardRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, kind: RewardKind, reward_id: UUID) -> GiftRedemption | StampRedemption | None:
        return await self._session.get(_MODELS[kind], reward_id)

    async def mark_used(self, kind: RewardKind, reward_id: UUID, *, used_at: datetime) -> bool:
        model = _MODELS[kind]
        stmt = update(model).where(model.id == reward_id, model.used_at.is_(None))
        values: dict[str, object] = {"used_at": used_at}
        if kind == RewardKind.STAMP:
            stmt = stmt.where(StampRedemption.status == StampRedemptionStatusEnum.ACTIVE)
            values["status"] = StampRedemptionStatusEnum.USED
        result = await self._session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        await self._session.scalar(
            select(model).where(model.id == reward_id).execution_options(populate_existing=True)
        )
        return True

    async def list_unused_for_user(self, user_id: UUID) -> dict[RewardKind, list[GiftRedemption | StampRedemption]]:
        gifts = await self._session.execute(
            select(GiftRedemption)
            .where(GiftRedemption.user_id == user_id, GiftRedemption.used_at.is_(None))
            .order_by(GiftRedemption.created_at.desc())
        )
        stamps = await self._session.execute(
            select(StampRedemption)
            .where(
                StampRedemption.user_id == user_id,
                StampRedemption.status == StampRedemptionStatusEnum.ACTIVE,
            )
            .order_by(StampRedemption.created_at.desc())
        )
        return {
            RewardKind.GIFT: list(gifts.scalars().all()),
            RewardKind.STAMP: list(stamps.scalars().all()),
        }


__all__ = ["SqlAlchemyRewardRepository"]
