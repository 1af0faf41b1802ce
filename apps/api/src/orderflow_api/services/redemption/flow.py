"""Two-step staff redemption session: passcode first, then checklist and confirm."""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from loguru import logger

from orderflow_api.domain.redemption.redeemables import (
    OrderItems,
    RedemptionSelection,
    SingleReward,
)
from orderflow_api.models.audit import RedemptionTypeEnum
from orderflow_api.services.staff.passcode_gate import (
    PasscodeBuffer,
    PasscodeVerification,
    StaffIdentity,
    StaffIdentityGate,
    VerificationContext,
)

from .exceptions import (
    RedemptionConflictError,
    RedemptionError,
    RedemptionInFlightError,
    StaffNotVerifiedError,
)
from .service import OrderLedger, RedemptionOutcome, RedemptionService


class FlowStep(str, Enum):
    PASSCODE = "passcode"
    SELECT = "select"
    DONE = "done"


class StaffRedemptionFlow:
    """One staff member redeeming one order or reward.

    The identity is never reused across flows; every flow starts at the passcode step. While a
    confirmation is in flight a second ``confirm()`` is rejected without touching the store.
    """

    def __init__(
        self,
        gate: StaffIdentityGate,
        service: RedemptionService,
        *,
        target: UUID | SingleReward,
        outlet_id: UUID | None = None,
        user_id: UUID | None = None,
    ) -> None:
        self._gate = gate
        self._service = service
        self.target = target
        self.outlet_id = outlet_id
        self.step = FlowStep.PASSCODE
        self.identity: StaffIdentity | None = None
        self.ledger: OrderLedger | None = None
        self.selection: RedemptionSelection | None = None
        self.outcome: RedemptionOutcome | None = None
        self.error: str | None = None
        self._in_flight = False

        if isinstance(target, SingleReward):
            context = VerificationContext(
                outlet_id=outlet_id,
                redemption_type=RedemptionTypeEnum(target.kind.value),
                redemption_id=target.reward_id,
                user_id=user_id,
            )
        else:
            context = VerificationContext(outlet_id=outlet_id, redemption_id=target, user_id=user_id)
        self._context = context
        self.passcode = PasscodeBuffer(verifier=self._verify)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def _verify(self, passcode: str) -> PasscodeVerification | None:
        return await self._gate.verify(passcode, self._context)

    async def press(self, key: str) -> PasscodeVerification | None:
        if self.step != FlowStep.PASSCODE:
            return None
        result = await self.passcode.press(key)
        if result is None:
            return None
        if not result.success:
            self.error = result.error
            return result
        self.identity = result.identity
        self.error = None
        await self._load_checklist()
        self.step = FlowStep.SELECT
        return result

    async def enter_passcode(self, passcode: str) -> PasscodeVerification | None:
        result = None
        for key in passcode:
            result = await self.press(key)
        return result

    async def _load_checklist(self) -> None:
        if isinstance(self.target, SingleReward):
            return
        self.ledger = await self._service.get_order_ledger(self.target)
        self.selection = RedemptionSelection(entries=list(self.ledger.entries))

    def toggle(self, item_index: int) -> bool:
        if self.selection is None:
            return False
        return self.selection.toggle(item_index)

    def select_all(self) -> None:
        if self.selection is not None:
            self.selection.select_all_pending()

    async def confirm(self) -> RedemptionOutcome:
        if self.identity is None or self.step != FlowStep.SELECT:
            raise StaffNotVerifiedError()
        if self._in_flight:
            raise RedemptionInFlightError()

        if isinstance(self.target, SingleReward):
            redeemable: OrderItems | SingleReward = self.target
        elif self.selection is None:
            raise StaffNotVerifiedError()
        else:
            redeemable = self.selection.to_redeemable(self.target)

        self._in_flight = True
        try:
            outcome = await self._service.confirm(redeemable, self.identity, outlet_id=self.outlet_id)
        except RedemptionError as exc:
            self.error = str(exc)
            logger.info("Redemption flow confirm failed", error=str(exc))
            if isinstance(exc, RedemptionConflictError) and not isinstance(self.target, SingleReward):
                await self._load_checklist()
            raise
        finally:
            self._in_flight = False

        self.outcome = outcome
        self.error = None
        self.step = FlowStep.DONE
        return outcome

    def reset(self) -> None:
        """Back to the passcode step; the next confirmation needs a fresh verification."""

        self.step = FlowStep.PASSCODE
        self.identity = None
        self.ledger = None
        self.selection = None
        self.outcome = None
        self.error = None
        self.passcode.clear()


__all__ = ["FlowStep", "StaffRedemptionFlow"]
