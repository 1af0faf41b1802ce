"""Staff identity gate: a short numeric passcode resolves to a staff identity."""

from __future__ import annotations

import hashlib
import hmac
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.core.settings import settings
from orderflow_api.models.audit import RedemptionTypeEnum
from orderflow_api.observability.redemption import get_redemption_store
from orderflow_api.repositories.interfaces import AuditLogRepository, StaffRepository
from orderflow_api.repositories.staff import SqlAlchemyAuditLogRepository, SqlAlchemyStaffRepository

from .lockout import PasscodeLockout

INVALID_PASSCODE_MESSAGE = "Invalid passcode. Please try again."
INVALID_PASSCODE_REASON = "Invalid passcode entered"
LOCKED_PASSCODE_REASON = "Passcode entry locked"


def hash_passcode(passcode: str, *, secret: str | None = None) -> str:
    key = (secret or settings.secret_key).encode("utf-8")
    return hmac.new(key, passcode.encode("utf-8"), hashlib.sha256).hexdigest()


def is_complete_passcode(passcode: str | None, length: int | None = None) -> bool:
    size = length or settings.staff_passcode_length
    return bool(passcode) and re.fullmatch(rf"[0-9]{{{size}}}", passcode) is not None


@dataclass(frozen=True, slots=True)
class StaffIdentity:
    staff_id: UUID
    staff_name: str
    is_superadmin: bool = False
    role: str = "staff"
    outlet_id: UUID | None = None


@dataclass(slots=True)
class VerificationContext:
    """What the passcode is being entered for; copied onto the audit row."""

    outlet_id: UUID | None = None
    redemption_type: RedemptionTypeEnum = RedemptionTypeEnum.ORDER
    redemption_id: UUID | None = None
    user_id: UUID | None = None


@dataclass(slots=True)
class PasscodeVerification:
    success: bool
    identity: StaffIdentity | None = None
    error: str | None = None
    retry_after_seconds: int | None = None


class StaffIdentityGate:
    """Resolve passcodes to staff and log every attempt.

    Authentication failures never raise; they come back as an unsuccessful
    :class:`PasscodeVerification`. Incomplete input is a no-op returning ``None``.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        staff: StaffRepository | None = None,
        audit: AuditLogRepository | None = None,
        lockout: PasscodeLockout | None = None,
        passcode_length: int | None = None,
    ) -> None:
        self._session = session
        self._staff = staff or SqlAlchemyStaffRepository(session)
        self._audit = audit or SqlAlchemyAuditLogRepository(session)
        if lockout is None and settings.staff_passcode_lockout_enabled:
            lockout = PasscodeLockout()
        self._lockout = lockout
        self._length = passcode_length or settings.staff_passcode_length

    async def verify(
        self, passcode: str, context: VerificationContext | None = None
    ) -> PasscodeVerification | None:
        if not is_complete_passcode(passcode, self._length):
            return None
        context = context or VerificationContext()
        pad = str(context.outlet_id or "global")
        store = get_redemption_store()

        if self._lockout is not None:
            state = await self._lockout.get_state(pad)
            if state.locked:
                await self._log_failure(passcode, context, LOCKED_PASSCODE_REASON)
                store.record_passcode_attempt("locked")
                logger.warning("Passcode entry locked", outlet_id=pad, retry_after=state.retry_after_seconds)
                return PasscodeVerification(
                    success=False,
                    error=f"Too many attempts. Try again in {state.retry_after_seconds} seconds.",
                    retry_after_seconds=state.retry_after_seconds,
                )

        staff = await self._staff.find_by_digest(hash_passcode(passcode))
        if staff is None:
            await self._log_failure(passcode, context, INVALID_PASSCODE_REASON)
            store.record_passcode_attempt("failure")
            logger.info("Passcode verification failed", outlet_id=pad)
            retry_after = None
            if self._lockout is not None:
                state = await self._lockout.register_failure(pad)
                retry_after = state.retry_after_seconds
            return PasscodeVerification(
                success=False, error=INVALID_PASSCODE_MESSAGE, retry_after_seconds=retry_after
            )

        identity = StaffIdentity(
            staff_id=staff.id,
            staff_name=staff.staff_name,
            is_superadmin=bool(staff.is_superadmin),
            role=staff.role,
            outlet_id=staff.outlet_id,
        )
        staff.last_used_at = datetime.now(timezone.utc)
        await self._audit.add_redemption_log(
            staff_passcode_id=identity.staff_id,
            redemption_type=context.redemption_type,
            redemption_id=context.redemption_id,
            user_id=context.user_id,
            outlet_id=context.outlet_id,
            items_redeemed=[],
            success=True,
            metadata_json={"action": "passcode_verified", "staff_name": identity.staff_name},
        )
        await self._session.commit()
        if self._lockout is not None:
            await self._lockout.register_success(pad)
        store.record_passcode_attempt("success")
        logger.info("Passcode verified", staff_id=str(identity.staff_id), outlet_id=pad)
        return PasscodeVerification(success=True, identity=identity)

    async def _log_failure(self, passcode: str, context: VerificationContext, reason: str) -> None:
        await self._audit.add_redemption_log(
            staff_passcode_id=None,
            redemption_type=context.redemption_type,
            redemption_id=context.redemption_id,
            user_id=context.user_id,
            outlet_id=context.outlet_id,
            items_redeemed=[],
            success=False,
            failure_reason=reason,
            metadata_json={"passcode_entered": passcode},
        )
        await self._session.commit()


Verifier = Callable[[str], Awaitable[PasscodeVerification | None]]


@dataclass
class PasscodeBuffer:
    """Digit-by-digit passcode entry that verifies once the last digit lands."""

    verifier: Verifier
    length: int = field(default_factory=lambda: settings.staff_passcode_length)
    digits: str = ""
    error: str | None = None
    identity: StaffIdentity | None = None
    verifying: bool = False

    async def press(self, key: str) -> PasscodeVerification | None:
        if len(key) != 1 or key not in "0123456789":
            return None
        if self.verifying or len(self.digits) >= self.length:
            return None
        self.error = None
        self.digits += key
        if len(self.digits) < self.length:
            return None

        self.verifying = True
        try:
            result = await self.verifier(self.digits)
        finally:
            self.verifying = False
        if result is None:
            return None
        if result.success:
            self.identity = result.identity
        else:
            self.error = result.error
            self.digits = ""
        return result

    async def enter(self, passcode: str) -> PasscodeVerification | None:
        result = None
        for key in passcode:
            result = await self.press(key)
        return result

    def backspace(self) -> None:
        self.digits = self.digits[:-1]

    def clear(self) -> None:
        self.digits = ""
        self.error = None
        self.identity = None


__all__ = [
    "INVALID_PASSCODE_MESSAGE",
    "PasscodeBuffer",
    "PasscodeVerification",
    "StaffIdentity",
    "StaffIdentityGate",
    "VerificationContext",
    "hash_passcode",
    "is_complete_passcode",
]
