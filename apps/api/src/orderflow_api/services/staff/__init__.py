"""Staff passcode gate."""

from .lockout import PasscodeLockout, PasscodeLockoutState
from .passcode_gate import (
    INVALID_PASSCODE_MESSAGE,
    PasscodeBuffer,
    PasscodeVerification,
    StaffIdentity,
    StaffIdentityGate,
    VerificationContext,
    hash_passcode,
)

__all__ = [
    "INVALID_PASSCODE_MESSAGE",
    "PasscodeBuffer",
    "PasscodeLockout",
    "PasscodeLockoutState",
    "PasscodeVerification",
    "StaffIdentity",
    "StaffIdentityGate",
    "VerificationContext",
    "hash_passcode",
]
