"""Redemption ledger services."""

from .exceptions import (
    InvalidSelectionError,
    RedeemableNotFoundError,
    RedemptionConflictError,
    RedemptionError,
    RedemptionInFlightError,
    RedemptionNotAllowedError,
    StaffNotVerifiedError,
)
from .flow import FlowStep, StaffRedemptionFlow
from .service import OrderLedger, RedemptionOutcome, RedemptionService, build_ledger_entries

__all__ = [
    "FlowStep",
    "InvalidSelectionError",
    "OrderLedger",
    "RedeemableNotFoundError",
    "RedemptionConflictError",
    "RedemptionError",
    "RedemptionInFlightError",
    "RedemptionNotAllowedError",
    "RedemptionOutcome",
    "RedemptionService",
    "StaffNotVerifiedError",
    "StaffRedemptionFlow",
    "build_ledger_entries",
]
