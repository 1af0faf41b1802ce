"""Redemption failures surfaced to the confirming staff member."""

from __future__ import annotations

from typing import Iterable
from uuid import UUID


class RedemptionError(RuntimeError):
    """Base exception for redemption failures."""


class RedeemableNotFoundError(RedemptionError):
    """Raised when the order or reward being redeemed does not exist."""


class RedemptionNotAllowedError(RedemptionError):
    """Raised when an order is not in a redeemable state (unpaid, cancelled, refunded)."""


class InvalidSelectionError(RedemptionError):
    """Raised when the selection names items the order has no ledger entry for."""

    def __init__(self, item_indices: Iterable[int]) -> None:
        self.item_indices = sorted(item_indices)
        super().__init__(f"Items {self.item_indices} cannot be redeemed on this order")


class RedemptionConflictError(RedemptionError):
    """Raised when an item was redeemed by someone else before this batch committed."""

    def __init__(self, redeemable_id: UUID, item_indices: Iterable[int]) -> None:
        self.redeemable_id = redeemable_id
        self.item_indices = sorted(item_indices)
        super().__init__(
            "Already redeemed, nothing was changed. Refresh and select the remaining items."
        )


class RedemptionInFlightError(RedemptionError):
    """Raised when a confirmation is submitted while the previous one is still running."""

    def __init__(self) -> None:
        super().__init__("A redemption is already being confirmed")


class StaffNotVerifiedError(RedemptionError):
    """Raised when confirming before a staff passcode has been verified."""

    def __init__(self) -> None:
        super().__init__("Verify the staff passcode before confirming")


__all__ = [
    "InvalidSelectionError",
    "RedeemableNotFoundError",
    "RedemptionConflictError",
    "RedemptionError",
    "RedemptionInFlightError",
    "RedemptionNotAllowedError",
    "StaffNotVerifiedError",
]
