"""Redemption domain helpers."""

from .redeemables import (  # noqa: F401
    EmptySelectionError,
    LedgerEntryView,
    OrderItems,
    OrderRedemptionState,
    Redeemable,
    RedemptionSelection,
    RewardKind,
    SingleReward,
    derive_order_state,
)
