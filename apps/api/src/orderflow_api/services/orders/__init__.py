"""Order lifecycle services."""

from .order_service import (
    DeletionNotConfirmedError,
    OrderDetail,
    OrderDraft,
    OrderService,
    OrderValidationError,
    PaymentStateError,
)
from .state_machine import (
    InvalidOrderTransitionError,
    OrderNotFoundError,
    OrderStateError,
    OrderStateMachine,
    PendingRedemptionsError,
    TransitionReasonRequiredError,
)

__all__ = [
    "DeletionNotConfirmedError",
    "InvalidOrderTransitionError",
    "OrderDetail",
    "OrderDraft",
    "OrderNotFoundError",
    "OrderService",
    "OrderStateError",
    "OrderStateMachine",
    "OrderValidationError",
    "PaymentStateError",
    "PendingRedemptionsError",
    "TransitionReasonRequiredError",
]
