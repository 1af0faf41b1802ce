"""Kitchen board services."""

from .cancellations import CancellationRegistry, CancellationRequest, get_cancellation_registry
from .exceptions import (
    AlreadyNotifiedError,
    CancellationConfirmationRequiredError,
    CancellationRequestError,
    InvalidKitchenTransitionError,
    KitchenBoardError,
    KitchenItemNotFoundError,
    OrderNotReadyError,
)
from .service import (
    DateFilter,
    KitchenBoardService,
    KitchenBoardView,
    KitchenTicket,
    StatusFilter,
)

__all__ = [
    "AlreadyNotifiedError",
    "CancellationConfirmationRequiredError",
    "CancellationRegistry",
    "CancellationRequest",
    "CancellationRequestError",
    "DateFilter",
    "InvalidKitchenTransitionError",
    "KitchenBoardError",
    "KitchenBoardService",
    "KitchenBoardView",
    "KitchenItemNotFoundError",
    "KitchenTicket",
    "OrderNotReadyError",
    "StatusFilter",
    "get_cancellation_registry",
]
