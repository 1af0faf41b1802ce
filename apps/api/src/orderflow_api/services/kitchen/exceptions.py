"""Kitchen board failures."""

from __future__ import annotations

from orderflow_api.models.order import KitchenStatusEnum


class KitchenBoardError(RuntimeError):
    """Base exception for kitchen board failures."""


class InvalidKitchenTransitionError(KitchenBoardError):
    def __init__(self, current: KitchenStatusEnum, requested: KitchenStatusEnum) -> None:
        super().__init__(f"Cannot move kitchen ticket from {current.value} to {requested.value}")
        self.current = current
        self.requested = requested


class CancellationConfirmationRequiredError(KitchenBoardError):
    """Raised when cancelling through a plain status change instead of request + confirm."""

    def __init__(self) -> None:
        super().__init__("Cancelling a kitchen ticket needs a separate confirmation")


class CancellationRequestError(KitchenBoardError):
    """Raised when confirming a cancellation that was never requested or has expired."""


class KitchenItemNotFoundError(KitchenBoardError):
    def __init__(self, item_index: int) -> None:
        super().__init__(f"Order has no item at index {item_index}")
        self.item_index = item_index


class OrderNotReadyError(KitchenBoardError):
    """Raised when notifying a customer before the ticket is ready."""


class AlreadyNotifiedError(KitchenBoardError):
    """Raised when the customer was already notified for the current ready episode."""

    def __init__(self, order_number: str) -> None:
        super().__init__(f"Customer already notified for order {order_number}")
        self.order_number = order_number


__all__ = [
    "AlreadyNotifiedError",
    "CancellationConfirmationRequiredError",
    "CancellationRequestError",
    "InvalidKitchenTransitionError",
    "KitchenBoardError",
    "KitchenItemNotFoundError",
    "OrderNotReadyError",
]
