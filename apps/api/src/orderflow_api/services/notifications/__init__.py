"""Notification service package."""

from .service import (
    NotificationDeliveryError,
    NotificationEvent,
    NotificationService,
    ORDER_READY_TITLE,
)

__all__ = [
    "NotificationDeliveryError",
    "NotificationEvent",
    "NotificationService",
    "ORDER_READY_TITLE",
]
