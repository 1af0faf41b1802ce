"""Change feed and realtime channel."""

from .change_feed import (
    ChangeBinding,
    ChangeEvent,
    ChangeEventType,
    ChangeFeed,
    ChangeFeedUnavailableError,
    ChannelStatus,
    Subscription,
    get_change_feed,
    stage_change,
)
from .channel import RealtimeChannel, backoff_delay

__all__ = [
    "ChangeBinding",
    "ChangeEvent",
    "ChangeEventType",
    "ChangeFeed",
    "ChangeFeedUnavailableError",
    "ChannelStatus",
    "RealtimeChannel",
    "Subscription",
    "backoff_delay",
    "get_change_feed",
    "stage_change",
]
