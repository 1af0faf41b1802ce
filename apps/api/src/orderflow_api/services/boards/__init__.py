"""Long-lived boards kept current by the change feed."""

from .base import LiveBoard
from .console import OrdersConsoleBoard, load_console
from .customer import CustomerQRBoard, ReadyToast, WalletCode, load_wallet
from .kitchen import AlertSink, KitchenBoardSession, RecordingAlertSink

__all__ = [
    "AlertSink",
    "CustomerQRBoard",
    "KitchenBoardSession",
    "LiveBoard",
    "OrdersConsoleBoard",
    "ReadyToast",
    "RecordingAlertSink",
    "WalletCode",
    "load_console",
    "load_wallet",
]
