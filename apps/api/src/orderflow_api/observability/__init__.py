"""In-process telemetry stores and tracing setup."""

from .redemption import RedemptionObservabilityStore, RedemptionSnapshot, get_redemption_store

__all__ = ["RedemptionObservabilityStore", "RedemptionSnapshot", "get_redemption_store"]
