"""State signal collection for the routing core."""

from .collector import (
    SignalCollector,
    SignalSource,
    normalize_subscription_status,
    trial_days_remaining,
)

__all__ = [
    "SignalCollector",
    "SignalSource",
    "normalize_subscription_status",
    "trial_days_remaining",
]
