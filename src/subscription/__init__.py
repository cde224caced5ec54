"""
Subscription gating.

Provides the paywall gate for premium features and the advisory
trial banner.
"""

from .paywall import (
    PaywallDecision,
    PaywallGate,
    PaywallOutcome,
    TrialBanner,
    TrialBannerLevel,
)

__all__ = [
    "PaywallDecision",
    "PaywallGate",
    "PaywallOutcome",
    "TrialBanner",
    "TrialBannerLevel",
]
