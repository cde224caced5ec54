"""
Paywall Gate

Decides whether a premium-gated feature may be used given the subject's
subscription state. Independent of onboarding routing, but consulted
with the same effective subject.

The hard gate (Allow / ShowPaywall) and the advisory trial banner are
separate signals: a trial that is about to end is still allowed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Union

from config.settings import DEFAULT_PREMIUM_FEATURES
from routing.models import SubscriptionStatus, UserStateSnapshot


class PaywallOutcome(str, Enum):
    ALLOW = "allow"
    SHOW_PAYWALL = "show_paywall"


class TrialBannerLevel(str, Enum):
    """Escalating urgency of the trial banner"""
    NOTICE = "notice"
    URGENT = "urgent"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TrialBanner:
    """Advisory shown above premium content; never blocks on its own."""
    level: TrialBannerLevel
    days_remaining: int
    title: str
    message: str
    upgrade_url: str = "/settings/billing"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "days_remaining": self.days_remaining,
            "title": self.title,
            "message": self.message,
            "upgrade_url": self.upgrade_url,
        }


@dataclass(frozen=True)
class PaywallDecision:
    outcome: PaywallOutcome
    feature: Optional[str] = None
    banner: Optional[TrialBanner] = None

    @property
    def is_allowed(self) -> bool:
        return self.outcome == PaywallOutcome.ALLOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "feature": self.feature,
            "banner": self.banner.to_dict() if self.banner else None,
        }


class PaywallGate:
    """Control access to premium features based on subscription state"""

    def __init__(
        self,
        premium_features: Iterable[str] = DEFAULT_PREMIUM_FEATURES,
        advisory_days: int = 7,
        urgent_days: int = 3,
    ):
        self._premium = frozenset(premium_features)
        self._advisory_days = advisory_days
        self._urgent_days = urgent_days

    def is_premium(self, feature: Optional[str]) -> bool:
        """
        Whether a feature needs paid access.

        No feature name means "premium access in general".
        """
        return feature is None or feature in self._premium

    def trial_banner(
        self,
        subscription_status: Union[SubscriptionStatus, str],
        trial_days_remaining: int,
    ) -> Optional[TrialBanner]:
        """Advisory banner for trials ending soon or already ended."""
        status = SubscriptionStatus.normalize(subscription_status)

        if status == SubscriptionStatus.EXPIRED or (
            status == SubscriptionStatus.TRIAL and trial_days_remaining <= 0
        ):
            return TrialBanner(
                level=TrialBannerLevel.EXPIRED,
                days_remaining=min(trial_days_remaining, 0),
                title="Trial Expired",
                message="Your trial has ended. Upgrade to continue using premium features.",
            )

        if status != SubscriptionStatus.TRIAL or trial_days_remaining > self._advisory_days:
            return None

        plural = "s" if trial_days_remaining != 1 else ""
        return TrialBanner(
            level=TrialBannerLevel.URGENT if trial_days_remaining <= self._urgent_days else TrialBannerLevel.NOTICE,
            days_remaining=trial_days_remaining,
            title="Trial Ending Soon",
            message=f"{trial_days_remaining} day{plural} remaining in your trial.",
        )

    def check(
        self,
        subscription_status: Union[SubscriptionStatus, str],
        trial_days_remaining: int,
        feature: Optional[str] = None,
    ) -> PaywallDecision:
        """
        Check whether the subject may use a feature.

        Args:
            subscription_status: Current billing state
            trial_days_remaining: Days left in the trial (may be negative)
            feature: Feature name (e.g., "clarity_lens"); None for general premium access

        Returns:
            PaywallDecision with the hard outcome and any advisory banner
        """
        status = SubscriptionStatus.normalize(subscription_status)
        banner = self.trial_banner(status, trial_days_remaining)

        if status == SubscriptionStatus.ACTIVE:
            return PaywallDecision(PaywallOutcome.ALLOW, feature)

        if status == SubscriptionStatus.TRIAL and trial_days_remaining > 0:
            return PaywallDecision(PaywallOutcome.ALLOW, feature, banner)

        if not self.is_premium(feature):
            return PaywallDecision(PaywallOutcome.ALLOW, feature, banner)

        return PaywallDecision(PaywallOutcome.SHOW_PAYWALL, feature, banner)

    def check_snapshot(self, snapshot: UserStateSnapshot, feature: Optional[str] = None) -> PaywallDecision:
        """Convenience wrapper reading the subscription fields of a snapshot."""
        return self.check(snapshot.subscription_status, snapshot.trial_days_remaining, feature)


__all__ = [
    "PaywallOutcome",
    "TrialBannerLevel",
    "TrialBanner",
    "PaywallDecision",
    "PaywallGate",
]
