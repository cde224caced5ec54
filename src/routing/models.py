"""
Routing data model.

UserStateSnapshot is rebuilt for every evaluation and never persisted.
Verdict and RouteRequirements are the inputs and outputs of the
policy engine.
"""

from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Any, Dict, Optional


class Routes:
    """Canonical destination paths."""
    AUTH = "/auth"
    ONBOARDING = "/onboarding"
    DASHBOARD = "/dashboard"
    CLARITY = "/clarity"
    FEED = "/feed"
    RECOMMENDATIONS = "/recommendations"
    HEALTH = "/health"
    ADMIN = "/admin"


class OnboardingStep(str, Enum):
    """Onboarding progress as stored on the profile record."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def normalize(cls, value: Any) -> "OnboardingStep":
        """Unknown or missing values count as not started."""
        try:
            return cls(value)
        except ValueError:
            return cls.NOT_STARTED


class SetupPreference(str, Enum):
    """How the user chose to set up their workspace."""
    MINIMAL = "minimal"
    BUILTIN = "builtin"
    CONNECT = "connect"
    GROW = "grow"

    @classmethod
    def normalize(cls, value: Any) -> "SetupPreference":
        try:
            return cls(value)
        except ValueError:
            return cls.MINIMAL


class SubscriptionStatus(str, Enum):
    """Billing state of the subject."""
    NONE = "none"
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"

    @classmethod
    def normalize(cls, value: Any) -> "SubscriptionStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.NONE


# Fail-safe defaults, biased toward the more restrictive outcome
DEFAULT_COMPLETENESS = 0
DEFAULT_CHAOS_SCORE = 100
DEFAULT_TRIAL_DAYS = 0


def clamp_score(value: Any, default: int) -> int:
    """Coerce a 0-100 score; missing or unparsable values fall back to default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        score = int(value)
    except (TypeError, ValueError):
        return default
    return max(0, min(100, score))


@dataclass(frozen=True)
class UserStateSnapshot:
    """Partially-observed account state for one subject."""

    subject_id: str
    profile_completeness: int = DEFAULT_COMPLETENESS
    onboarding_step: OnboardingStep = OnboardingStep.NOT_STARTED
    setup_preference: SetupPreference = SetupPreference.MINIMAL
    chaos_score: int = DEFAULT_CHAOS_SCORE
    has_active_integrations: bool = False
    subscription_status: SubscriptionStatus = SubscriptionStatus.NONE
    trial_days_remaining: int = DEFAULT_TRIAL_DAYS
    is_admin_caller: bool = False

    @classmethod
    def fail_safe(cls, subject_id: str) -> "UserStateSnapshot":
        """Snapshot with every signal at its fail-safe default."""
        return cls(subject_id=subject_id)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["onboarding_step"] = self.onboarding_step.value
        data["setup_preference"] = self.setup_preference.value
        data["subscription_status"] = self.subscription_status.value
        return data


@dataclass(frozen=True)
class RouteRequirements:
    """
    Per-route guard configuration.

    Every guard variant is one of these handed to the same engine.
    """
    require_auth: bool = True
    require_complete: bool = False
    admin_only: bool = False


PUBLIC_ROUTE = RouteRequirements(require_auth=False)


class VerdictKind(str, Enum):
    LOADING = "loading"
    REDIRECT = "redirect"
    ALLOW = "allow"


@dataclass(frozen=True)
class Verdict:
    """Outcome of one policy evaluation."""

    kind: VerdictKind
    path: Optional[str] = None
    # Name of the matching rule; diagnostic only
    rule: Optional[str] = field(default=None, compare=False)

    @classmethod
    def loading(cls, rule: Optional[str] = None) -> "Verdict":
        return cls(VerdictKind.LOADING, None, rule)

    @classmethod
    def redirect_to(cls, path: str, rule: Optional[str] = None) -> "Verdict":
        return cls(VerdictKind.REDIRECT, path, rule)

    @classmethod
    def allow(cls, rule: Optional[str] = None) -> "Verdict":
        return cls(VerdictKind.ALLOW, None, rule)

    @property
    def is_loading(self) -> bool:
        return self.kind == VerdictKind.LOADING

    @property
    def is_redirect(self) -> bool:
        return self.kind == VerdictKind.REDIRECT

    @property
    def is_allowed(self) -> bool:
        return self.kind == VerdictKind.ALLOW

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "path": self.path, "rule": self.rule}


__all__ = [
    "Routes",
    "OnboardingStep",
    "SetupPreference",
    "SubscriptionStatus",
    "clamp_score",
    "UserStateSnapshot",
    "RouteRequirements",
    "PUBLIC_ROUTE",
    "VerdictKind",
    "Verdict",
]
