"""
User state classification and routing policy.

Usage:
    from routing import RoutingPolicyEngine, RouteRequirements
    from routing.guard import AccessGuard

    engine = RoutingPolicyEngine()
    verdict = engine.decide(snapshot, "/dashboard", is_authenticated=True, auth_loading=False)
"""

from .errors import (
    CompletionComputeError,
    InvalidImpersonationState,
    RoutingCoreError,
    SignalFetchError,
)
from .models import (
    OnboardingStep,
    PUBLIC_ROUTE,
    RouteRequirements,
    Routes,
    SetupPreference,
    SubscriptionStatus,
    UserStateSnapshot,
    Verdict,
    VerdictKind,
)
from .policy import DECISION_RULES, ROUTE_PRIORITIES, RoutingPolicyEngine

__all__ = [
    # Errors
    "RoutingCoreError",
    "SignalFetchError",
    "CompletionComputeError",
    "InvalidImpersonationState",
    # Model
    "Routes",
    "OnboardingStep",
    "SetupPreference",
    "SubscriptionStatus",
    "UserStateSnapshot",
    "RouteRequirements",
    "PUBLIC_ROUTE",
    "Verdict",
    "VerdictKind",
    # Engine
    "DECISION_RULES",
    "ROUTE_PRIORITIES",
    "RoutingPolicyEngine",
]
