"""
Routing Policy Engine

Decides, for one navigation, whether the requester may proceed and which
screen is canonical for their state.

Both rule lists below are ordered and first-match-wins. Precedence is
data: reordering an entry changes product behaviour.

Usage:
    engine = RoutingPolicyEngine()
    verdict = engine.decide(snapshot, "/dashboard", is_authenticated=True, auth_loading=False)
    if verdict.is_redirect:
        return RedirectResponse(verdict.path)
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from .models import (
    OnboardingStep,
    RouteRequirements,
    Routes,
    SetupPreference,
    UserStateSnapshot,
    Verdict,
)

logger = logging.getLogger(__name__)


# =============================================================================
# THRESHOLDS
# =============================================================================

# Below this, onboarding is mandatory regardless of anything else
COMPLETENESS_FLOOR = 40
# Onboarding page counts as done; also the bar for requireComplete routes
COMPLETENESS_ONBOARDED = 60
# Power-user shortcuts and crisis triage
COMPLETENESS_ADVANCED = 70
# General business-health monitoring
COMPLETENESS_HEALTH = 50
CHAOS_CRISIS = 80


# =============================================================================
# BEST ROUTE (soft recommendation)
# =============================================================================

@dataclass(frozen=True)
class RouteCandidate:
    """A recommended destination and the state that earns it."""
    name: str
    predicate: Callable[[UserStateSnapshot], bool]
    path: str


ROUTE_PRIORITIES: Tuple[RouteCandidate, ...] = (
    RouteCandidate(
        "crisis_management",
        lambda s: s.chaos_score > CHAOS_CRISIS and s.profile_completeness < COMPLETENESS_ADVANCED,
        Routes.CLARITY,
    ),
    RouteCandidate(
        "connected_power_user",
        lambda s: (
            s.setup_preference == SetupPreference.CONNECT
            and s.has_active_integrations
            and s.profile_completeness >= COMPLETENESS_ADVANCED
        ),
        Routes.FEED,
    ),
    RouteCandidate(
        "growth_focus",
        lambda s: s.setup_preference == SetupPreference.GROW and s.profile_completeness >= COMPLETENESS_ONBOARDED,
        Routes.RECOMMENDATIONS,
    ),
    RouteCandidate(
        "business_health",
        lambda s: s.profile_completeness >= COMPLETENESS_HEALTH,
        Routes.HEALTH,
    ),
    RouteCandidate("default", lambda s: True, Routes.DASHBOARD),
)


# =============================================================================
# DECISION RULES (hard gates, then soft redirects)
# =============================================================================

@dataclass(frozen=True)
class DecisionContext:
    """Everything one decision is a function of."""
    snapshot: UserStateSnapshot
    current_path: str
    is_authenticated: bool
    auth_loading: bool
    requirements: RouteRequirements = field(default_factory=RouteRequirements)
    completion_verified: bool = False
    best_route: str = Routes.DASHBOARD


@dataclass(frozen=True)
class DecisionRule:
    name: str
    predicate: Callable[[DecisionContext], bool]
    outcome: Callable[[DecisionContext], Verdict]


def _below_floor(ctx: DecisionContext) -> bool:
    s = ctx.snapshot
    return s.profile_completeness < COMPLETENESS_FLOOR or s.onboarding_step == OnboardingStep.NOT_STARTED


def _onboarding_satisfied(ctx: DecisionContext) -> bool:
    return (
        ctx.current_path == Routes.ONBOARDING
        and (ctx.snapshot.profile_completeness >= COMPLETENESS_ONBOARDED or ctx.completion_verified)
    )


DECISION_RULES: Tuple[DecisionRule, ...] = (
    DecisionRule(
        "auth_loading",
        lambda c: c.auth_loading,
        lambda c: Verdict.loading("auth_loading"),
    ),
    DecisionRule(
        "unauthenticated",
        lambda c: not c.is_authenticated and c.requirements.require_auth,
        lambda c: Verdict.redirect_to(Routes.AUTH, "unauthenticated"),
    ),
    DecisionRule(
        "anonymous_public_route",
        lambda c: not c.is_authenticated,
        lambda c: Verdict.allow("anonymous_public_route"),
    ),
    DecisionRule(
        "authenticated_on_login",
        lambda c: c.current_path == Routes.AUTH,
        lambda c: Verdict.redirect_to(c.best_route, "authenticated_on_login"),
    ),
    DecisionRule(
        "admin_required",
        lambda c: c.requirements.admin_only and not c.snapshot.is_admin_caller,
        lambda c: Verdict.redirect_to(Routes.DASHBOARD, "admin_required"),
    ),
    DecisionRule(
        "onboarding_floor",
        _below_floor,
        lambda c: Verdict.redirect_to(Routes.ONBOARDING, "onboarding_floor"),
    ),
    DecisionRule(
        "onboarding_already_done",
        _onboarding_satisfied,
        lambda c: Verdict.redirect_to(c.best_route, "onboarding_already_done"),
    ),
    DecisionRule(
        "profile_incomplete",
        lambda c: c.requirements.require_complete and c.snapshot.profile_completeness < COMPLETENESS_ONBOARDED,
        lambda c: Verdict.redirect_to(Routes.ONBOARDING, "profile_incomplete"),
    ),
    DecisionRule("allow", lambda c: True, lambda c: Verdict.allow("allow")),
)


class RoutingPolicyEngine:
    """
    Pure, synchronous decision core.

    Identical inputs always yield identical verdicts. The engine performs
    no I/O; all suspension happens in the signal collector.
    """

    def __init__(
        self,
        rules: Sequence[DecisionRule] = DECISION_RULES,
        route_priorities: Sequence[RouteCandidate] = ROUTE_PRIORITIES,
    ):
        self._rules = tuple(rules)
        self._route_priorities = tuple(route_priorities)

    @property
    def rules(self) -> Tuple[DecisionRule, ...]:
        return self._rules

    @property
    def route_priorities(self) -> Tuple[RouteCandidate, ...]:
        return self._route_priorities

    def best_route(self, snapshot: UserStateSnapshot) -> str:
        """The single recommended landing screen for this state."""
        for candidate in self._route_priorities:
            if candidate.predicate(snapshot):
                return candidate.path
        return Routes.DASHBOARD

    def next_best_actions(self, snapshot: UserStateSnapshot) -> List[str]:
        """
        Every recommended destination this state qualifies for, ranked.

        The first entry always equals best_route(); the list always ends
        with the dashboard.
        """
        ranked: List[str] = []
        for candidate in self._route_priorities:
            if candidate.predicate(snapshot) and candidate.path not in ranked:
                ranked.append(candidate.path)
        if Routes.DASHBOARD in ranked:
            ranked.remove(Routes.DASHBOARD)
        ranked.append(Routes.DASHBOARD)
        return ranked

    def decide(
        self,
        snapshot: UserStateSnapshot,
        current_path: str,
        is_authenticated: bool,
        auth_loading: bool,
        requirements: Optional[RouteRequirements] = None,
        completion_verified: bool = False,
    ) -> Verdict:
        """
        Evaluate the ordered rule list; the first matching rule wins.

        Args:
            snapshot: State of the effective subject.
            current_path: Path being navigated to.
            is_authenticated: Whether the caller has a resolved identity.
            auth_loading: Whether auth resolution is still in flight.
            requirements: Guard configuration for the path.
            completion_verified: Onboarding completion confirmed by the
                completion cache (includes bypass-listed accounts).

        Returns:
            Verdict: Loading, RedirectTo(path) or Allow.
        """
        ctx = DecisionContext(
            snapshot=snapshot,
            current_path=current_path,
            is_authenticated=is_authenticated,
            auth_loading=auth_loading,
            requirements=requirements or RouteRequirements(),
            completion_verified=completion_verified,
            best_route=self.best_route(snapshot),
        )

        verdict = Verdict.allow("allow")
        for rule in self._rules:
            if rule.predicate(ctx):
                verdict = rule.outcome(ctx)
                break

        # Already on the destination: render instead of looping
        if verdict.is_redirect and verdict.path == current_path:
            verdict = Verdict.allow(f"{verdict.rule}:at_destination")

        logger.debug(
            f"Routing verdict for {snapshot.subject_id} at {current_path}: "
            f"{verdict.kind.value} {verdict.path or ''} ({verdict.rule})"
        )
        return verdict


__all__ = [
    "COMPLETENESS_FLOOR",
    "COMPLETENESS_ONBOARDED",
    "COMPLETENESS_ADVANCED",
    "COMPLETENESS_HEALTH",
    "CHAOS_CRISIS",
    "RouteCandidate",
    "ROUTE_PRIORITIES",
    "DecisionContext",
    "DecisionRule",
    "DECISION_RULES",
    "RoutingPolicyEngine",
]
