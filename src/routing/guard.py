"""
Access Guard

Orchestrates one navigation check:

    auth resolved? -> effective identity (impersonation overlay)
                   -> state signals + completion status (concurrently)
                   -> RoutingPolicyEngine.decide()
                   -> Allowed | Redirecting

Every guard variant is this one class fed a RouteRequirements entry from
the route table. Signal failures never halt the machine: evaluation
proceeds on fail-safe defaults, so a check always terminates.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from cache.completion_cache import CompletionStatusCache
from rbac.context import AuthContext
from rbac.impersonation import EffectiveIdentity, ImpersonationBanner, ImpersonationOverlay
from signals.collector import SignalCollector

from .models import PUBLIC_ROUTE, RouteRequirements, Routes, UserStateSnapshot, Verdict
from .policy import RoutingPolicyEngine

logger = logging.getLogger(__name__)


class GuardState(str, Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    EVALUATING = "evaluating"
    ALLOWED = "allowed"
    REDIRECTING = "redirecting"


# =============================================================================
# ROUTE TABLE
# =============================================================================

PUBLIC_PATHS = (
    "/",
    Routes.AUTH,
    "/features",
    "/pricing",
    "/contact",
    "/company",
    "/support",
    "/enterprise",
    "/partnerships",
    "/resources",
    "/help-center",
    "/privacy-policy",
    "/terms-of-service",
    "/security",
    "/reset-password",
    "/enhanced-quiz",
    "/integrations/oauth/callback",
)

# Screens that need a finished profile. Only destinations best_route()
# recommends at or above the onboarding bar belong here, so a recommended
# screen never bounces the user back to onboarding.
COMPLETE_PROFILE_PATHS = (
    Routes.FEED,
    Routes.RECOMMENDATIONS,
    "/ai-recommendations",
    "/analytics",
    "/revenue-recovery",
)

ADMIN_PATHS = (Routes.ADMIN,)

# Old bookmarks and their canonical screens
LEGACY_ALIASES: Dict[str, str] = {
    "/insights": Routes.FEED,
    "/decisions": Routes.CLARITY,
    "/intelligence-feed": Routes.FEED,
    "/business-health": Routes.HEALTH,
    "/integration-hub": "/integrations",
    "/billing": "/settings/billing",
}


def _normalize_path(path: str) -> str:
    path = (path or "/").split("?", 1)[0].split("#", 1)[0]
    if len(path) > 1:
        path = path.rstrip("/")
    return path if path.startswith("/") else f"/{path}"


class RouteTable:
    """
    Maps paths to guard requirements.

    Lookup is exact first, then the longest registered prefix on a "/"
    boundary (so "/admin/users" inherits "/admin"). Unknown paths require
    authentication.
    """

    def __init__(
        self,
        routes: Mapping[str, RouteRequirements],
        aliases: Optional[Mapping[str, str]] = None,
        default: RouteRequirements = RouteRequirements(),
    ):
        self._routes = {_normalize_path(p): r for p, r in routes.items()}
        self._aliases = {_normalize_path(p): t for p, t in (aliases or {}).items()}
        self._default = default

    def requirements_for(self, path: str) -> RouteRequirements:
        path = _normalize_path(path)
        if path in self._routes:
            return self._routes[path]
        best: Optional[str] = None
        for prefix in self._routes:
            if prefix != "/" and path.startswith(prefix + "/"):
                if best is None or len(prefix) > len(best):
                    best = prefix
        return self._routes[best] if best else self._default

    def alias_for(self, path: str) -> Optional[str]:
        return self._aliases.get(_normalize_path(path))

    @classmethod
    def default(cls) -> "RouteTable":
        routes: Dict[str, RouteRequirements] = {p: PUBLIC_ROUTE for p in PUBLIC_PATHS}
        routes.update({p: RouteRequirements(require_complete=True) for p in COMPLETE_PROFILE_PATHS})
        routes.update({p: RouteRequirements(admin_only=True) for p in ADMIN_PATHS})
        return cls(routes, LEGACY_ALIASES)


# =============================================================================
# NAVIGATION TRACKING
# =============================================================================

class NavigationTracker:
    """
    Latest navigation for one browsing session.

    A check that finishes after a newer navigation began is stale and
    must not be applied.
    """

    def __init__(self):
        self._generation = 0
        self._path: Optional[str] = None
        self._lock = threading.Lock()

    def begin(self, path: str) -> int:
        with self._lock:
            self._generation += 1
            self._path = path
            return self._generation

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._generation

    @property
    def current_path(self) -> Optional[str]:
        return self._path


# =============================================================================
# GUARD
# =============================================================================

@dataclass(frozen=True)
class GuardResult:
    """Outcome of one navigation check."""
    state: GuardState
    path: str
    verdict: Verdict
    effective: Optional[EffectiveIdentity] = None
    snapshot: Optional[UserStateSnapshot] = None
    next_best_actions: Tuple[str, ...] = ()
    transitions: Tuple[GuardState, ...] = ()
    stale: bool = False

    @property
    def redirect_to(self) -> Optional[str]:
        return self.verdict.path if self.verdict.is_redirect else None

    @property
    def banner(self) -> Optional[ImpersonationBanner]:
        return self.effective.display if self.effective else None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "path": self.path,
            "verdict": self.verdict.to_dict(),
            "redirect_to": self.redirect_to,
            "effective_user_id": self.effective.effective_id if self.effective else None,
            "is_impersonating": bool(self.effective and self.effective.is_impersonating),
            "banner": self.banner.to_dict() if self.banner else None,
            "next_best_actions": list(self.next_best_actions),
            "stale": self.stale,
        }


def _final_state(verdict: Verdict) -> GuardState:
    if verdict.is_loading:
        return GuardState.LOADING
    return GuardState.REDIRECTING if verdict.is_redirect else GuardState.ALLOWED


class AccessGuard:
    """
    Single entry point for protected navigation.

    Usage:
        guard = AccessGuard(engine, collector, completion_cache)
        result = await guard.check(auth_ctx, "/feed", ImpersonationOverlay(request.session))
        if result.redirect_to:
            return RedirectResponse(result.redirect_to)
    """

    def __init__(
        self,
        engine: RoutingPolicyEngine,
        collector: SignalCollector,
        completion_cache: CompletionStatusCache,
        route_table: Optional[RouteTable] = None,
    ):
        self._engine = engine
        self._collector = collector
        self._completion = completion_cache
        self._routes = route_table or RouteTable.default()

    @property
    def engine(self) -> RoutingPolicyEngine:
        return self._engine

    @property
    def completion_cache(self) -> CompletionStatusCache:
        return self._completion

    @property
    def route_table(self) -> RouteTable:
        return self._routes

    async def _gather_state(
        self,
        effective: EffectiveIdentity,
        caller_id: Optional[str],
    ) -> Tuple[UserStateSnapshot, bool]:
        subject_id = effective.effective_id or ""
        snapshot, complete = await asyncio.gather(
            self._collector.snapshot(subject_id, caller_id=caller_id),
            self._completion.is_complete(subject_id, email=effective.effective_email),
            return_exceptions=True,
        )
        if isinstance(snapshot, Exception):
            logger.error(
                f"Signal collection failed for {subject_id}: {snapshot}; evaluating on defaults",
                extra={"subject_id": subject_id},
            )
            snapshot = UserStateSnapshot.fail_safe(subject_id)
        if isinstance(complete, Exception):
            logger.error(
                f"Completion check failed for {subject_id}: {complete}",
                extra={"subject_id": subject_id},
            )
            complete = False
        return snapshot, bool(complete)

    async def check(
        self,
        auth: AuthContext,
        path: str,
        overlay: ImpersonationOverlay,
        requirements: Optional[RouteRequirements] = None,
        tracker: Optional[NavigationTracker] = None,
    ) -> GuardResult:
        """
        Run one navigation check. Never raises for a data failure.

        Args:
            auth: Authenticated caller as resolved by the auth layer.
            path: Path being navigated to.
            overlay: Impersonation overlay of the caller's browsing session.
            requirements: Explicit guard configuration; looked up in the
                route table when omitted.
            tracker: Navigation tracker of the browsing session; results
                of superseded navigations come back with stale=True.

        Returns:
            GuardResult
        """
        path = _normalize_path(path)
        token = tracker.begin(path) if tracker else None
        requirements = requirements or self._routes.requirements_for(path)
        transitions: List[GuardState] = [GuardState.LOADING]

        def finish(verdict: Verdict, **kwargs) -> GuardResult:
            state = _final_state(verdict)
            if state != transitions[-1]:
                transitions.append(state)
            stale = token is not None and not tracker.is_current(token)
            if stale:
                logger.debug(f"Discarding stale verdict for {path}")
            return GuardResult(
                state=state,
                path=path,
                verdict=verdict,
                transitions=tuple(transitions),
                stale=stale,
                **kwargs,
            )

        if auth.loading:
            verdict = self._engine.decide(
                UserStateSnapshot.fail_safe(""), path,
                is_authenticated=False, auth_loading=True, requirements=requirements,
            )
            return finish(verdict)

        alias = self._routes.alias_for(path)
        if alias:
            return finish(Verdict.redirect_to(alias, "legacy_alias"))

        if not auth.is_authenticated:
            transitions.append(GuardState.UNAUTHENTICATED)
            verdict = self._engine.decide(
                UserStateSnapshot.fail_safe(""), path,
                is_authenticated=False, auth_loading=False, requirements=requirements,
            )
            return finish(verdict)

        effective = overlay.resolve_effective_identity(auth)
        if not requirements.require_auth and path != Routes.AUTH:
            # Marketing and legal pages render for everyone
            return finish(Verdict.allow("public_route"), effective=effective)

        transitions.append(GuardState.EVALUATING)
        snapshot, complete = await self._gather_state(effective, auth.user_id)

        verdict = self._engine.decide(
            snapshot,
            path,
            is_authenticated=True,
            auth_loading=False,
            requirements=requirements,
            completion_verified=complete,
        )
        if verdict.is_redirect:
            logger.info(
                f"Redirecting {snapshot.subject_id} from {path} to {verdict.path} ({verdict.rule})",
                extra={"subject_id": snapshot.subject_id, "impersonating": effective.is_impersonating},
            )

        return finish(
            verdict,
            effective=effective,
            snapshot=snapshot,
            next_best_actions=tuple(self._engine.next_best_actions(snapshot)),
        )


__all__ = [
    "GuardState",
    "PUBLIC_PATHS",
    "COMPLETE_PROFILE_PATHS",
    "ADMIN_PATHS",
    "LEGACY_ALIASES",
    "RouteTable",
    "NavigationTracker",
    "GuardResult",
    "AccessGuard",
]
