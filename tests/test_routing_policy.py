"""
Tests for the routing policy engine.

Covers:
- Ordered decision rules (first match wins)
- Onboarding hard floor
- best_route priorities and determinism
- next_best_actions ranking
- End-to-end navigation scenarios
"""

import itertools

import pytest

from routing.models import (
    OnboardingStep,
    PUBLIC_ROUTE,
    RouteRequirements,
    Routes,
    SetupPreference,
    SubscriptionStatus,
    UserStateSnapshot,
    Verdict,
)
from routing.policy import DECISION_RULES, ROUTE_PRIORITIES, RoutingPolicyEngine


def snap(**kwargs) -> UserStateSnapshot:
    kwargs.setdefault("subject_id", "user-1")
    kwargs.setdefault("onboarding_step", OnboardingStep.IN_PROGRESS)
    kwargs.setdefault("chaos_score", 10)
    return UserStateSnapshot(**kwargs)


def decide(engine, snapshot, path, **kwargs):
    kwargs.setdefault("is_authenticated", True)
    kwargs.setdefault("auth_loading", False)
    return engine.decide(snapshot, path, **kwargs)


class TestRuleTable:
    """Rules are data and their order is the precedence."""

    def test_rule_order(self):
        names = [rule.name for rule in DECISION_RULES]
        assert names == [
            "auth_loading",
            "unauthenticated",
            "anonymous_public_route",
            "authenticated_on_login",
            "admin_required",
            "onboarding_floor",
            "onboarding_already_done",
            "profile_incomplete",
            "allow",
        ]

    def test_route_priority_order(self):
        assert [c.path for c in ROUTE_PRIORITIES] == [
            Routes.CLARITY,
            Routes.FEED,
            Routes.RECOMMENDATIONS,
            Routes.HEALTH,
            Routes.DASHBOARD,
        ]

    def test_custom_rule_list_is_honored(self, engine):
        """An engine built with only the catch-all always allows."""
        permissive = RoutingPolicyEngine(rules=DECISION_RULES[-1:])
        verdict = decide(permissive, snap(profile_completeness=0), "/dashboard")
        assert verdict.is_allowed


class TestDecide:
    """Test RoutingPolicyEngine.decide()."""

    def test_auth_loading_wins_over_everything(self, engine):
        verdict = engine.decide(snap(), "/dashboard", is_authenticated=False, auth_loading=True)
        assert verdict == Verdict.loading()
        assert verdict.is_loading

    def test_unauthenticated_redirects_to_auth(self, engine):
        verdict = engine.decide(snap(), "/dashboard", is_authenticated=False, auth_loading=False)
        assert verdict == Verdict.redirect_to(Routes.AUTH)
        assert verdict.rule == "unauthenticated"

    def test_anonymous_public_route_allowed(self, engine):
        verdict = engine.decide(
            snap(), "/pricing", is_authenticated=False, auth_loading=False, requirements=PUBLIC_ROUTE
        )
        assert verdict.is_allowed

    def test_anonymous_on_auth_page_not_looped(self, engine):
        verdict = engine.decide(snap(), Routes.AUTH, is_authenticated=False, auth_loading=False)
        assert verdict.is_allowed

    def test_authenticated_on_auth_goes_to_best_route(self, engine):
        verdict = decide(engine, snap(profile_completeness=55), Routes.AUTH)
        assert verdict == Verdict.redirect_to(Routes.HEALTH)

    def test_authenticated_on_auth_precedes_floor(self, engine):
        """The login page sends even brand-new users to their best route."""
        verdict = decide(engine, snap(profile_completeness=10), Routes.AUTH)
        assert verdict == Verdict.redirect_to(Routes.DASHBOARD)

    def test_admin_route_rejects_non_admin(self, engine):
        verdict = decide(
            engine,
            snap(profile_completeness=90),
            "/admin",
            requirements=RouteRequirements(admin_only=True),
        )
        assert verdict == Verdict.redirect_to(Routes.DASHBOARD)

    def test_admin_route_allows_admin(self, engine):
        verdict = decide(
            engine,
            snap(profile_completeness=90, is_admin_caller=True),
            "/admin",
            requirements=RouteRequirements(admin_only=True),
        )
        assert verdict.is_allowed

    def test_not_started_hits_floor_even_when_complete(self, engine):
        verdict = decide(
            engine, snap(profile_completeness=95, onboarding_step=OnboardingStep.NOT_STARTED), "/dashboard"
        )
        assert verdict == Verdict.redirect_to(Routes.ONBOARDING)

    def test_onboarding_page_renders_below_floor(self, engine):
        """Redirecting to the page already being viewed would loop."""
        verdict = decide(engine, snap(profile_completeness=10), Routes.ONBOARDING)
        assert verdict.is_allowed
        assert verdict.rule == "onboarding_floor:at_destination"

    def test_onboarding_done_redirects_away(self, engine):
        verdict = decide(engine, snap(profile_completeness=65), Routes.ONBOARDING)
        assert verdict == Verdict.redirect_to(Routes.HEALTH)

    def test_onboarding_verified_redirects_away(self, engine):
        verdict = decide(engine, snap(profile_completeness=45), Routes.ONBOARDING, completion_verified=True)
        assert verdict == Verdict.redirect_to(Routes.DASHBOARD)

    def test_onboarding_in_progress_stays(self, engine):
        verdict = decide(engine, snap(profile_completeness=45), Routes.ONBOARDING)
        assert verdict.is_allowed

    def test_require_complete_below_bar(self, engine):
        verdict = decide(
            engine, snap(profile_completeness=55), "/feed", requirements=RouteRequirements(require_complete=True)
        )
        assert verdict == Verdict.redirect_to(Routes.ONBOARDING)
        assert verdict.rule == "profile_incomplete"

    def test_require_complete_at_bar(self, engine):
        verdict = decide(
            engine, snap(profile_completeness=60), "/feed", requirements=RouteRequirements(require_complete=True)
        )
        assert verdict.is_allowed

    def test_plain_protected_route_allowed(self, engine):
        assert decide(engine, snap(profile_completeness=45), "/dashboard").is_allowed

    def test_verdict_equality_ignores_rule_name(self):
        assert Verdict.redirect_to("/x", "a") == Verdict.redirect_to("/x", "b")


class TestHardFloor:
    """Below 40% completeness every protected navigation goes to onboarding."""

    @pytest.mark.parametrize("completeness", [0, 1, 20, 39])
    def test_floor_regardless_of_other_fields(self, engine, completeness):
        combos = itertools.product(
            list(OnboardingStep),
            list(SetupPreference),
            [0, 50, 100],
            [False, True],
            list(SubscriptionStatus),
            [False, True],
        )
        for step, pref, chaos, integrations, status, admin in combos:
            snapshot = snap(
                profile_completeness=completeness,
                onboarding_step=step,
                setup_preference=pref,
                chaos_score=chaos,
                has_active_integrations=integrations,
                subscription_status=status,
                is_admin_caller=admin,
            )
            for path, requirements in [
                ("/dashboard", RouteRequirements()),
                ("/feed", RouteRequirements(require_complete=True)),
                ("/clarity", RouteRequirements()),
            ]:
                verdict = decide(engine, snapshot, path, requirements=requirements)
                assert verdict == Verdict.redirect_to(Routes.ONBOARDING), (snapshot, path)


class TestBestRoute:
    """Test best_route() priorities."""

    def test_crisis(self, engine):
        assert engine.best_route(snap(chaos_score=81, profile_completeness=69)) == Routes.CLARITY

    def test_crisis_boundaries(self, engine):
        assert engine.best_route(snap(chaos_score=80, profile_completeness=50)) == Routes.HEALTH
        assert engine.best_route(snap(chaos_score=90, profile_completeness=70)) == Routes.HEALTH

    def test_connected_power_user(self, engine):
        snapshot = snap(
            setup_preference=SetupPreference.CONNECT, has_active_integrations=True, profile_completeness=70
        )
        assert engine.best_route(snapshot) == Routes.FEED

    def test_connect_without_integrations(self, engine):
        snapshot = snap(setup_preference=SetupPreference.CONNECT, profile_completeness=85)
        assert engine.best_route(snapshot) == Routes.HEALTH

    def test_growth_focus(self, engine):
        assert engine.best_route(snap(setup_preference=SetupPreference.GROW, profile_completeness=60)) == (
            Routes.RECOMMENDATIONS
        )
        assert engine.best_route(snap(setup_preference=SetupPreference.GROW, profile_completeness=59)) == (
            Routes.HEALTH
        )

    def test_business_health_and_default(self, engine):
        assert engine.best_route(snap(profile_completeness=50)) == Routes.HEALTH
        assert engine.best_route(snap(profile_completeness=49)) == Routes.DASHBOARD

    def test_fail_safe_snapshot_triages_to_clarity(self, engine):
        """Missing data reads as chaos 100, completeness 0."""
        assert engine.best_route(UserStateSnapshot.fail_safe("user-1")) == Routes.CLARITY

    def test_total_and_deterministic(self, engine):
        valid = {c.path for c in ROUTE_PRIORITIES}
        for completeness, chaos, pref, integrations in itertools.product(
            range(0, 101, 5), range(0, 101, 10), list(SetupPreference), [False, True]
        ):
            snapshot = snap(
                profile_completeness=completeness,
                chaos_score=chaos,
                setup_preference=pref,
                has_active_integrations=integrations,
            )
            first = engine.best_route(snapshot)
            assert first in valid
            assert all(engine.best_route(snapshot) == first for _ in range(3))


class TestNextBestActions:
    """Test the ranked next-best-action list."""

    def test_first_entry_is_best_route(self, engine):
        snapshot = snap(setup_preference=SetupPreference.GROW, profile_completeness=75, chaos_score=10)
        actions = engine.next_best_actions(snapshot)
        assert actions[0] == engine.best_route(snapshot)
        assert actions == [Routes.RECOMMENDATIONS, Routes.HEALTH, Routes.DASHBOARD]

    def test_always_ends_with_dashboard(self, engine):
        assert engine.next_best_actions(snap(profile_completeness=0)) == [Routes.DASHBOARD]

    def test_no_duplicates(self, engine):
        actions = engine.next_best_actions(
            snap(
                setup_preference=SetupPreference.CONNECT,
                has_active_integrations=True,
                profile_completeness=90,
            )
        )
        assert len(actions) == len(set(actions))
        assert actions == [Routes.FEED, Routes.HEALTH, Routes.DASHBOARD]


class TestScenarios:
    """End-to-end navigation scenarios."""

    def test_new_user_sent_to_onboarding(self, engine):
        snapshot = snap(profile_completeness=20, onboarding_step=OnboardingStep.NOT_STARTED)
        assert decide(engine, snapshot, "/dashboard") == Verdict.redirect_to(Routes.ONBOARDING)

    def test_chaotic_user_on_login_sent_to_clarity(self, engine):
        snapshot = snap(profile_completeness=65, chaos_score=90)
        assert decide(engine, snapshot, Routes.AUTH) == Verdict.redirect_to(Routes.CLARITY)

    def test_chaos_rule_requires_completeness_below_advanced(self, engine):
        """Crisis triage stops at 70% completeness; 75/90 is a health case."""
        snapshot = snap(profile_completeness=75, chaos_score=90)
        assert decide(engine, snapshot, Routes.AUTH) == Verdict.redirect_to(Routes.HEALTH)

    def test_connected_user_on_login_sent_to_feed(self, engine):
        snapshot = snap(
            profile_completeness=85,
            setup_preference=SetupPreference.CONNECT,
            has_active_integrations=True,
        )
        assert decide(engine, snapshot, Routes.AUTH) == Verdict.redirect_to(Routes.FEED)

    def test_non_admin_on_admin_route_sent_to_dashboard(self, engine):
        snapshot = snap(profile_completeness=80, is_admin_caller=False)
        verdict = decide(engine, snapshot, "/admin", requirements=RouteRequirements(admin_only=True))
        assert verdict == Verdict.redirect_to(Routes.DASHBOARD)
