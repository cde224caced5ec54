"""Pytest configuration and fixtures for test suite."""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

# Set test environment BEFORE any other imports
os.environ.setdefault("ROUTING_ENVIRONMENT", "test")
os.environ.setdefault("DB_DRIVER", "sqlite+aiosqlite")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from signals.collector import SignalSource  # noqa: E402


def _reset_db_modules():
    """Reset database module globals to ensure clean state."""
    import database.async_engine as module
    module._async_engine = None
    module._async_session_factory = None


@pytest.fixture(autouse=True)
def reset_database_globals():
    """Reset database module globals before and after each test."""
    _reset_db_modules()
    yield
    _reset_db_modules()


# =============================================================================
# IN-MEMORY SIGNAL SOURCE
# =============================================================================

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeSignalSource(SignalSource):
    """
    Dict-backed SignalSource.

    Set `failures[signal] = exc` to make a fetch raise; `calls` counts
    fetches per signal.
    """

    def __init__(self):
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.unified: Dict[str, Dict[str, Any]] = {}
        self.integrations: Dict[str, int] = {}
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.admins = set()
        self.failures: Dict[str, Exception] = {}
        self.calls: Dict[str, int] = {}

    def _record(self, signal: str) -> None:
        self.calls[signal] = self.calls.get(signal, 0) + 1
        if signal in self.failures:
            raise self.failures[signal]

    def add_user(
        self,
        user_id: str,
        completeness: Optional[int] = None,
        step: Optional[str] = None,
        preference: Optional[str] = None,
        chaos: Optional[int] = None,
        integrations: int = 0,
        status: Optional[str] = None,
        trial_end: Any = None,
        **profile_fields,
    ) -> None:
        self.profiles[user_id] = {
            "onboarding_step": step,
            "setup_preference": preference,
            "chaos_score": chaos,
            **profile_fields,
        }
        if completeness is not None:
            self.unified[user_id] = {"profile_completeness": completeness}
        self.integrations[user_id] = integrations
        if status is not None:
            self.subscriptions[user_id] = {"subscription_status": status, "trial_end_date": trial_end}

    async def fetch_profile(self, subject_id):
        self._record("profile")
        return self.profiles.get(subject_id)

    async def fetch_unified_profile(self, subject_id):
        self._record("unified_profile")
        return self.unified.get(subject_id)

    async def count_active_integrations(self, subject_id):
        self._record("integrations")
        return self.integrations.get(subject_id, 0)

    async def fetch_subscription(self, subject_id):
        self._record("subscription")
        return self.subscriptions.get(subject_id)

    async def has_admin_role(self, user_id):
        self._record("admin_role")
        return user_id in self.admins


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_source():
    """Provide an empty in-memory signal source."""
    return FakeSignalSource()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def collector(fake_source):
    from signals.collector import SignalCollector
    return SignalCollector(fake_source, timeout_seconds=1.0, clock=lambda: FIXED_NOW)


@pytest.fixture
def completion_cache(collector, fake_clock):
    from cache.completion_cache import CompletionStatusCache
    return CompletionStatusCache(
        collector,
        ttl_seconds=300,
        bypass_emails=["demo@clarity.example"],
        clock=fake_clock,
    )


@pytest.fixture
def engine():
    from routing.policy import RoutingPolicyEngine
    return RoutingPolicyEngine()


@pytest.fixture
def guard(engine, collector, completion_cache):
    from routing.guard import AccessGuard
    return AccessGuard(engine, collector, completion_cache)


@pytest.fixture
def routing_settings():
    from config.settings import RoutingSettings
    return RoutingSettings(
        environment="test",
        session_secret_key="test-session-secret",
        completion_bypass_emails=["demo@clarity.example"],
    )


@pytest.fixture
def app(routing_settings, fake_source):
    """Application wired to the in-memory signal source."""
    from web.app import create_app
    return create_app(settings=routing_settings, source=fake_source)
