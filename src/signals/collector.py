"""
Signal Collector

Fetches the raw state signals for a subject and folds them into a
UserStateSnapshot. Pure data gathering: no routing policy lives here.

Fetches run concurrently and are not transactionally consistent with each
other. A failed or slow signal is replaced by its fail-safe default, so a
snapshot is always produced. Nothing is retried here; retry policy belongs
to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from routing.errors import SignalFetchError
from routing.models import (
    DEFAULT_CHAOS_SCORE,
    DEFAULT_COMPLETENESS,
    DEFAULT_TRIAL_DAYS,
    OnboardingStep,
    SetupPreference,
    SubscriptionStatus,
    UserStateSnapshot,
    clamp_score,
)

logger = logging.getLogger(__name__)

_FAILED = object()

# Billing-provider spellings seen in subscription records
_STATUS_ALIASES = {
    "trialing": SubscriptionStatus.TRIAL,
    "canceled": SubscriptionStatus.EXPIRED,
    "cancelled": SubscriptionStatus.EXPIRED,
    "inactive": SubscriptionStatus.NONE,
}


class SignalSource(ABC):
    """
    Read-only access to the records the routing core consumes.

    Implementations return None when a record does not exist and raise
    on transport or query failure.
    """

    @abstractmethod
    async def fetch_profile(self, subject_id: str) -> Optional[Dict[str, Any]]:
        """Profile record: onboarding_step, setup_preference, chaos_score, ..."""

    @abstractmethod
    async def fetch_unified_profile(self, subject_id: str) -> Optional[Dict[str, Any]]:
        """Unified business profile record: profile_completeness."""

    @abstractmethod
    async def count_active_integrations(self, subject_id: str) -> int:
        """Number of integration rows with is_active = true."""

    @abstractmethod
    async def fetch_subscription(self, subject_id: str) -> Optional[Dict[str, Any]]:
        """Subscription record: subscription_status, trial_end_date."""

    @abstractmethod
    async def has_admin_role(self, user_id: str) -> bool:
        """Admin role membership of an authenticated caller."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def trial_days_remaining(trial_end: Any, now: datetime) -> int:
    """
    Whole days left in a trial, rounded up; negative once it has ended.

    A missing end date counts as zero days left.
    """
    end = _parse_datetime(trial_end)
    if end is None:
        return DEFAULT_TRIAL_DAYS
    seconds = (end - now).total_seconds()
    return math.ceil(seconds / 86400)


def normalize_subscription_status(raw: Any, days_remaining: int) -> SubscriptionStatus:
    """Map a stored status to the engine's enum; a lapsed trial is expired."""
    value = str(raw).strip().lower() if raw is not None else ""
    status = _STATUS_ALIASES.get(value) or SubscriptionStatus.normalize(value)
    if status == SubscriptionStatus.TRIAL and days_remaining <= 0:
        return SubscriptionStatus.EXPIRED
    return status


class SignalCollector:
    """
    Aggregates state signals for a subject identity.

    Usage:
        collector = SignalCollector(SignalRepository(session))
        snapshot = await collector.snapshot(effective_id, caller_id=auth_user_id)
    """

    def __init__(
        self,
        source: SignalSource,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            source: Where records are read from.
            timeout_seconds: Per-signal deadline; None disables it.
            clock: Returns the current UTC time (for trial arithmetic).
        """
        self._source = source
        self._timeout = timeout_seconds
        self._clock = clock

    @property
    def source(self) -> SignalSource:
        return self._source

    async def _fetch(
        self,
        signal: str,
        subject_id: str,
        call: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Run one fetch; on failure log it and return the _FAILED marker."""
        try:
            if self._timeout is None:
                return await call()
            return await asyncio.wait_for(call(), timeout=self._timeout)
        except Exception as e:
            error = SignalFetchError(signal, subject_id, e)
            logger.warning(
                f"{error}; using fail-safe default",
                extra={"subject_id": subject_id, "signal": signal},
            )
            return _FAILED

    async def fetch_profile(self, subject_id: str) -> Dict[str, Any]:
        """
        Fetch the raw profile record.

        Unlike snapshot(), failures are not masked.

        Raises:
            SignalFetchError: If the profile could not be read.
        """
        try:
            call = self._source.fetch_profile(subject_id)
            if self._timeout is not None:
                record = await asyncio.wait_for(call, timeout=self._timeout)
            else:
                record = await call
        except Exception as e:
            raise SignalFetchError("profile", subject_id, e) from e
        return record or {}

    async def snapshot(self, subject_id: str, caller_id: Optional[str] = None) -> UserStateSnapshot:
        """
        Build a snapshot for a subject. Never raises for a signal failure.

        Args:
            subject_id: Effective identity the decision is made for.
            caller_id: Authenticated caller; when given, their admin role
                is checked (the subject's role is never consulted).
        """
        fetches = [
            self._fetch("profile", subject_id, lambda: self._source.fetch_profile(subject_id)),
            self._fetch("unified_profile", subject_id, lambda: self._source.fetch_unified_profile(subject_id)),
            self._fetch("integrations", subject_id, lambda: self._source.count_active_integrations(subject_id)),
            self._fetch("subscription", subject_id, lambda: self._source.fetch_subscription(subject_id)),
        ]
        if caller_id is not None:
            fetches.append(self._fetch("admin_role", subject_id, lambda: self._source.has_admin_role(caller_id)))

        results = await asyncio.gather(*fetches)
        profile, unified, integrations, subscription = results[:4]
        admin = results[4] if caller_id is not None else False

        profile = {} if profile is _FAILED or profile is None else profile
        unified = {} if unified is _FAILED or unified is None else unified
        subscription = {} if subscription is _FAILED or subscription is None else subscription

        days = DEFAULT_TRIAL_DAYS
        status = SubscriptionStatus.NONE
        if subscription:
            try:
                days = trial_days_remaining(subscription.get("trial_end_date"), self._clock())
            except (TypeError, ValueError) as e:
                logger.warning(
                    f"{SignalFetchError('trial_end_date', subject_id, e)}; using fail-safe default",
                    extra={"subject_id": subject_id},
                )
            status = normalize_subscription_status(subscription.get("subscription_status"), days)

        has_integrations = False
        if integrations is not _FAILED and integrations is not None:
            try:
                has_integrations = int(integrations) > 0
            except (TypeError, ValueError) as e:
                logger.warning(
                    f"{SignalFetchError('integrations', subject_id, e)}; using fail-safe default",
                    extra={"subject_id": subject_id},
                )

        return UserStateSnapshot(
            subject_id=subject_id,
            profile_completeness=clamp_score(unified.get("profile_completeness"), DEFAULT_COMPLETENESS),
            onboarding_step=OnboardingStep.normalize(profile.get("onboarding_step")),
            setup_preference=SetupPreference.normalize(profile.get("setup_preference")),
            chaos_score=clamp_score(profile.get("chaos_score"), DEFAULT_CHAOS_SCORE),
            has_active_integrations=has_integrations,
            subscription_status=status,
            trial_days_remaining=days,
            is_admin_caller=admin is True,
        )


__all__ = [
    "SignalSource",
    "SignalCollector",
    "trial_days_remaining",
    "normalize_subscription_status",
]
