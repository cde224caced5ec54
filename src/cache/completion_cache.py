"""
Onboarding Completion Cache

Memoizes the expensive "has this subject finished onboarding" check.

Provides:
1. Per-subject entries with a time-to-live (5 min by default)
2. An allow-list of demo/test accounts that always count as complete
3. Explicit invalidation (one subject, or everything on logout/reset)
4. Fail-closed computation: errors read as incomplete and are not cached

The cache is an explicitly constructed instance with an owner; there is
no module-level singleton.

Usage:
    cache = CompletionStatusCache(collector, ttl_seconds=300,
                                  bypass_emails=["demo@clarity.example"])
    if await cache.is_complete(user_id, email=user_email):
        ...
    cache.invalidate(user_id)      # after a profile update
    cache.clear()                  # on logout
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from routing.errors import CompletionComputeError
from routing.models import OnboardingStep
from signals.collector import SignalCollector

logger = logging.getLogger(__name__)

DEFAULT_COMPLETION_TTL = 300

# Profile fields that together mark onboarding as done
REQUIRED_PROFILE_FIELDS = ("business_name", "industry", "phone", "quiz_completed_at")


def onboarding_verified(profile: Dict[str, Any]) -> bool:
    """
    Authoritative completeness predicate.

    Complete when the profile says so, or when every required field
    has been supplied.
    """
    if OnboardingStep.normalize(profile.get("onboarding_step")) == OnboardingStep.COMPLETED:
        return True
    return all(profile.get(name) for name in REQUIRED_PROFILE_FIELDS)


@dataclass(frozen=True)
class CacheEntry:
    """A computed completion result."""
    subject_id: str
    is_complete: bool
    computed_at: float

    def is_live(self, now: float, ttl_seconds: float) -> bool:
        return (now - self.computed_at) < ttl_seconds


class CompletionStatusCache:
    """
    Thread-safe per-subject completion cache with TTL.

    Concurrent misses for one subject may compute twice; the last
    completed write for a key wins.
    """

    def __init__(
        self,
        collector: SignalCollector,
        ttl_seconds: float = DEFAULT_COMPLETION_TTL,
        bypass_emails: Iterable[str] = (),
        predicate: Callable[[Dict[str, Any]], bool] = onboarding_verified,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache.

        Args:
            collector: Source of the profile record.
            ttl_seconds: Entry lifetime in seconds.
            bypass_emails: Accounts that always evaluate as complete.
            predicate: Decides completeness from a profile record.
            clock: Returns the current time in seconds.
        """
        self._collector = collector
        self._ttl = ttl_seconds
        self._bypass = frozenset(e.strip().lower() for e in bypass_emails if e)
        self._predicate = predicate
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "bypassed": 0,
            "failures": 0,
        }

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def is_bypassed(self, email: Optional[str]) -> bool:
        """Whether an account is on the always-complete allow-list."""
        return bool(email) and email.strip().lower() in self._bypass

    def peek(self, subject_id: str) -> Optional[CacheEntry]:
        """Return the live entry for a subject without computing one."""
        with self._lock:
            entry = self._entries.get(subject_id)
            if entry is None:
                return None
            if not entry.is_live(self._clock(), self._ttl):
                del self._entries[subject_id]
                return None
            return entry

    async def is_complete(self, subject_id: str, email: Optional[str] = None) -> bool:
        """
        Whether the subject has finished onboarding. Never raises.

        Bypass-listed accounts return True without touching the cache
        or storage.
        """
        if self.is_bypassed(email):
            with self._lock:
                self._stats["bypassed"] += 1
            return True

        entry = self.peek(subject_id)
        if entry is not None:
            with self._lock:
                self._stats["hits"] += 1
            return entry.is_complete

        with self._lock:
            self._stats["misses"] += 1

        try:
            profile = await self._collector.fetch_profile(subject_id)
            result = bool(self._predicate(profile))
        except Exception as e:
            error = CompletionComputeError(f"Completion check failed: {e}", subject_id)
            logger.warning(
                f"{error}; treating subject as incomplete",
                extra={"subject_id": subject_id},
            )
            with self._lock:
                self._stats["failures"] += 1
            return False

        with self._lock:
            self._entries[subject_id] = CacheEntry(subject_id, result, self._clock())
        return result

    async def refresh(self, subject_id: str, email: Optional[str] = None) -> bool:
        """Drop any cached result and recompute it."""
        self.invalidate(subject_id)
        return await self.is_complete(subject_id, email=email)

    def invalidate(self, subject_id: Optional[str] = None) -> int:
        """
        Remove one subject's entry, or every entry when no subject is given.

        Returns:
            Number of entries removed
        """
        with self._lock:
            if subject_id is None:
                count = len(self._entries)
                self._entries.clear()
                logger.info(f"Completion cache cleared ({count} entries)")
                return count
            return 1 if self._entries.pop(subject_id, None) is not None else 0

    def clear(self) -> int:
        """Clear all entries (logout or administrative reset)."""
        return self.invalidate()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                **self._stats,
                "size": len(self._entries),
                "ttl_seconds": self._ttl,
            }


__all__ = [
    "DEFAULT_COMPLETION_TTL",
    "REQUIRED_PROFILE_FIELDS",
    "onboarding_verified",
    "CacheEntry",
    "CompletionStatusCache",
]
