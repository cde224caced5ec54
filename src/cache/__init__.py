"""Cache layer for the routing core.

Holds the per-subject onboarding completion cache.
"""

from .completion_cache import (
    CacheEntry,
    CompletionStatusCache,
    DEFAULT_COMPLETION_TTL,
    REQUIRED_PROFILE_FIELDS,
    onboarding_verified,
)

__all__ = [
    "CacheEntry",
    "CompletionStatusCache",
    "DEFAULT_COMPLETION_TTL",
    "REQUIRED_PROFILE_FIELDS",
    "onboarding_verified",
]
