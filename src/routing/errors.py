"""
Routing core error taxonomy.

None of these escape the component that raises them. Each one is logged
and replaced by a fallback value at its component boundary.
"""

from typing import Optional


class RoutingCoreError(Exception):
    """Base class for recoverable routing-core failures."""

    def __init__(self, message: str, subject_id: Optional[str] = None):
        super().__init__(message)
        self.subject_id = subject_id


class SignalFetchError(RoutingCoreError):
    """A single state signal could not be fetched."""

    def __init__(
        self,
        signal: str,
        subject_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        detail = f"{type(cause).__name__}: {cause}" if cause else "no detail"
        super().__init__(f"Signal '{signal}' failed ({detail})", subject_id)
        self.signal = signal
        self.cause = cause


class CompletionComputeError(RoutingCoreError):
    """The authoritative onboarding-completion check failed."""


class InvalidImpersonationState(RoutingCoreError):
    """The stored impersonation session is missing fields or malformed."""


__all__ = [
    "RoutingCoreError",
    "SignalFetchError",
    "CompletionComputeError",
    "InvalidImpersonationState",
]
