"""
Authentication Context

AuthContext describes the *authenticated caller* of a request, as resolved
by the external auth layer. It is not the subject of routing decisions:
code that needs "the current user" must go through
ImpersonationOverlay.resolve_effective_identity().
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AuthContext:
    """
    Authentication state for the current request.

    Usage:
        ctx = AuthContext.authenticated("user-1", "owner@acme.test", "Ada")
        effective = overlay.resolve_effective_identity(ctx)
    """

    user_id: Optional[str] = None
    """Unique identifier for the caller (None when anonymous)."""

    email: Optional[str] = None

    name: str = ""

    is_authenticated: bool = False

    loading: bool = False
    """True while the auth provider has not yet resolved the session."""

    @classmethod
    def anonymous(cls) -> "AuthContext":
        """Create an anonymous (unauthenticated) context."""
        return cls(name="Anonymous")

    @classmethod
    def pending(cls) -> "AuthContext":
        """Auth resolution still in flight."""
        return cls(name="Anonymous", loading=True)

    @classmethod
    def authenticated(cls, user_id: str, email: Optional[str] = None, name: str = "") -> "AuthContext":
        return cls(user_id=user_id, email=email, name=name, is_authenticated=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "name": self.name,
            "is_authenticated": self.is_authenticated,
        }
