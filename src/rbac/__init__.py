"""
Caller identity and admin impersonation.

Usage:
    from rbac import AuthContext, ImpersonationOverlay

    overlay = ImpersonationOverlay(request.session)
    effective = overlay.resolve_effective_identity(ctx)
"""

from .context import AuthContext
from .impersonation import (
    DEFAULT_SESSION_KEY,
    EffectiveIdentity,
    ImpersonationBanner,
    ImpersonationOverlay,
    ImpersonationSession,
)

__all__ = [
    "AuthContext",
    "DEFAULT_SESSION_KEY",
    "EffectiveIdentity",
    "ImpersonationBanner",
    "ImpersonationOverlay",
    "ImpersonationSession",
]
