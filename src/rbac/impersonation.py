"""
Admin Impersonation Overlay.

Resolves the *effective* identity of a request: the authenticated caller,
or the user an admin is currently viewing as.

Security considerations:
- The overlay never grants privilege. Whoever calls start() must already
  have verified that the caller holds the admin role.
- The session lives in the browsing-session scope only; it is never
  written to durable storage.
- Server-side effectful operations must re-check admin privilege and never
  trust this structure alone.
- This module is the only place that parses the stored session. Reading
  the authenticated identity directly bypasses impersonation.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from routing.errors import InvalidImpersonationState
from routing.models import Routes

from .context import AuthContext

logger = logging.getLogger(__name__)

DEFAULT_SESSION_KEY = "admin_impersonation"


# =============================================================================
# SESSION MODEL
# =============================================================================


class ImpersonationSession(BaseModel):
    """Client-held delegation record created when an admin starts impersonation."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    original_identity: str = Field(..., min_length=1, description="Admin who started the session")
    effective_identity: str = Field(..., min_length=1, description="User being viewed as")
    effective_display_name: str = Field("", description="Shown in the advisory banner")
    effective_email: str = Field("", description="Shown in the advisory banner")
    original_email: Optional[str] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ImpersonationBanner:
    """Descriptor for the persistent 'viewing as' chrome element."""
    effective_display_name: str
    effective_email: str
    exit_path: str = Routes.ADMIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "effective_display_name": self.effective_display_name,
            "effective_email": self.effective_email,
            "exit_path": self.exit_path,
        }


@dataclass(frozen=True)
class EffectiveIdentity:
    """Whose data the rest of the request reads and writes."""
    effective_id: Optional[str]
    effective_email: Optional[str]
    is_impersonating: bool
    display: Optional[ImpersonationBanner] = None


# =============================================================================
# OVERLAY
# =============================================================================


class ImpersonationOverlay:
    """
    Stores and surfaces the impersonation mapping for one browsing session.

    Usage:
        overlay = ImpersonationOverlay(request.session)
        effective = overlay.resolve_effective_identity(auth_ctx)
        snapshot = await collector.snapshot(effective.effective_id, caller_id=auth_ctx.user_id)
    """

    def __init__(
        self,
        session: MutableMapping[str, Any],
        session_key: str = DEFAULT_SESSION_KEY,
        exit_path: str = Routes.ADMIN,
    ):
        """
        Args:
            session: Browsing-session scoped storage (e.g. request.session).
            session_key: Key the mapping is stored under.
            exit_path: Where the admin lands after exit.
        """
        self._session = session
        self._key = session_key
        self._exit_path = exit_path

    @property
    def exit_path(self) -> str:
        return self._exit_path

    def start(self, impersonation: ImpersonationSession) -> None:
        """
        Store an already-authorized impersonation mapping.

        Replaces any session already active in this browsing session.
        """
        self._session[self._key] = impersonation.model_dump(mode="json")
        logger.info(
            f"Impersonation started: {impersonation.original_identity} viewing as "
            f"{impersonation.effective_identity}",
            extra={
                "admin_id": impersonation.original_identity,
                "target_user_id": impersonation.effective_identity,
            },
        )

    def _discard(self, error: InvalidImpersonationState) -> None:
        logger.warning(f"{error}; discarding impersonation session")
        self._session.pop(self._key, None)

    def current(self, authenticated: Optional[AuthContext] = None) -> Optional[ImpersonationSession]:
        """
        Load the active session, if any. Never raises.

        A malformed record, or one started by a different caller than
        `authenticated`, is discarded.
        """
        raw = self._session.get(self._key)
        if raw is None:
            return None

        try:
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            if not isinstance(data, dict):
                raise TypeError(f"expected an object, got {type(data).__name__}")
            impersonation = ImpersonationSession.model_validate(data)
        except (ValueError, TypeError, ValidationError) as e:
            self._discard(InvalidImpersonationState(f"Malformed impersonation session: {e}"))
            return None

        if (
            authenticated is not None
            and authenticated.is_authenticated
            and authenticated.user_id != impersonation.original_identity
        ):
            self._discard(InvalidImpersonationState(
                "Impersonation session belongs to another caller",
                subject_id=authenticated.user_id,
            ))
            return None

        return impersonation

    def resolve_effective_identity(self, authenticated: AuthContext) -> EffectiveIdentity:
        """
        Resolve the subject for the rest of the request. Never raises.

        Anonymous callers never impersonate.
        """
        if not authenticated.is_authenticated:
            return EffectiveIdentity(effective_id=None, effective_email=None, is_impersonating=False)

        impersonation = self.current(authenticated)
        if impersonation is None:
            return EffectiveIdentity(
                effective_id=authenticated.user_id,
                effective_email=authenticated.email,
                is_impersonating=False,
            )

        return EffectiveIdentity(
            effective_id=impersonation.effective_identity,
            effective_email=impersonation.effective_email or None,
            is_impersonating=True,
            display=self._banner_for(impersonation),
        )

    def _banner_for(self, impersonation: ImpersonationSession) -> ImpersonationBanner:
        return ImpersonationBanner(
            effective_display_name=impersonation.effective_display_name or impersonation.effective_identity,
            effective_email=impersonation.effective_email,
            exit_path=self._exit_path,
        )

    def banner(self, authenticated: Optional[AuthContext] = None) -> Optional[ImpersonationBanner]:
        """The advisory banner descriptor, or None when not impersonating."""
        impersonation = self.current(authenticated)
        return self._banner_for(impersonation) if impersonation else None

    def exit(self) -> bool:
        """
        Leave impersonation. Idempotent.

        Returns:
            True if a session was active and has been cleared
        """
        raw = self._session.pop(self._key, None)
        if raw is None:
            return False
        logger.info("Impersonation ended")
        return True


__all__ = [
    "DEFAULT_SESSION_KEY",
    "ImpersonationSession",
    "ImpersonationBanner",
    "EffectiveIdentity",
    "ImpersonationOverlay",
]
