"""
Routing Policy API.

Endpoints the single-page client calls on every navigation:
- Decide whether a navigation may proceed (or where to redirect)
- Recommend the landing screen for the current subject
- Start and exit admin impersonation
- Check premium feature access and the trial banner
- Invalidate cached onboarding completion after profile edits
- Clear per-user routing state on logout

Every endpoint routes the *effective* subject: the impersonated user
while an admin is viewing as them, otherwise the authenticated caller.

Requests are independent: the client owns navigation ordering and drops
the result of any /decide call superseded by a newer navigation. In-process
callers pass a NavigationTracker to AccessGuard.check() instead.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from cache.completion_cache import CompletionStatusCache
from config.settings import RoutingSettings
from middleware.correlation import subject_context
from rbac.context import AuthContext
from rbac.impersonation import EffectiveIdentity, ImpersonationOverlay, ImpersonationSession
from routing.guard import AccessGuard
from routing.models import RouteRequirements
from signals.collector import SignalCollector
from subscription.paywall import PaywallGate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/routing",
    tags=["Routing"],
    responses={401: {"description": "Not authenticated"}},
)


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================


class DecideRequest(BaseModel):
    """A navigation the client is about to perform."""
    path: str = Field(..., min_length=1, description="Path being navigated to")
    require_auth: Optional[bool] = Field(None, description="Tighten the route table")
    require_complete: Optional[bool] = Field(None, description="Tighten the route table")
    admin_only: Optional[bool] = Field(None, description="Tighten the route table")


class BestRouteResponse(BaseModel):
    subject_id: str
    best_route: str
    next_best_actions: List[str]
    is_impersonating: bool = False


class ImpersonationStartRequest(BaseModel):
    """Request to view the product as another user."""
    user_id: str = Field(..., min_length=1, description="ID of the user to view as")
    display_name: str = Field("", max_length=255)
    email: str = Field("", max_length=255)


class InvalidateRequest(BaseModel):
    subject_id: Optional[str] = Field(None, description="Defaults to the effective subject")


# =============================================================================
# DEPENDENCIES
# =============================================================================


def get_authenticated_user(request: Request) -> AuthContext:
    """
    Caller identity as resolved by the external auth layer.

    The auth layer stores an AuthContext on request.state.user; its
    absence means an anonymous request.
    """
    user = getattr(request.state, "user", None)
    return user if isinstance(user, AuthContext) else AuthContext.anonymous()


def require_authenticated_user(
    auth: AuthContext = Depends(get_authenticated_user),
) -> AuthContext:
    if not auth.is_authenticated:
        raise HTTPException(status_code=401, detail="Authentication required")
    return auth


def get_routing_settings(request: Request) -> RoutingSettings:
    return request.app.state.settings


def get_access_guard(request: Request) -> AccessGuard:
    return request.app.state.access_guard


def get_signal_collector(request: Request) -> SignalCollector:
    return request.app.state.signal_collector


def get_completion_cache(request: Request) -> CompletionStatusCache:
    return request.app.state.completion_cache


def get_paywall_gate(request: Request) -> PaywallGate:
    return request.app.state.paywall_gate


def get_overlay(
    request: Request,
    settings: RoutingSettings = Depends(get_routing_settings),
) -> ImpersonationOverlay:
    """Impersonation overlay bound to the caller's browsing session."""
    return ImpersonationOverlay(
        request.session,
        session_key=settings.impersonation_session_key,
        exit_path=settings.impersonation_exit_path,
    )


def get_effective_identity(
    auth: AuthContext = Depends(require_authenticated_user),
    overlay: ImpersonationOverlay = Depends(get_overlay),
) -> EffectiveIdentity:
    return overlay.resolve_effective_identity(auth)


# =============================================================================
# NAVIGATION
# =============================================================================


@router.post("/decide")
async def decide_navigation(
    body: DecideRequest,
    auth: AuthContext = Depends(get_authenticated_user),
    overlay: ImpersonationOverlay = Depends(get_overlay),
    guard: AccessGuard = Depends(get_access_guard),
) -> Dict[str, Any]:
    """
    Evaluate one navigation.

    Requirement flags in the body can only add to the route table's
    requirements, never lift them.

    Returns the guard result: final state, verdict, redirect target,
    impersonation banner and ranked next best actions.
    """
    table = guard.route_table.requirements_for(body.path)
    requirements = RouteRequirements(
        require_auth=table.require_auth or bool(body.require_auth),
        require_complete=table.require_complete or bool(body.require_complete),
        admin_only=table.admin_only or bool(body.admin_only),
    )

    effective = overlay.resolve_effective_identity(auth)
    with subject_context(effective.effective_id):
        result = await guard.check(auth, body.path, overlay, requirements=requirements)
    return result.to_dict()


@router.get("/best-route", response_model=BestRouteResponse)
async def get_best_route(
    effective: EffectiveIdentity = Depends(get_effective_identity),
    auth: AuthContext = Depends(require_authenticated_user),
    guard: AccessGuard = Depends(get_access_guard),
    collector: SignalCollector = Depends(get_signal_collector),
) -> BestRouteResponse:
    """Recommended landing screen for the effective subject."""
    with subject_context(effective.effective_id):
        snapshot = await collector.snapshot(effective.effective_id, caller_id=auth.user_id)
    return BestRouteResponse(
        subject_id=snapshot.subject_id,
        best_route=guard.engine.best_route(snapshot),
        next_best_actions=guard.engine.next_best_actions(snapshot),
        is_impersonating=effective.is_impersonating,
    )


# =============================================================================
# IMPERSONATION
# =============================================================================


@router.post("/impersonation/start")
async def start_impersonation(
    body: ImpersonationStartRequest,
    auth: AuthContext = Depends(require_authenticated_user),
    overlay: ImpersonationOverlay = Depends(get_overlay),
    collector: SignalCollector = Depends(get_signal_collector),
) -> Dict[str, Any]:
    """
    Start viewing the product as another user.

    The caller's admin role is re-checked against storage; the overlay
    itself never grants privilege.
    """
    try:
        is_admin = await collector.source.has_admin_role(auth.user_id)
    except Exception as e:
        logger.error(f"Admin role check failed for {auth.user_id}: {e}")
        raise HTTPException(status_code=503, detail="Unable to verify admin role")

    if not is_admin:
        logger.warning(
            f"Non-admin {auth.user_id} attempted impersonation of {body.user_id}",
            extra={"admin_id": auth.user_id, "target_user_id": body.user_id},
        )
        raise HTTPException(status_code=403, detail="Admin role required")

    if body.user_id == auth.user_id:
        raise HTTPException(status_code=400, detail="Cannot impersonate yourself")

    overlay.start(ImpersonationSession(
        original_identity=auth.user_id,
        original_email=auth.email,
        effective_identity=body.user_id,
        effective_display_name=body.display_name,
        effective_email=body.email,
    ))
    banner = overlay.banner(auth)
    return {
        "success": True,
        "effective_user_id": body.user_id,
        "banner": banner.to_dict() if banner else None,
    }


@router.post("/impersonation/exit")
async def exit_impersonation(
    overlay: ImpersonationOverlay = Depends(get_overlay),
) -> Dict[str, Any]:
    """Leave impersonation. Safe to call when none is active."""
    was_active = overlay.exit()
    return {"success": True, "was_impersonating": was_active, "redirect_to": overlay.exit_path}


# =============================================================================
# PAYWALL
# =============================================================================


@router.get("/paywall/{feature}")
async def check_feature_access(
    feature: str,
    effective: EffectiveIdentity = Depends(get_effective_identity),
    auth: AuthContext = Depends(require_authenticated_user),
    collector: SignalCollector = Depends(get_signal_collector),
    paywall: PaywallGate = Depends(get_paywall_gate),
) -> Dict[str, Any]:
    """Whether the effective subject may use a premium feature."""
    with subject_context(effective.effective_id):
        snapshot = await collector.snapshot(effective.effective_id, caller_id=auth.user_id)
    decision = paywall.check_snapshot(snapshot, feature)
    return {
        **decision.to_dict(),
        "subscription_status": snapshot.subscription_status.value,
        "trial_days_remaining": snapshot.trial_days_remaining,
    }


# =============================================================================
# COMPLETION CACHE
# =============================================================================


@router.post("/completion/invalidate")
async def invalidate_completion(
    body: Optional[InvalidateRequest] = None,
    effective: EffectiveIdentity = Depends(get_effective_identity),
    auth: AuthContext = Depends(require_authenticated_user),
    cache: CompletionStatusCache = Depends(get_completion_cache),
    collector: SignalCollector = Depends(get_signal_collector),
) -> Dict[str, Any]:
    """
    Drop the cached completion result after the profile changed.

    Invalidating a subject other than the effective one needs the admin role.
    """
    subject_id = (body.subject_id if body else None) or effective.effective_id

    if subject_id != effective.effective_id:
        try:
            is_admin = await collector.source.has_admin_role(auth.user_id)
        except Exception as e:
            logger.error(f"Admin role check failed for {auth.user_id}: {e}")
            raise HTTPException(status_code=503, detail="Unable to verify admin role")
        if not is_admin:
            raise HTTPException(status_code=403, detail="Admin role required")

    removed = cache.invalidate(subject_id)
    return {"success": True, "subject_id": subject_id, "removed": removed}


@router.post("/logout")
async def logout(
    request: Request,
    auth: AuthContext = Depends(get_authenticated_user),
    overlay: ImpersonationOverlay = Depends(get_overlay),
    cache: CompletionStatusCache = Depends(get_completion_cache),
) -> Dict[str, Any]:
    """Clear the caller's routing state: impersonation and cached completion."""
    effective = overlay.resolve_effective_identity(auth)
    removed = 0
    for subject_id in {auth.user_id, effective.effective_id} - {None}:
        removed += cache.invalidate(subject_id)
    overlay.exit()
    request.session.clear()
    logger.info(f"Routing state cleared for {auth.user_id or 'anonymous'}")
    return {"success": True, "removed": removed}
