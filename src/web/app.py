"""
FastAPI application for the routing policy service.

Routes:
- POST /api/routing/decide                 : evaluate a navigation
- GET  /api/routing/best-route             : recommended landing screen
- POST /api/routing/impersonation/start    : admin starts "viewing as"
- POST /api/routing/impersonation/exit     : leave impersonation
- GET  /api/routing/paywall/{feature}      : premium feature access
- POST /api/routing/completion/invalidate  : drop cached completion
- POST /api/routing/logout                 : clear per-user routing state
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from cache.completion_cache import CompletionStatusCache
from config.settings import RoutingSettings, get_settings
from database.async_engine import close_database, get_async_session_factory, init_database
from database.repositories.signal_repository import SignalRepository
from middleware.correlation import CorrelationIdMiddleware, configure_correlation_logging
from routing.guard import AccessGuard
from routing.policy import RoutingPolicyEngine
from signals.collector import SignalCollector, SignalSource
from subscription.paywall import PaywallGate
from web.routers.routing_api import router as routing_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[RoutingSettings] = None,
    source: Optional[SignalSource] = None,
) -> FastAPI:
    """
    Build the application and its routing services.

    Args:
        settings: Routing settings; loaded from the environment when None.
        source: Where state signals are read from; defaults to the SQL
            repository on the configured database.

    Returns:
        FastAPI: Configured application.
    """
    settings = settings or get_settings()
    configure_correlation_logging(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    owns_database = source is None
    if owns_database:
        source = SignalRepository(get_async_session_factory())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_database:
            await init_database()
        logger.info(f"{settings.name} started ({settings.environment})")
        yield
        if owns_database:
            await close_database()

    app = FastAPI(title=settings.name, lifespan=lifespan)

    # =========================================================================
    # ROUTING SERVICES
    # =========================================================================
    # One explicitly owned instance of each; nothing is a module singleton.
    collector = SignalCollector(source, timeout_seconds=settings.signal_fetch_timeout_seconds)
    completion_cache = CompletionStatusCache(
        collector,
        ttl_seconds=settings.completion_cache_ttl_seconds,
        bypass_emails=settings.completion_bypass_emails,
    )
    app.state.settings = settings
    app.state.signal_collector = collector
    app.state.completion_cache = completion_cache
    app.state.access_guard = AccessGuard(RoutingPolicyEngine(), collector, completion_cache)
    app.state.paywall_gate = PaywallGate(
        settings.premium_features,
        advisory_days=settings.trial_advisory_days,
        urgent_days=settings.trial_urgent_days,
    )

    # =========================================================================
    # MIDDLEWARE (last added = first executed)
    # =========================================================================
    # Browsing-session scope for the impersonation overlay
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret_key,
        same_site="lax",
        https_only=settings.is_production,
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(routing_router)
    return app
