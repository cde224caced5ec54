"""Application settings using Pydantic Settings.

Centralized configuration for the routing policy service.

All values can be overridden via environment variables with the
ROUTING_ prefix (e.g. ROUTING_COMPLETION_CACHE_TTL_SECONDS=120).
"""

import logging
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


DEFAULT_PREMIUM_FEATURES = [
    "clarity_lens",
    "advanced_ai",
    "unlimited_contacts",
    "custom_integrations",
    "white_label",
    "api_access",
]


class RoutingSettings(BaseSettings):
    """Routing engine, cache, impersonation and paywall configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application info
    name: str = Field(default="Routing Policy Service", description="Application name")
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Root log level")

    # Completion cache
    completion_cache_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Time-to-live of a cached onboarding completion result (5 min)"
    )
    completion_bypass_emails: List[str] = Field(
        default=["demo@clarity.example"],
        description="Demo/test accounts that always count as onboarded"
    )

    # Signal collection
    signal_fetch_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Per-signal fetch timeout before the fail-safe default is used"
    )

    # Paywall
    trial_advisory_days: int = Field(default=7, ge=0, description="Show trial banner at or below this many days")
    trial_urgent_days: int = Field(default=3, ge=0, description="Trial banner becomes urgent at or below this")
    premium_features: List[str] = Field(
        default=DEFAULT_PREMIUM_FEATURES,
        description="Features that require an active subscription or unexpired trial"
    )

    # Impersonation
    impersonation_session_key: str = Field(
        default="admin_impersonation",
        description="Browsing-session key holding the impersonation mapping"
    )
    impersonation_exit_path: str = Field(
        default="/admin",
        description="Where the admin lands after leaving impersonation"
    )

    # Sessions
    # CRITICAL: Must be set via ROUTING_SESSION_SECRET_KEY in production
    session_secret_key: str = Field(
        default="change-me-in-production-INSECURE",
        description="Signing key for the browser session cookie"
    )

    @field_validator("completion_bypass_emails")
    @classmethod
    def _normalize_emails(cls, value: List[str]) -> List[str]:
        return [email.strip().lower() for email in value if email and email.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment in ("production", "prod", "staging")


@lru_cache
def get_settings() -> RoutingSettings:
    """
    Get cached application settings instance.

    Returns:
        RoutingSettings: Cached settings loaded from environment.
    """
    settings = RoutingSettings()
    if settings.is_production and "INSECURE" in settings.session_secret_key:
        logger.critical("ROUTING_SESSION_SECRET_KEY is not set in production")
    return settings
