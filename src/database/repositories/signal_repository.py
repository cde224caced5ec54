"""Signal Repository Implementation.

Read-only access to the records the routing core classifies users by:
- profiles (onboarding step, setup preference, chaos score)
- unified_business_profiles (profile completeness)
- integrations (active count)
- subscriptions (status, trial end)
- user_roles (admin membership of the caller)

Query failures propagate; SignalCollector turns them into fail-safe
defaults.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from signals.collector import SignalSource

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class SignalRepository(SignalSource):
    """
    SQLAlchemy-backed SignalSource.

    The collector fans out concurrently and an AsyncSession does not
    allow concurrent statements, so every read opens its own short-lived
    session from the factory.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize repository with a session factory.

        Args:
            session_factory: Factory for SQLAlchemy async sessions.
        """
        self._session_factory = session_factory

    async def _first(self, query: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._session_factory() as session:
            result = await session.execute(text(query), params)
            row = result.mappings().first()
        return dict(row) if row is not None else None

    async def fetch_profile(self, subject_id: str) -> Optional[Dict[str, Any]]:
        return await self._first(
            """
            SELECT onboarding_step, setup_preference, chaos_score,
                   business_name, industry, phone, quiz_completed_at
            FROM profiles WHERE user_id = :user_id
            """,
            {"user_id": subject_id},
        )

    async def fetch_unified_profile(self, subject_id: str) -> Optional[Dict[str, Any]]:
        return await self._first(
            "SELECT profile_completeness FROM unified_business_profiles WHERE user_id = :user_id",
            {"user_id": subject_id},
        )

    async def count_active_integrations(self, subject_id: str) -> int:
        row = await self._first(
            "SELECT COUNT(*) AS active FROM integrations WHERE user_id = :user_id AND is_active = :active",
            {"user_id": subject_id, "active": True},
        )
        return int(row["active"] or 0) if row else 0

    async def fetch_subscription(self, subject_id: str) -> Optional[Dict[str, Any]]:
        return await self._first(
            "SELECT subscription_status, trial_end_date FROM subscriptions WHERE user_id = :user_id",
            {"user_id": subject_id},
        )

    async def has_admin_role(self, user_id: str) -> bool:
        row = await self._first(
            "SELECT 1 AS found FROM user_roles WHERE user_id = :user_id AND role = :role LIMIT 1",
            {"user_id": user_id, "role": ADMIN_ROLE},
        )
        return row is not None


__all__ = ["ADMIN_ROLE", "SignalRepository"]
