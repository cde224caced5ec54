"""
Database layer for the routing core.

This module provides:
- ORM models for the read-only records the core classifies users by
- Async database engine and session factory
- The SQL-backed signal repository
"""

from .models import (
    Base,
    IntegrationRecord,
    ProfileRecord,
    SubscriptionRecord,
    UnifiedBusinessProfileRecord,
    UserRoleRecord,
)
from .async_engine import (
    close_database,
    get_async_engine,
    get_async_session_factory,
    init_database,
)
from .repositories import SignalRepository

__all__ = [
    "Base",
    "ProfileRecord",
    "UnifiedBusinessProfileRecord",
    "IntegrationRecord",
    "SubscriptionRecord",
    "UserRoleRecord",
    "get_async_engine",
    "get_async_session_factory",
    "init_database",
    "close_database",
    "SignalRepository",
]
