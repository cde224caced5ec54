"""
SQLAlchemy ORM Models for the records the routing core reads.

The hosted data platform owns these tables; the core only ever reads them.
The models exist so that development and test databases (SQLite) can be
created with the same shape.

Architecture:
- Keyed by user_id (the subject identity)
- profile_completeness and chaos_score are 0-100 integers
- Enumerations are stored as plain strings and normalized on read
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ProfileRecord(Base):
    """Per-user profile: onboarding progress, setup preference, chaos score."""
    __tablename__ = "profiles"

    user_id = Column(String(64), primary_key=True)
    onboarding_step = Column(String(32), nullable=True)
    setup_preference = Column(String(32), nullable=True)
    chaos_score = Column(Integer, nullable=True)

    # Fields the onboarding completion check looks at
    business_name = Column(String(255), nullable=True)
    industry = Column(String(128), nullable=True)
    phone = Column(String(64), nullable=True)
    quiz_completed_at = Column(DateTime, nullable=True)


class UnifiedBusinessProfileRecord(Base):
    """Aggregated business profile; carries the completeness score."""
    __tablename__ = "unified_business_profiles"

    user_id = Column(String(64), primary_key=True)
    profile_completeness = Column(Integer, nullable=True)
    last_updated = Column(DateTime, default=datetime.utcnow)


class IntegrationRecord(Base):
    """Connected third-party integration."""
    __tablename__ = "integrations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    provider = Column(String(64), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class SubscriptionRecord(Base):
    """Billing state as mirrored from the payment provider."""
    __tablename__ = "subscriptions"

    user_id = Column(String(64), primary_key=True)
    subscription_status = Column(String(32), nullable=True)
    trial_end_date = Column(DateTime, nullable=True)


class UserRoleRecord(Base):
    """Role membership (e.g. admin) of a user."""
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    role = Column(String(32), nullable=False)


__all__ = [
    "Base",
    "ProfileRecord",
    "UnifiedBusinessProfileRecord",
    "IntegrationRecord",
    "SubscriptionRecord",
    "UserRoleRecord",
]
