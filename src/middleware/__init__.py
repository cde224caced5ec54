"""Middleware components for the routing service.

Provides:
- Request correlation ID tracking
- Routing-subject logging context
"""

from .correlation import (
    CorrelationIdFilter,
    CorrelationIdMiddleware,
    configure_correlation_logging,
    get_correlation_id,
    get_subject_id,
    subject_context,
)

__all__ = [
    "CorrelationIdFilter",
    "CorrelationIdMiddleware",
    "configure_correlation_logging",
    "get_correlation_id",
    "get_subject_id",
    "subject_context",
]
