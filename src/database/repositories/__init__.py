"""Repository implementations for the routing core."""

from .signal_repository import ADMIN_ROLE, SignalRepository

__all__ = [
    "ADMIN_ROLE",
    "SignalRepository",
]
