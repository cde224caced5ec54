"""
FastAPI Routers.

- routing_api: navigation decisions, impersonation, paywall, completion cache
"""

from .routing_api import router as routing_router

__all__ = [
    "routing_router",
]
