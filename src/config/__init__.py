"""Configuration module for the routing policy service."""

from .database import DatabaseSettings, get_database_settings
from .settings import RoutingSettings, get_settings

__all__ = [
    "DatabaseSettings",
    "get_database_settings",
    "RoutingSettings",
    "get_settings",
]
