"""Configuration management for service-flow.

This module provides centralized configuration loaded from environment variables
with validation using Pydantic BaseSettings.

Usage:
    >>> from service_flow.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.break_on_error)
"""

from service_flow.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
