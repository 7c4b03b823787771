"""
Configuration Management.

Centralized configuration using Pydantic Settings.

Configuration sources (in order of precedence):
1. Environment variables
2. .env file
3. Default values

All sensitive values (API keys, passwords) are loaded from environment
variables and never committed to source control.

Example:
    from mempipe.config import get_settings

    settings = get_settings()
    threshold = settings.significance_threshold
"""

from mempipe.config.settings import DEFAULT_CATEGORIES, Settings, get_settings

__all__ = [
    "DEFAULT_CATEGORIES",
    "Settings",
    "get_settings",
]
