"""
Configuration module for spacecal backend.

Provides centralized configuration for:
- Application timezone (occurrence date keys)
- Expansion window ceiling
- Upcoming summary look-ahead
"""

from backend.src.config.settings import AppSettings, get_settings

__all__ = [
    "AppSettings",
    "get_settings",
]
