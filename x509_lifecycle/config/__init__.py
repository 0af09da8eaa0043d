"""Configuration and settings."""

from x509_lifecycle.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
