"""Configuration package for the SaaS assistant."""

from saas_assistant.config.settings import (
    Settings,
    get_settings,
    load_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "load_settings",
]
