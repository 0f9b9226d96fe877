"""Configuration package."""

from housesplit.config.settings import (
    EngineSettings,
    HouseholdSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "EngineSettings",
    "HouseholdSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
