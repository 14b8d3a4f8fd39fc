# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for the assistant control plane.

Settings are Pydantic-based and loaded from environment variables,
one subsettings class per concern with its own prefix.

Example:
    >>> from src.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.voice.chunk_interval_ms)
    250
"""

from src.core.config.settings import (
    APISettings,
    AssistantSettings,
    CORSSettings,
    DatabaseSettings,
    LLMSettings,
    QuotaSettings,
    RedisSettings,
    Settings,
    VoiceSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "DatabaseSettings",
    "RedisSettings",
    "LLMSettings",
    "QuotaSettings",
    "VoiceSettings",
    "AssistantSettings",
    "CORSSettings",
    "APISettings",
]
