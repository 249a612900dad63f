# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for the roster service.

Example:
    >>> from roster.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.imports.link_strategy
    'by_id'
"""

from roster.core.config.settings import (
    APISettings,
    CORSSettings,
    DocumentStoreSettings,
    ImportSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "clear_settings_cache",
    "DocumentStoreSettings",
    "ImportSettings",
    "CORSSettings",
    "APISettings",
]
