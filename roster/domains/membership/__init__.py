# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Membership domain package.

This package provides the per-grade membership index:
- Idempotent add/remove with best-effort count maintenance
- Valid-membership listing and stale sweeping
"""

from roster.domains.membership.service import MembershipService

__all__ = [
    "MembershipService",
]
