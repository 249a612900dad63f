# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Roster business domains.

- student: canonical student records
- grade: class cohorts with cached counts
- membership: per-grade membership index
- reconciliation: cross-entity consistency (import, cascade, recount)
"""
