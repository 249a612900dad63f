# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Classroom roster service.

Keeps teacher-owned student records consistent with the per-grade
membership index: bulk import reconciliation, cascading deletes and
student count maintenance.
"""

__version__ = "0.1.0"
