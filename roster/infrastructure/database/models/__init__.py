# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models."""

from roster.infrastructure.database.models.base import Base
from roster.infrastructure.database.models.document import DocumentRecord

__all__ = ["Base", "DocumentRecord"]
