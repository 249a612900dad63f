# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document table model.

Every collection and sub-collection shares one table. A row is addressed
by its collection path (``students``, ``classGrades/<id>/members``) and
its document id. The document body is stored as JSON; server timestamps
live in their own columns so they can be ordered on.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from roster.infrastructure.database.models.base import Base
from roster.utils.datetime import utc_now


class DocumentRecord(Base):
    """A single document in a collection."""

    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_path_created_at", "path", "created_at"),
    )

    path: Mapped[str] = mapped_column(String(512), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    def __repr__(self) -> str:
        return f"<DocumentRecord {self.path}/{self.id}>"
