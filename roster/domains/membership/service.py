# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Membership service for the per-grade membership index.

This module provides the MembershipService class for:
- Idempotent add and remove of grade memberships
- Listing memberships, raw or filtered against live students
- Locating every membership of one student across grades
- Sweeping orphaned memberships

Each membership document is keyed by the student id inside its grade's
``members`` sub-collection, so a student appears at most once per grade.
"""

from __future__ import annotations

import logging
from typing import Collection

from roster.domains.collections import MEMBERS, members_path
from roster.domains.errors import RosterError
from roster.domains.grade.service import GradeService
from roster.infrastructure.documents import (
    DocumentSnapshot,
    DocumentStore,
    StoreUnavailableError,
    WriteBatch,
)
from roster.models.membership import Membership

logger = logging.getLogger(__name__)


class MembershipService:
    """Service for grade memberships and their cached counts.

    Count maintenance is best effort: a failed counter write is logged and
    the membership change still stands. The recomputed count over valid
    memberships is the source of truth.

    Attributes:
        store: Document store.
        grades: Grade service used for count maintenance.
    """

    def __init__(self, store: DocumentStore, grades: GradeService) -> None:
        """Initialize membership service.

        Args:
            store: Document store holding the membership sub-collections.
            grades: Grade service owning the cached counts.
        """
        self.store = store
        self.grades = grades

    async def add(self, grade_id: str, student_id: str, name: str) -> bool:
        """Add a student to a grade.

        Args:
            grade_id: Target grade.
            student_id: Student to add.
            name: Student display name cached on the membership.

        Returns:
            True if a membership was created, False if it already existed.
        """
        path = members_path(grade_id)
        if await self.store.get(path, student_id) is not None:
            logger.debug("Membership exists: grade=%s, student=%s", grade_id, student_id)
            return False

        await self.store.set(
            path,
            student_id,
            {"studentId": student_id, "gradeId": grade_id, "name": name},
        )
        await self._adjust_count(grade_id, 1)

        logger.info("Added membership: grade=%s, student=%s", grade_id, student_id)
        return True

    async def remove(self, grade_id: str, student_id: str) -> bool:
        """Remove a student from a grade.

        Removing an absent membership is a no-op and leaves the count alone.

        Returns:
            True if a membership was deleted.
        """
        path = members_path(grade_id)
        if await self.store.get(path, student_id) is None:
            return False

        await self.store.delete(path, student_id)
        await self._adjust_count(grade_id, -1)

        logger.info("Removed membership: grade=%s, student=%s", grade_id, student_id)
        return True

    async def list(self, grade_id: str) -> list[Membership]:
        """List a grade's memberships ordered by cached name."""
        snapshots = await self.store.query(members_path(grade_id)).order_by("name").get()
        return [self._to_membership(snapshot) for snapshot in snapshots]

    async def exists(self, grade_id: str, student_id: str) -> bool:
        return await self.store.get(members_path(grade_id), student_id) is not None

    async def list_valid(self, grade_id: str, live_student_ids: Collection[str]) -> list[Membership]:
        """List memberships whose student still exists."""
        return [m for m in await self.list(grade_id) if m.student_id in live_student_ids]

    async def find_by_student(self, student_id: str) -> list[Membership]:
        """Find every membership of a student across all grades."""
        snapshots = await (
            self.store.collection_group(MEMBERS).where("studentId", student_id).get()
        )
        return [self._to_membership(snapshot) for snapshot in snapshots]

    async def sweep_stale(self, grade_id: str, live_student_ids: Collection[str]) -> int:
        """Delete memberships of students that no longer exist.

        The cached count is reset to the number of remaining memberships.

        Returns:
            Number of memberships deleted.
        """
        memberships = await self.list(grade_id)
        stale = [m for m in memberships if m.student_id not in live_student_ids]

        if stale:
            batch = self.store.batch()
            for membership in stale:
                batch.delete(members_path(grade_id), membership.student_id)
            await batch.commit()
            logger.info("Swept %d stale memberships from grade=%s", len(stale), grade_id)

        try:
            await self.grades.set_student_count(grade_id, len(memberships) - len(stale))
        except (RosterError, StoreUnavailableError) as e:
            logger.warning("Failed to reset student count for grade=%s: %s", grade_id, e)

        return len(stale)

    async def stage_clear(self, batch: WriteBatch, grade_id: str) -> int:
        """Add deletes for every membership of a grade to a batch.

        Returns:
            Number of memberships staged for deletion.
        """
        path = members_path(grade_id)
        snapshots = await self.store.query(path).get()
        for snapshot in snapshots:
            batch.delete(path, snapshot.id)
        return len(snapshots)

    async def _adjust_count(self, grade_id: str, delta: int) -> None:
        try:
            await self.grades.adjust_student_count(grade_id, delta)
        except (RosterError, StoreUnavailableError) as e:
            logger.warning(
                "Failed to adjust student count for grade=%s by %d: %s",
                grade_id,
                delta,
                e,
            )

    @staticmethod
    def _to_membership(snapshot: DocumentSnapshot) -> Membership:
        return Membership(
            grade_id=snapshot.get("gradeId") or snapshot.parent_id or "",
            student_id=snapshot.get("studentId") or snapshot.id,
            name=snapshot.get("name") or "",
            added_at=snapshot.create_time,
        )
