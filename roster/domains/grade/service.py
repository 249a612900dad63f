# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grade service for the class grade directory.

This module provides the GradeService class for:
- Grade CRUD scoped to the owning teacher
- Cached student count maintenance (absolute and atomic delta)
- Seeding a new teacher with the default Grade 1..6 directory

Deleting a grade here does not touch its membership sub-collection; the
reconciliation service decides whether to sweep it.
"""

from __future__ import annotations

import logging
from typing import Any

from roster.domains.collections import CLASS_GRADES
from roster.domains.errors import GradeNameExistsError, GradeNotFoundError, UnauthorizedError
from roster.infrastructure.documents import (
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    Increment,
)
from roster.models.grade import Grade, GradeCreateRequest, GradeUpdateRequest

logger = logging.getLogger(__name__)

_FIELDS = {
    "name": "name",
    "description": "description",
    "age_range": "ageRange",
    "color": "color",
    "is_active": "isActive",
}

DEFAULT_GRADES = [
    ("Grade 1", "First grade students - ages 6-7", "6-7 years", "blue"),
    ("Grade 2", "Second grade students - ages 7-8", "7-8 years", "green"),
    ("Grade 3", "Third grade students - ages 8-9", "8-9 years", "yellow"),
    ("Grade 4", "Fourth grade students - ages 9-10", "9-10 years", "purple"),
    ("Grade 5", "Fifth grade students - ages 10-11", "10-11 years", "red"),
    ("Grade 6", "Sixth grade students - ages 11-12", "11-12 years", "gray"),
]


def _sort_by_name(grades: list[Grade]) -> list[Grade]:
    return sorted(grades, key=lambda g: g.name.casefold())


class GradeService:
    """Service for the class grade directory.

    Attributes:
        store: Document store.
    """

    def __init__(self, store: DocumentStore) -> None:
        """Initialize grade service.

        Args:
            store: Document store holding the classGrades collection.
        """
        self.store = store

    async def create(self, request: GradeCreateRequest, teacher_id: str) -> str:
        """Create a grade owned by the teacher.

        Args:
            request: Grade fields.
            teacher_id: Owning teacher.

        Returns:
            The generated grade id.

        Raises:
            GradeNameExistsError: If the teacher already has a grade with this name.
        """
        name = request.name.strip()
        await self._ensure_name_available(teacher_id, name)

        data = {_FIELDS[key]: value for key, value in request.model_dump().items()}
        data.update(
            {
                "name": name,
                "description": request.description.strip(),
                "ageRange": request.age_range.strip(),
                "studentCount": 0,
                "teacherId": teacher_id,
            }
        )
        grade_id = await self.store.add(CLASS_GRADES, data)

        logger.info("Created grade: id=%s, name=%s, teacher=%s", grade_id, name, teacher_id)
        return grade_id

    async def get_by_id(self, grade_id: str) -> Grade:
        """Get a grade by id.

        Raises:
            GradeNotFoundError: If the grade does not exist.
        """
        snapshot = await self.store.get(CLASS_GRADES, grade_id)
        if snapshot is None:
            raise GradeNotFoundError(f"Grade {grade_id} not found")
        return self._to_grade(snapshot)

    async def get_owned(self, grade_id: str, teacher_id: str) -> Grade:
        """Get a grade and verify the teacher owns it.

        Raises:
            GradeNotFoundError: If the grade does not exist.
            UnauthorizedError: If another teacher owns the grade.
        """
        grade = await self.get_by_id(grade_id)
        if grade.teacher_id != teacher_id:
            raise UnauthorizedError(f"Unauthorized to access grade {grade_id}")
        return grade

    async def list_all(self, teacher_id: str | None = None) -> list[Grade]:
        """List grades, optionally restricted to one teacher."""
        query = self.store.query(CLASS_GRADES)
        if teacher_id is not None:
            query = query.where("teacherId", teacher_id)
        return [self._to_grade(snapshot) for snapshot in await query.get()]

    async def list_active(self, teacher_id: str | None = None) -> list[Grade]:
        """List active grades sorted by name."""
        query = self.store.query(CLASS_GRADES).where("isActive", True)
        if teacher_id is not None:
            query = query.where("teacherId", teacher_id)
        return _sort_by_name([self._to_grade(snapshot) for snapshot in await query.get()])

    async def list_by_teacher(self, teacher_id: str) -> list[Grade]:
        """List a teacher's active grades sorted by name."""
        return await self.list_active(teacher_id)

    async def update(
        self,
        grade_id: str,
        request: GradeUpdateRequest,
        teacher_id: str | None = None,
    ) -> Grade:
        """Merge the set fields of a partial update into a grade.

        Raises:
            GradeNotFoundError: If the grade does not exist.
            UnauthorizedError: If teacher_id does not own the grade.
            GradeNameExistsError: If renaming onto another grade's name.
        """
        if teacher_id is not None:
            grade = await self.get_owned(grade_id, teacher_id)
        else:
            grade = await self.get_by_id(grade_id)

        changes: dict[str, Any] = {
            _FIELDS[key]: value
            for key, value in request.model_dump(exclude_unset=True).items()
            if value is not None
        }
        if "name" in changes:
            changes["name"] = changes["name"].strip()
            if changes["name"] != grade.name:
                await self._ensure_name_available(grade.teacher_id, changes["name"])

        if changes:
            await self._write(grade_id, changes)
            logger.info("Updated grade: id=%s, fields=%s", grade_id, sorted(changes))

        return await self.get_by_id(grade_id)

    async def delete(self, grade_id: str, teacher_id: str | None = None) -> None:
        """Delete a grade document. Memberships are left in place.

        Raises:
            GradeNotFoundError: If the grade does not exist.
            UnauthorizedError: If teacher_id does not own the grade.
        """
        if teacher_id is not None:
            await self.get_owned(grade_id, teacher_id)
        else:
            await self.get_by_id(grade_id)

        await self.store.delete(CLASS_GRADES, grade_id)
        logger.info("Deleted grade: id=%s", grade_id)

    async def set_student_count(self, grade_id: str, count: int) -> None:
        """Overwrite the cached student count, clamped to zero.

        Raises:
            GradeNotFoundError: If the grade does not exist.
        """
        await self._write(grade_id, {"studentCount": max(0, count)})

    async def adjust_student_count(self, grade_id: str, delta: int) -> None:
        """Atomically add delta to the cached student count, never below zero.

        Raises:
            GradeNotFoundError: If the grade does not exist.
        """
        await self._write(grade_id, {"studentCount": Increment(delta, floor=0)})

    async def seed_default_grades(self, teacher_id: str) -> list[str]:
        """Create the default Grade 1..6 directory for a teacher with no grades.

        Returns:
            Ids of the created grades; empty when the teacher already has grades.
        """
        if await self.list_all(teacher_id):
            return []

        batch = self.store.batch()
        grade_ids = []
        for name, description, age_range, color in DEFAULT_GRADES:
            grade_id = self.store.new_id()
            batch.set(
                CLASS_GRADES,
                grade_id,
                {
                    "name": name,
                    "description": description,
                    "ageRange": age_range,
                    "color": color,
                    "isActive": True,
                    "studentCount": 0,
                    "teacherId": teacher_id,
                },
            )
            grade_ids.append(grade_id)
        await batch.commit()

        logger.info("Seeded %d default grades for teacher=%s", len(grade_ids), teacher_id)
        return grade_ids

    async def _write(self, grade_id: str, changes: dict[str, Any]) -> None:
        try:
            await self.store.update(CLASS_GRADES, grade_id, changes)
        except DocumentNotFoundError as e:
            raise GradeNotFoundError(f"Grade {grade_id} not found") from e

    async def _ensure_name_available(self, teacher_id: str, name: str) -> None:
        existing = await (
            self.store.query(CLASS_GRADES)
            .where("teacherId", teacher_id)
            .where("name", name)
            .limit(1)
            .get()
        )
        if existing:
            raise GradeNameExistsError(f"Grade '{name}' already exists")

    @staticmethod
    def _to_grade(snapshot: DocumentSnapshot) -> Grade:
        """Convert a stored document to a Grade model."""
        return Grade(
            id=snapshot.id,
            name=snapshot.get("name", ""),
            description=snapshot.get("description") or "",
            age_range=snapshot.get("ageRange") or "",
            color=snapshot.get("color") or "",
            is_active=bool(snapshot.get("isActive", True)),
            student_count=max(0, int(snapshot.get("studentCount") or 0)),
            teacher_id=snapshot.get("teacherId", ""),
            created_at=snapshot.create_time,
            updated_at=snapshot.update_time,
        )
