# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Value types shared by the document store and its callers."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Pseudo field names addressing the server-assigned timestamps in order_by().
CREATE_TIME = "__create_time__"
UPDATE_TIME = "__update_time__"


def sub_collection(parent_path: str, parent_id: str, name: str) -> str:
    """Build the path of a sub-collection scoped to one parent document.

    Example:
        >>> sub_collection("classGrades", "g1", "members")
        'classGrades/g1/members'
    """
    return f"{parent_path}/{parent_id}/{name}"


@dataclass(frozen=True)
class Increment:
    """Field transform adding ``amount`` to the stored numeric value.

    The read and the write happen inside the same store transaction, so
    concurrent increments on one document do not lose updates. Missing or
    non-numeric values count as 0. When ``floor`` is set the result never
    drops below it.
    """

    amount: int
    floor: int | None = None

    def apply(self, current: Any) -> int:
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            current = 0
        value = int(current) + self.amount
        if self.floor is not None:
            value = max(self.floor, value)
        return value


@dataclass(frozen=True)
class DocumentSnapshot:
    """Immutable view of a stored document.

    Attributes:
        path: Collection path the document lives in.
        id: Document id, unique within its collection.
        data: Document body.
        create_time: Server timestamp of the first write.
        update_time: Server timestamp of the latest write.
    """

    path: str
    id: str
    data: dict[str, Any] = field(default_factory=dict)
    create_time: datetime | None = None
    update_time: datetime | None = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @property
    def parent_id(self) -> str | None:
        """Id of the owning document for sub-collection entries."""
        segments = self.path.split("/")
        if len(segments) < 3:
            return None
        return segments[-2]
