# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Roster domain exceptions.

All service errors derive from RosterError so the API layer can map them
in one place. StoreUnavailableError is raised by the document store and is
not part of this hierarchy.
"""


class RosterError(Exception):
    """Base exception for roster service errors."""

    pass


class NotFoundError(RosterError):
    """Raised when a referenced document does not exist."""

    pass


class StudentNotFoundError(NotFoundError):
    """Raised when student is not found."""

    pass


class GradeNotFoundError(NotFoundError):
    """Raised when grade is not found."""

    pass


class ImportJobNotFoundError(NotFoundError):
    """Raised when an import job is not found."""

    pass


class UnauthorizedError(RosterError):
    """Raised when the current teacher does not own the target record."""

    pass


class ValidationFailedError(RosterError):
    """Raised when input rows fail validation.

    Attributes:
        row_indexes: Zero-based indexes of the offending rows.
    """

    def __init__(self, message: str, row_indexes: list[int] | None = None) -> None:
        super().__init__(message)
        self.row_indexes = row_indexes or []


class GradeNameExistsError(RosterError):
    """Raised when a teacher already has a grade with the same name."""

    pass


class OperationCancelledError(RosterError):
    """Raised when a caller cancels an operation before its next commit."""

    pass
