"""
Shared exceptions.

Row-level errors (ValidationError, UniqueConstraintViolation, RepositoryError)
are recorded by batch operations and never abort them; InvalidResolutionError
and RepositoryUnavailableError are surfaced to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class AppError(Exception):
    message: str = "Application error"
    details: Optional[dict[str, Any]] = None

    def __str__(self) -> str:
        return self.message


class NotFoundError(AppError):
    pass


class ValidationError(AppError):
    pass


class InvalidResolutionError(AppError):
    pass


class RepositoryError(AppError):
    pass


class RepositoryUnavailableError(RepositoryError):
    """The storage backend could not be reached at all."""


class UniqueConstraintViolation(RepositoryError):
    """A write collided with an existing row on a unique field."""

    def __init__(
        self,
        field: str,
        message: str | None = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message or f"Unique constraint violated on '{field}'",
            details=details,
        )
        self.field = field


class DuplicateRaceError(UniqueConstraintViolation):
    """A create/update passed duplicate detection but lost the write to a concurrent writer."""
