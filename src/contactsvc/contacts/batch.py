"""
Row-by-row batch processing shared by bulk import and bulk resolution.

A batch is a fold over its rows into an ImportOutcome accumulator. Row-level
failures are recorded on the outcome and the fold moves on; only
RepositoryUnavailableError (storage unreachable) ends the whole call.
"""

import json
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from contactsvc.contacts.models import Contact
from contactsvc.contacts.repository import ContactRepositoryProtocol
from contactsvc.contacts.schemas import CandidateContact, ContactCreate, ImportOutcome
from contactsvc.shared.exceptions import (
    AppError,
    DuplicateRaceError,
    RepositoryUnavailableError,
    UniqueConstraintViolation,
    ValidationError,
)
from contactsvc.shared.logging import get_logger

logger = get_logger(__name__)

RowT = TypeVar("RowT")
RowStep = Callable[[ImportOutcome, int, RowT], Awaitable[None]]


def describe_row(row: Any) -> str:
    """JSON rendering of a row for error messages."""
    if isinstance(row, BaseModel):
        row = row.model_dump(mode="json", exclude_none=True)
    try:
        return json.dumps(row, default=str, sort_keys=True)
    except (TypeError, ValueError):
        return repr(row)


def summarize_validation_error(exc: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'row'}: {error['msg']}"
        for error in exc.errors()
    )


def coerce_candidate(row: CandidateContact | Mapping[str, Any]) -> CandidateContact:
    """Turn a raw import row into a CandidateContact.

    Raises:
        ValidationError: If the row cannot be mapped onto the candidate shape.
    """
    if isinstance(row, CandidateContact):
        return row
    if not isinstance(row, Mapping):
        raise ValidationError(f"Contact row must be an object, got {type(row).__name__}")
    try:
        return CandidateContact.model_validate(dict(row))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid contact data: {summarize_validation_error(exc)}") from exc


def require_fields(candidate: CandidateContact) -> None:
    if candidate.missing_required_fields():
        raise ValidationError("Contact missing name or phone")


def merge_segment_ids(*groups: Iterable[UUID]) -> list[UUID]:
    """Union of segment id lists, first occurrence order kept."""
    merged: dict[UUID, None] = {}
    for group in groups:
        for segment_id in group:
            merged[segment_id] = None
    return list(merged)


async def create_contact(
    repository: ContactRepositoryProtocol,
    fields: ContactCreate,
    segment_ids: Sequence[UUID],
) -> Contact:
    """Create a contact, reporting a write-time uniqueness collision as a race.

    Raises:
        DuplicateRaceError: If a concurrent writer claimed the phone/email after detection.
    """
    try:
        return await repository.create(fields, segment_ids)
    except UniqueConstraintViolation as exc:
        raise DuplicateRaceError(
            field=exc.field,
            message=f"Contact with this {exc.field} was created concurrently",
            details=exc.details,
        ) from exc


async def fold_rows(
    rows: Sequence[RowT],
    step: RowStep,
    *,
    label: Callable[[int], str],
    action: str,
    outcome: ImportOutcome | None = None,
) -> ImportOutcome:
    """Apply `step` to every row in order, accumulating into one outcome.

    Args:
        rows: Rows to process.
        step: Coroutine recording the row's result on the outcome; it raises
            AppError for a row-level failure.
        label: Renders a row position for error messages.
        action: Verb phrase used in error messages ("import contact").
        outcome: Accumulator to continue from.

    Returns:
        The accumulated outcome.

    Raises:
        RepositoryUnavailableError: Storage unreachable; remaining rows are not attempted.
    """
    outcome = outcome if outcome is not None else ImportOutcome()

    for position, row in enumerate(rows):
        try:
            await step(outcome, position, row)
        except RepositoryUnavailableError:
            logger.error(
                "Batch aborted: contact storage unavailable",
                extra={"row": label(position), "processed_rows": position},
            )
            raise
        except AppError as exc:
            outcome.record_error(
                f"{label(position)}: Failed to {action}: {describe_row(row)} - {exc}"
            )
            logger.warning(
                "Batch row failed",
                extra={
                    "row": label(position),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    return outcome
