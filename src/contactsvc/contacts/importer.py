"""
Bulk import of candidate contacts.

Rows are processed one at a time in input order. A row is either created,
reported as a duplicate (never auto-resolved) or recorded as an error; a
half-finished batch is therefore always a consistent state to stop in.
"""

from collections.abc import Callable, Mapping, Sequence
from typing import Any
from uuid import UUID

from contactsvc.contacts.batch import (
    coerce_candidate,
    create_contact,
    fold_rows,
    merge_segment_ids,
    require_fields,
)
from contactsvc.contacts.duplicates import DuplicateDetector
from contactsvc.contacts.models import ContactStatus
from contactsvc.contacts.repository import ContactRepositoryProtocol
from contactsvc.contacts.schemas import CandidateContact, ContactCreate, ImportOutcome
from contactsvc.shared.exceptions import ValidationError
from contactsvc.shared.logging import get_logger

logger = get_logger(__name__)

ImportRow = CandidateContact | Mapping[str, Any]


def import_row_label(position: int) -> str:
    return f"Row {position + 1}"


class ImportBatchProcessor:
    """Drives an import batch through duplicate detection and creation."""

    def __init__(
        self,
        repository: ContactRepositoryProtocol,
        detector: DuplicateDetector | None = None,
        default_status: ContactStatus = ContactStatus.ACTIVE,
    ) -> None:
        self._repository = repository
        self._detector = detector or DuplicateDetector(repository)
        self._default_status = default_status

    async def import_batch(
        self,
        candidates: Sequence[ImportRow],
        segment_ids: Sequence[UUID] = (),
        label: Callable[[int], str] = import_row_label,
    ) -> ImportOutcome:
        """Import candidates in order.

        Args:
            candidates: CandidateContact objects or raw field mappings.
            segment_ids: Segments every created contact is attached to.
            label: Renders a 0-based row position for error messages.

        Returns:
            Outcome with `created`, the unresolved `duplicates` and row `errors`.

        Raises:
            ValidationError: If `candidates` is not a list of rows.
            RepositoryUnavailableError: If storage cannot be reached.
        """
        if isinstance(candidates, (str, bytes)) or not isinstance(candidates, Sequence):
            raise ValidationError("Contacts must be an array")

        batch_segments = list(segment_ids)

        async def step(outcome: ImportOutcome, position: int, row: ImportRow) -> None:
            await self._import_row(outcome, row, batch_segments)

        outcome = await fold_rows(
            candidates,
            step,
            label=label,
            action="import contact",
        )

        logger.info(
            "Bulk import completed",
            extra={
                "total_rows": len(candidates),
                "created_count": outcome.created,
                "duplicates": len(outcome.duplicates),
                "errors": len(outcome.errors),
            },
        )
        return outcome

    async def _import_row(
        self,
        outcome: ImportOutcome,
        row: ImportRow,
        batch_segments: list[UUID],
    ) -> None:
        candidate = coerce_candidate(row)
        require_fields(candidate)

        matches = await self._detector.detect(candidate)
        if matches:
            # One entry per colliding row; the strongest match is reported.
            outcome.record_duplicate(matches[0])
            return

        fields = ContactCreate(
            name=candidate.name,
            phone=candidate.phone,
            email=candidate.email,
            status=candidate.status or self._default_status,
            comment=candidate.comment,
        )
        await create_contact(
            self._repository,
            fields,
            merge_segment_ids(batch_segments, candidate.segment_ids),
        )
        outcome.record_created()
