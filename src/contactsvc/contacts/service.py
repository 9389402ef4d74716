"""
Contact service: the entry point the HTTP layer uses for duplicate checks,
bulk imports, resolutions and statistics.
"""

from collections.abc import Mapping, Sequence
from uuid import UUID

from contactsvc.config import Settings, get_settings
from contactsvc.contacts.csv_parser import CSVParser
from contactsvc.contacts.duplicates import DuplicateDetector, suggest_actions
from contactsvc.contacts.importer import ImportBatchProcessor, ImportRow
from contactsvc.contacts.repository import ContactRepositoryProtocol
from contactsvc.contacts.resolution import ActionLike, ResolutionEngine, SyntheticSuffixGenerator
from contactsvc.contacts.schemas import (
    CandidateContact,
    ContactStats,
    DuplicateCheckResponse,
    DuplicateMatch,
    ImportOutcome,
    ResolutionResult,
)
from contactsvc.contacts.stats import ContactStatsAggregator
from contactsvc.shared.exceptions import ValidationError
from contactsvc.shared.logging import get_logger

logger = get_logger(__name__)


class ContactService:
    """Service for duplicate detection, import and resolution."""

    def __init__(
        self,
        repository: ContactRepositoryProtocol,
        settings: Settings | None = None,
        suffixes: SyntheticSuffixGenerator | None = None,
    ) -> None:
        """Initialize service with a contact repository.

        Args:
            repository: Storage the engine reads and writes.
            settings: Application settings (defaults to get_settings()).
            suffixes: Synthetic suffix source for force-create.
        """
        self._settings = settings or get_settings()
        self._repository = repository
        self._detector = DuplicateDetector(repository)
        self._importer = ImportBatchProcessor(
            repository,
            detector=self._detector,
            default_status=self._settings.default_contact_status,
        )
        self._engine = ResolutionEngine(
            repository,
            default_status=self._settings.default_contact_status,
            suffixes=suffixes,
        )
        self._stats = ContactStatsAggregator(repository)

    def _check_batch_size(self, size: int, what: str) -> None:
        limit = self._settings.import_max_rows
        if size > limit:
            raise ValidationError(
                f"Too many {what}: {size} (maximum {limit})",
                details={"count": size, "max": limit},
            )

    async def detect_duplicates(self, candidate: CandidateContact) -> list[DuplicateMatch]:
        return await self._detector.detect(candidate)

    async def check_duplicates(self, candidate: CandidateContact) -> DuplicateCheckResponse:
        """Duplicate check for a single contact, with the actions to offer the user."""
        matches = await self._detector.detect(candidate)
        return DuplicateCheckResponse(
            has_duplicates=bool(matches),
            duplicates=matches,
            suggested_actions=suggest_actions(matches),
        )

    async def import_batch(
        self,
        candidates: Sequence[ImportRow],
        segment_ids: Sequence[UUID] = (),
    ) -> ImportOutcome:
        if isinstance(candidates, Sequence) and not isinstance(candidates, (str, bytes)):
            self._check_batch_size(len(candidates), "contacts")
        return await self._importer.import_batch(candidates, segment_ids)

    async def import_csv(
        self,
        content: bytes,
        segment_ids: Sequence[UUID] = (),
    ) -> ImportOutcome:
        """Import a CSV file.

        Rows the parser cannot map become errors ahead of the import's own
        row errors; both are labelled with the CSV line number.

        Raises:
            ValidationError: If the file cannot be read as a contact CSV.
        """
        candidates: list[CandidateContact] = []
        lines: list[int] = []
        parse_errors: list[str] = []

        for line_number, candidate, error in CSVParser().parse(content):
            if error is not None:
                if line_number == 0:
                    raise ValidationError(error.error)
                parse_errors.append(str(error))
            elif candidate is not None:
                candidates.append(candidate)
                lines.append(line_number)

        self._check_batch_size(len(candidates) + len(parse_errors), "rows")

        outcome = await self._importer.import_batch(
            candidates,
            segment_ids,
            label=lambda position: f"Line {lines[position]}",
        )
        outcome.errors = parse_errors + outcome.errors

        logger.info(
            "CSV import completed",
            extra={
                "parsed_rows": len(candidates),
                "unparsed_rows": len(parse_errors),
                "created_count": outcome.created,
            },
        )
        return outcome

    async def resolve_one(
        self,
        match: DuplicateMatch | Sequence[DuplicateMatch],
        action: ActionLike,
        target_contact_id: UUID | None = None,
        segment_ids: Sequence[UUID] = (),
    ) -> ResolutionResult:
        return await self._engine.resolve(match, action, target_contact_id, segment_ids)

    async def resolve_batch(
        self,
        matches: Sequence[DuplicateMatch],
        actions: Mapping[int, ActionLike],
        default_action: ActionLike | None = None,
        segment_ids: Sequence[UUID] = (),
    ) -> ImportOutcome:
        if isinstance(matches, Sequence) and not isinstance(matches, (str, bytes)):
            self._check_batch_size(len(matches), "duplicates")
        return await self._engine.resolve_batch(matches, actions, default_action, segment_ids)

    async def get_stats(self) -> ContactStats:
        return await self._stats.aggregate()
