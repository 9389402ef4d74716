"""
Unit tests for bulk import.
"""

import logging

import pytest

from contactsvc.contacts import importer as importer_module
from contactsvc.contacts.duplicates import DuplicateDetector
from contactsvc.contacts.importer import ImportBatchProcessor
from contactsvc.contacts.models import ContactStatus
from contactsvc.contacts.schemas import DuplicateType
from contactsvc.shared.exceptions import (
    RepositoryError,
    RepositoryUnavailableError,
    ValidationError,
)


class BlindDetector(DuplicateDetector):
    """Detector that never sees existing rows, as if another writer raced it."""

    async def detect(self, candidate):
        return []


class TestImportBatch:
    """Tests for ImportBatchProcessor.import_batch."""

    @pytest.mark.asyncio
    async def test_no_collisions_creates_every_row(self, repository):
        rows = [{"name": f"Contact {i}", "phone": f"55510{i}"} for i in range(5)]

        outcome = await ImportBatchProcessor(repository).import_batch(rows)

        assert outcome.created == 5
        assert outcome.duplicates == []
        assert outcome.errors == []
        assert [c.phone for c in repository.contacts] == [f"55510{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_missing_phone_is_a_row_error(self, repository):
        """Row 3 of 5 without phone is reported and the rest are created."""
        rows = [
            {"name": "One", "phone": "5551"},
            {"name": "Two", "phone": "5552"},
            {"name": "Three"},
            {"name": "Four", "phone": "5554"},
            {"name": "Five", "phone": "5555"},
        ]

        outcome = await ImportBatchProcessor(repository).import_batch(rows)

        assert outcome.created == 4
        assert len(outcome.errors) == 1
        assert outcome.errors[0].startswith("Row 3: Failed to import contact: ")
        assert '"name": "Three"' in outcome.errors[0]
        assert outcome.errors[0].endswith("Contact missing name or phone")
        assert sorted(c.phone for c in repository.contacts) == ["5551", "5552", "5554", "5555"]

    @pytest.mark.asyncio
    async def test_blank_name_is_a_row_error(self, repository):
        outcome = await ImportBatchProcessor(repository).import_batch(
            [{"name": "   ", "phone": "5551"}]
        )

        assert outcome.created == 0
        assert "Contact missing name or phone" in outcome.errors[0]

    @pytest.mark.asyncio
    async def test_same_phone_twice_in_one_batch(self, repository):
        """The second row sees the first row's commit and is reported as a duplicate."""
        rows = [{"name": "Jo", "phone": "5551"}, {"name": "Jo2", "phone": "5551"}]

        outcome = await ImportBatchProcessor(repository).import_batch(rows)

        assert outcome.created == 1
        assert len(outcome.duplicates) == 1
        duplicate = outcome.duplicates[0]
        assert duplicate.duplicate_type == DuplicateType.PHONE
        assert duplicate.candidate.name == "Jo2"
        assert duplicate.existing.name == "Jo"
        assert outcome.errors == []

    @pytest.mark.asyncio
    async def test_duplicates_are_not_created(self, repository, seed_contact):
        await seed_contact(phone="5551", email="jo@example.com")

        outcome = await ImportBatchProcessor(repository).import_batch(
            [{"name": "Jo", "phone": "5559", "email": "jo@example.com"}]
        )

        assert outcome.created == 0
        assert outcome.duplicates[0].duplicate_type == DuplicateType.EMAIL
        assert len(repository.contacts) == 1

    @pytest.mark.asyncio
    async def test_invalid_email_is_a_row_error(self, repository):
        outcome = await ImportBatchProcessor(repository).import_batch(
            [{"name": "Jo", "phone": "5551", "email": "not-an-email"}, {"name": "Al", "phone": "5552"}]
        )

        assert outcome.created == 1
        assert outcome.errors[0].startswith("Row 1: ")
        assert "Invalid contact data" in outcome.errors[0]

    @pytest.mark.asyncio
    async def test_non_mapping_row_is_a_row_error(self, repository):
        outcome = await ImportBatchProcessor(repository).import_batch(["oops", {"name": "Al", "phone": "5552"}])

        assert outcome.created == 1
        assert outcome.errors[0].startswith("Row 1: ")

    @pytest.mark.asyncio
    async def test_segments_attached_to_created_contacts(self, repository, segment):
        extra = await repository.create_segment("VIP")

        outcome = await ImportBatchProcessor(repository).import_batch(
            [{"name": "Jo", "phone": "5551", "segment_ids": [str(extra.id)]}],
            segment_ids=[segment.id],
        )

        assert outcome.created == 1
        assert {s.id for s in repository.contacts[0].segments} == {segment.id, extra.id}

    @pytest.mark.asyncio
    async def test_status_and_comment_kept(self, repository):
        await ImportBatchProcessor(repository).import_batch(
            [{"name": "Jo", "phone": "5551", "status": "Pending", "comment": " call back "}]
        )

        contact = repository.contacts[0]
        assert contact.status == ContactStatus.PENDING
        assert contact.comment == "call back"

    @pytest.mark.asyncio
    async def test_default_status_applied(self, repository):
        processor = ImportBatchProcessor(repository, default_status=ContactStatus.INACTIVE)

        await processor.import_batch([{"name": "Jo", "phone": "5551"}])

        assert repository.contacts[0].status == ContactStatus.INACTIVE

    @pytest.mark.asyncio
    async def test_write_time_collision_becomes_race_error(self, repository, seed_contact):
        """A create that loses to a concurrent writer is a row error, not a crash."""
        await seed_contact(phone="5551")
        processor = ImportBatchProcessor(repository, detector=BlindDetector(repository))

        outcome = await processor.import_batch(
            [{"name": "Jo", "phone": "5551"}, {"name": "Al", "phone": "5552"}]
        )

        assert outcome.created == 1
        assert len(outcome.errors) == 1
        assert "Contact with this phone was created concurrently" in outcome.errors[0]

    @pytest.mark.asyncio
    async def test_repository_error_on_one_row_does_not_abort(self, repository):
        repository.configure_failure("create", RepositoryError("disk full"))

        outcome = await ImportBatchProcessor(repository).import_batch(
            [{"name": "Jo", "phone": "5551"}, {"name": "Al", "phone": "5552"}]
        )

        assert outcome.created == 0
        assert len(outcome.errors) == 2
        assert outcome.errors[1].startswith("Row 2: ")
        assert outcome.errors[1].endswith("- disk full")

    @pytest.mark.asyncio
    async def test_unreachable_repository_aborts_batch(self, repository):
        repository.configure_failure(
            "find_by_phone_or_email", RepositoryUnavailableError("connection refused")
        )

        with pytest.raises(RepositoryUnavailableError):
            await ImportBatchProcessor(repository).import_batch([{"name": "Jo", "phone": "5551"}])

    @pytest.mark.asyncio
    async def test_non_list_input_rejected(self, repository):
        with pytest.raises(ValidationError):
            await ImportBatchProcessor(repository).import_batch({"name": "Jo"})

    @pytest.mark.asyncio
    async def test_empty_batch(self, repository):
        outcome = await ImportBatchProcessor(repository).import_batch([])

        assert outcome.created == 0
        assert outcome.duplicates == []
        assert outcome.errors == []


class _RecordCollector(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class TestImportSummaryLog:
    """Tests for the summary record logged after a batch."""

    @pytest.mark.asyncio
    async def test_summary_carries_counts(self, repository, seed_contact):
        await seed_contact(phone="5551")
        collector = _RecordCollector()
        importer_module.logger.addHandler(collector)
        try:
            outcome = await ImportBatchProcessor(repository).import_batch(
                [{"name": "Jo", "phone": "5551"}, {"name": "Al", "phone": "5552"}]
            )
        finally:
            importer_module.logger.removeHandler(collector)

        assert outcome.created == 1
        summary = next(r for r in collector.records if r.getMessage() == "Bulk import completed")
        assert summary.total_rows == 2
        assert summary.created_count == 1
        assert summary.duplicates == 1
        assert summary.errors == 0
