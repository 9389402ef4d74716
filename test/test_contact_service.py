"""
Unit tests for ContactService.
"""

import pytest

from contactsvc.contacts.resolution import SyntheticSuffixGenerator
from contactsvc.contacts.schemas import ResolutionAction, ResolutionOutcome
from contactsvc.contacts.service import ContactService
from contactsvc.shared.exceptions import ValidationError


@pytest.fixture
def service(repository, test_settings) -> ContactService:
    return ContactService(
        repository,
        settings=test_settings,
        suffixes=SyntheticSuffixGenerator(clock=lambda: 1700000000000),
    )


class TestCheckDuplicates:
    """Tests for single-contact duplicate checks."""

    @pytest.mark.asyncio
    async def test_no_duplicates(self, service, make_candidate):
        response = await service.check_duplicates(make_candidate())

        assert response.has_duplicates is False
        assert response.suggested_actions == []

    @pytest.mark.asyncio
    async def test_duplicates_with_suggestions(self, service, seed_contact, make_candidate):
        await seed_contact(phone="5551000")

        response = await service.check_duplicates(make_candidate(phone="5551000"))

        assert response.has_duplicates is True
        assert len(response.duplicates) == 1
        assert response.suggested_actions[0] == ResolutionAction.UPDATE


class TestImport:
    """Tests for batch and CSV import through the service."""

    @pytest.mark.asyncio
    async def test_batch_over_limit_rejected(self, service, repository):
        rows = [{"name": "Jo", "phone": str(i)} for i in range(51)]

        with pytest.raises(ValidationError):
            await service.import_batch(rows)

        assert repository.calls == []

    @pytest.mark.asyncio
    async def test_import_then_resolve(self, service, repository):
        outcome = await service.import_batch(
            [{"name": "Jo", "phone": "5551"}, {"name": "Jo2", "phone": "5551"}]
        )

        resolved = await service.resolve_batch(outcome.duplicates, {0: "force-create"})

        assert resolved.created == 1
        assert sorted(c.phone for c in repository.contacts) == ["5551", "5551_1700000000000"]

    @pytest.mark.asyncio
    async def test_csv_errors_labelled_by_line(self, service, repository):
        content = (
            b"name,phone,email\n"
            b"Jo,5551,jo@example.com\n"
            b"Bad,5552,not-an-email\n"
            b"NoPhone,,\n"
            b"Al,5553,\n"
        )

        outcome = await service.import_csv(content)

        assert outcome.created == 2
        assert len(outcome.errors) == 2
        assert outcome.errors[0].startswith("Line 3: Invalid email")
        assert outcome.errors[1].startswith("Line 4: Failed to import contact: ")

    @pytest.mark.asyncio
    async def test_csv_without_headers_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.import_csv(b"email\njo@example.com\n")


class TestResolveOne:
    """Tests for resolve_one."""

    @pytest.mark.asyncio
    async def test_update(self, service, seed_contact, make_candidate):
        await seed_contact(phone="5551", name="Old")
        matches = await service.detect_duplicates(make_candidate(phone="5551", name="New"))

        result = await service.resolve_one(matches, ResolutionAction.UPDATE)

        assert result.outcome == ResolutionOutcome.UPDATED
        assert result.contact.name == "New"

    @pytest.mark.asyncio
    async def test_stats(self, service, seed_contact):
        await seed_contact(phone="5551")

        stats = await service.get_stats()

        assert stats.total == 1
        assert stats.active == 1
