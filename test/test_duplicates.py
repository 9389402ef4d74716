"""
Unit tests for duplicate detection.
"""

import pytest

from contactsvc.contacts.duplicates import DuplicateDetector, classify_match, suggest_actions
from contactsvc.contacts.schemas import DuplicateType, ResolutionAction


class TestDuplicateDetector:
    """Tests for DuplicateDetector.detect."""

    @pytest.mark.asyncio
    async def test_no_match_returns_empty_list(self, repository, seed_contact, make_candidate):
        await seed_contact(phone="5559999", email="other@example.com")

        matches = await DuplicateDetector(repository).detect(
            make_candidate(phone="5551000", email="jo@example.com")
        )

        assert matches == []

    @pytest.mark.asyncio
    async def test_phone_only_match_with_empty_email(
        self, repository, seed_contact, make_candidate
    ):
        """A candidate with blank email matching on phone is a phone duplicate."""
        existing = await seed_contact(phone="5551000", email=None)

        matches = await DuplicateDetector(repository).detect(
            make_candidate(phone="5551000", email="")
        )

        assert len(matches) == 1
        assert matches[0].duplicate_type == DuplicateType.PHONE
        assert matches[0].conflict_fields == ["phone"]
        assert matches[0].existing.id == existing.id

    @pytest.mark.asyncio
    async def test_both_fields_match_same_contact(self, repository, seed_contact, make_candidate):
        await seed_contact(phone="5551000", email="jo@example.com")

        matches = await DuplicateDetector(repository).detect(
            make_candidate(phone="5551000", email="jo@example.com")
        )

        assert len(matches) == 1
        assert matches[0].duplicate_type == DuplicateType.BOTH
        assert set(matches[0].conflict_fields) == {"phone", "email"}

    @pytest.mark.asyncio
    async def test_email_match_is_case_insensitive(
        self, repository, seed_contact, make_candidate
    ):
        await seed_contact(phone="5552000", email="jo@example.com")

        matches = await DuplicateDetector(repository).detect(
            make_candidate(phone="5551000", email="  Jo@Example.COM ")
        )

        assert len(matches) == 1
        assert matches[0].duplicate_type == DuplicateType.EMAIL
        assert matches[0].conflict_fields == ["email"]

    @pytest.mark.asyncio
    async def test_contacts_without_email_never_email_duplicates(
        self, repository, seed_contact, make_candidate
    ):
        await seed_contact(phone="5552000", email=None)

        matches = await DuplicateDetector(repository).detect(
            make_candidate(phone="5551000", email=None)
        )

        assert matches == []

    @pytest.mark.asyncio
    async def test_returns_every_matching_contact(self, repository, seed_contact, make_candidate):
        """Phone and email living on different rows yield two matches."""
        by_email = await seed_contact(name="Email owner", phone="5552000", email="jo@example.com")
        by_phone = await seed_contact(name="Phone owner", phone="5551000", email=None)

        matches = await DuplicateDetector(repository).detect(
            make_candidate(phone="5551000", email="jo@example.com")
        )

        assert [m.existing.id for m in matches] == [by_phone.id, by_email.id]
        assert [m.duplicate_type for m in matches] == [DuplicateType.PHONE, DuplicateType.EMAIL]

    @pytest.mark.asyncio
    async def test_uses_single_lookup(self, repository, seed_contact, make_candidate):
        await seed_contact(phone="5551000")
        repository.calls.clear()

        await DuplicateDetector(repository).detect(
            make_candidate(phone="5551000", email="jo@example.com")
        )

        assert repository.calls == ["find_by_phone_or_email"]

    @pytest.mark.asyncio
    async def test_detect_is_idempotent(self, repository, seed_contact, make_candidate):
        await seed_contact(phone="5551000", email="jo@example.com")
        detector = DuplicateDetector(repository)
        candidate = make_candidate(phone="5551000", email="jo@example.com")

        first = await detector.detect(candidate)
        second = await detector.detect(candidate)

        assert first == second

    @pytest.mark.asyncio
    async def test_candidate_without_phone_or_email_skips_lookup(
        self, repository, make_candidate
    ):
        matches = await DuplicateDetector(repository).detect(make_candidate(phone="", email=None))

        assert matches == []
        assert repository.calls == []


class TestClassifyMatch:
    """Tests for classify_match."""

    @pytest.mark.asyncio
    async def test_unrelated_contact_is_not_a_match(self, seed_contact, make_candidate):
        existing = await seed_contact(phone="5552000", email="x@example.com")

        assert classify_match(make_candidate(phone="5551000"), existing) is None


class TestSuggestActions:
    """Tests for suggested actions."""

    def test_no_matches_no_suggestions(self):
        assert suggest_actions([]) == []

    @pytest.mark.asyncio
    async def test_any_match_suggests_update_first(self, repository, seed_contact, make_candidate):
        await seed_contact(phone="5551000")
        matches = await DuplicateDetector(repository).detect(make_candidate(phone="5551000"))

        assert suggest_actions(matches) == [
            ResolutionAction.UPDATE,
            ResolutionAction.SKIP,
            ResolutionAction.FORCE_CREATE,
        ]
