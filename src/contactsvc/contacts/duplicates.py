"""
Duplicate detection for candidate contacts.

Matching is exact: phone as given (trimmed), email lower-cased. A blank email
never takes part in matching, so two contacts without email are never
email-duplicates of each other.
"""

from collections.abc import Sequence

from contactsvc.contacts.models import Contact
from contactsvc.contacts.repository import ContactRepositoryProtocol
from contactsvc.contacts.schemas import (
    CandidateContact,
    ContactResponse,
    DuplicateMatch,
    DuplicateType,
    ResolutionAction,
    normalize_email,
)
from contactsvc.shared.logging import get_logger

logger = get_logger(__name__)

# Strongest collision first when one candidate hits several contacts.
_TYPE_RANK = {DuplicateType.BOTH: 0, DuplicateType.PHONE: 1, DuplicateType.EMAIL: 2}


def classify_match(
    candidate: CandidateContact,
    existing: Contact,
) -> DuplicateMatch | None:
    """Classify how `existing` collides with `candidate`.

    Returns:
        The match, or None if the contact shares neither phone nor email.
    """
    phone = candidate.phone or None
    email = normalize_email(candidate.email)

    conflict_fields: list[str] = []
    if phone is not None and existing.phone == phone:
        conflict_fields.append("phone")
    if email is not None and existing.email == email:
        conflict_fields.append("email")

    if not conflict_fields:
        return None

    if len(conflict_fields) == 2:
        duplicate_type = DuplicateType.BOTH
    elif conflict_fields[0] == "phone":
        duplicate_type = DuplicateType.PHONE
    else:
        duplicate_type = DuplicateType.EMAIL

    return DuplicateMatch(
        candidate=candidate,
        existing=ContactResponse.model_validate(existing),
        duplicate_type=duplicate_type,
        conflict_fields=conflict_fields,
    )


def suggest_actions(matches: Sequence[DuplicateMatch]) -> list[ResolutionAction]:
    """Actions offered to a user for a candidate's matches.

    Any collision suggests updating the existing record first; skip and
    force-create are always offered as alternatives.
    """
    if not matches:
        return []
    return [ResolutionAction.UPDATE, ResolutionAction.SKIP, ResolutionAction.FORCE_CREATE]


class DuplicateDetector:
    """Finds existing contacts that collide with a candidate on phone and/or email."""

    def __init__(self, repository: ContactRepositoryProtocol) -> None:
        self._repository = repository

    async def detect(self, candidate: CandidateContact) -> list[DuplicateMatch]:
        """Return every existing contact sharing the candidate's phone or email.

        Reads current repository state on every call; nothing is cached.

        Args:
            candidate: Contact to check.

        Returns:
            Matches ordered both > phone > email, empty if there is no duplicate.
        """
        phone = candidate.phone or None
        email = normalize_email(candidate.email)
        if phone is None and email is None:
            return []

        hits = await self._repository.find_by_phone_or_email(phone, email)

        matches = [
            match
            for match in (classify_match(candidate, hit) for hit in hits)
            if match is not None
        ]
        matches.sort(key=lambda match: _TYPE_RANK[match.duplicate_type])

        if matches:
            logger.debug(
                "Duplicates detected",
                extra={
                    "phone": phone,
                    "match_count": len(matches),
                    "existing_ids": [str(match.existing.id) for match in matches],
                },
            )
        return matches
