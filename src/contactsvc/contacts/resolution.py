"""
Resolution of detected duplicates: update the existing contact, skip the
candidate, or force-create a new contact with synthetic unique keys.
"""

import threading
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from contactsvc.contacts.batch import (
    create_contact,
    fold_rows,
    merge_segment_ids,
    require_fields,
    summarize_validation_error,
)
from contactsvc.contacts.models import ContactStatus
from contactsvc.contacts.repository import ContactRepositoryProtocol
from contactsvc.contacts.schemas import (
    CandidateContact,
    ContactCreate,
    ContactResponse,
    DuplicateMatch,
    ImportOutcome,
    ResolutionAction,
    ResolutionOutcome,
    ResolutionResult,
)
from contactsvc.shared.exceptions import (
    DuplicateRaceError,
    InvalidResolutionError,
    UniqueConstraintViolation,
    ValidationError,
)
from contactsvc.shared.logging import get_logger

logger = get_logger(__name__)

ActionLike = ResolutionAction | str


def _epoch_millis() -> int:
    return time.time_ns() // 1_000_000


class SyntheticSuffixGenerator:
    """Millisecond timestamps that never repeat within a process.

    Two calls landing in the same millisecond get consecutive values instead
    of the same one, so back-to-back force-creates cannot collide.
    """

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock or _epoch_millis
        self._last = 0
        self._lock = threading.Lock()

    def next_suffix(self) -> str:
        with self._lock:
            value = max(self._clock(), self._last + 1)
            self._last = value
        return str(value)


default_suffixes = SyntheticSuffixGenerator()


def uniquify_phone(phone: str, suffix: str) -> str:
    return f"{phone}_{suffix}"


def uniquify_email(email: str, suffix: str) -> str:
    """Suffix the local part: ``jo@example.com`` -> ``jo_<suffix>@example.com``."""
    local, at, domain = email.rpartition("@")
    if not at:
        return f"{email}_{suffix}"
    return f"{local}_{suffix}@{domain}"


def parse_action(action: ActionLike) -> ResolutionAction:
    if isinstance(action, ResolutionAction):
        return action
    try:
        return ResolutionAction(str(action).strip().lower())
    except ValueError as exc:
        raise InvalidResolutionError(
            f"Unknown resolution action: {action!r}",
            details={"allowed": [choice.value for choice in ResolutionAction]},
        ) from exc


def duplicate_label(position: int) -> str:
    return f"Duplicate {position}"


class ResolutionEngine:
    """Turns a duplicate match plus a chosen action into a repository mutation."""

    def __init__(
        self,
        repository: ContactRepositoryProtocol,
        default_status: ContactStatus = ContactStatus.ACTIVE,
        suffixes: SyntheticSuffixGenerator | None = None,
    ) -> None:
        self._repository = repository
        self._default_status = default_status
        self._suffixes = suffixes or default_suffixes

    async def resolve(
        self,
        match: DuplicateMatch | Sequence[DuplicateMatch],
        action: ActionLike,
        target_contact_id: UUID | None = None,
        segment_ids: Sequence[UUID] = (),
    ) -> ResolutionResult:
        """Resolve the match(es) of one candidate.

        Args:
            match: A single match, or every match reported for one candidate.
            action: update, skip or force-create.
            target_contact_id: Existing contact to update when several matched.
            segment_ids: Segments added to the updated or created contact.

        Returns:
            What was done and the resulting (or retained) contact.

        Raises:
            InvalidResolutionError: Unknown action, or no identifiable update target.
            ValidationError: The candidate lacks name or phone.
            DuplicateRaceError: The write lost a uniqueness race.
        """
        resolved_action = parse_action(action)
        matches = [match] if isinstance(match, DuplicateMatch) else list(match)

        if resolved_action is ResolutionAction.SKIP:
            result = self._skip(matches, target_contact_id)
        else:
            candidate = self._candidate_of(matches)
            if resolved_action is ResolutionAction.UPDATE:
                target = self._select_target(matches, target_contact_id)
                result = await self._update(candidate, target, segment_ids)
            else:
                result = await self._force_create(candidate, segment_ids)

        logger.info(
            "Duplicate resolved",
            extra={
                "action": resolved_action.value,
                "outcome": result.outcome.value,
                "contact_id": str(result.contact.id) if result.contact else None,
            },
        )
        return result

    async def resolve_batch(
        self,
        matches: Sequence[DuplicateMatch],
        actions: Mapping[int, ActionLike],
        default_action: ActionLike | None = None,
        segment_ids: Sequence[UUID] = (),
    ) -> ImportOutcome:
        """Resolve each match with the action chosen for its index.

        Args:
            matches: Duplicates left over from an import, in report order.
            actions: Action per 0-based index into `matches`.
            default_action: Action for indices absent from `actions`.
            segment_ids: Segments added to every updated or created contact.

        Returns:
            Outcome with `updated`, `created`, `skipped` and per-match `errors`.

        Raises:
            ValidationError: If `matches` is not a list.
            RepositoryUnavailableError: If storage cannot be reached.
        """
        if isinstance(matches, (str, bytes)) or not isinstance(matches, Sequence):
            raise ValidationError("Matches must be an array")

        unknown = sorted(index for index in actions if not 0 <= index < len(matches))
        if unknown:
            logger.warning(
                "Ignoring actions for unknown duplicate indices",
                extra={"indices": unknown, "match_count": len(matches)},
            )

        batch_segments = list(segment_ids)

        async def step(outcome: ImportOutcome, position: int, match: DuplicateMatch) -> None:
            action = actions.get(position, default_action)
            if action is None:
                raise InvalidResolutionError("No resolution action chosen for this duplicate")
            if not isinstance(match, DuplicateMatch):
                raise ValidationError("Duplicate entry is not a duplicate match")

            result = await self.resolve(match, action, segment_ids=batch_segments)
            if result.outcome is ResolutionOutcome.UPDATED:
                outcome.record_updated()
            elif result.outcome is ResolutionOutcome.CREATED:
                outcome.record_created()
            else:
                outcome.record_skipped()

        outcome = await fold_rows(
            matches,
            step,
            label=duplicate_label,
            action="resolve duplicate",
        )

        logger.info(
            "Bulk resolution completed",
            extra={
                "total_matches": len(matches),
                "updated": outcome.updated,
                "created_count": outcome.created,
                "skipped": outcome.skipped,
                "errors": len(outcome.errors),
            },
        )
        return outcome

    @staticmethod
    def _candidate_of(matches: list[DuplicateMatch]) -> CandidateContact:
        if not matches:
            raise InvalidResolutionError("No duplicate match to resolve")
        candidate = matches[0].candidate
        if any(other.candidate != candidate for other in matches[1:]):
            raise InvalidResolutionError("Matches belong to different candidates")
        return candidate

    @staticmethod
    def _select_target(
        matches: list[DuplicateMatch],
        target_contact_id: UUID | None,
    ) -> ContactResponse:
        existing = {match.existing.id: match.existing for match in matches}

        if target_contact_id is not None:
            target = existing.get(target_contact_id)
            if target is None:
                raise InvalidResolutionError(
                    f"Contact {target_contact_id} is not one of the matched contacts",
                    details={"matched_ids": [str(contact_id) for contact_id in existing]},
                )
            return target

        if len(existing) > 1:
            raise InvalidResolutionError(
                "Several existing contacts match; choose which one to update",
                details={"matched_ids": [str(contact_id) for contact_id in existing]},
            )
        return next(iter(existing.values()))

    @staticmethod
    def _skip(
        matches: list[DuplicateMatch],
        target_contact_id: UUID | None,
    ) -> ResolutionResult:
        retained = next(
            (m.existing for m in matches if m.existing.id == target_contact_id),
            matches[0].existing if matches else None,
        )
        return ResolutionResult(
            action=ResolutionAction.SKIP,
            outcome=ResolutionOutcome.SKIPPED,
            contact=retained,
            message="Existing contact kept unchanged",
        )

    async def _update(
        self,
        candidate: CandidateContact,
        target: ContactResponse,
        segment_ids: Sequence[UUID],
    ) -> ResolutionResult:
        require_fields(candidate)

        # Fields the candidate leaves out keep the target's current value.
        fields: dict[str, Any] = {"name": candidate.name}
        if candidate.status is not None:
            fields["status"] = candidate.status
        if candidate.comment is not None:
            fields["comment"] = candidate.comment
        if candidate.email and await self._email_is_free_for(candidate.email, target.id):
            fields["email"] = candidate.email

        try:
            contact = await self._repository.update(
                target.id,
                fields,
                merge_segment_ids(segment_ids, candidate.segment_ids),
            )
        except UniqueConstraintViolation as exc:
            raise DuplicateRaceError(
                field=exc.field,
                message=f"Contact with this {exc.field} was claimed concurrently",
                details=exc.details,
            ) from exc

        return ResolutionResult(
            action=ResolutionAction.UPDATE,
            outcome=ResolutionOutcome.UPDATED,
            contact=ContactResponse.model_validate(contact),
            message="Existing contact updated",
        )

    async def _email_is_free_for(self, email: str, contact_id: UUID) -> bool:
        owners = await self._repository.find_by_phone_or_email(None, email)
        taken = [owner.id for owner in owners if owner.id != contact_id]
        if taken:
            logger.debug(
                "Email owned by another contact, keeping existing email",
                extra={"contact_id": str(contact_id), "owner_ids": [str(i) for i in taken]},
            )
        return not taken

    async def _force_create(
        self,
        candidate: CandidateContact,
        segment_ids: Sequence[UUID],
    ) -> ResolutionResult:
        require_fields(candidate)

        suffix = self._suffixes.next_suffix()
        try:
            fields = ContactCreate(
                name=candidate.name,
                phone=uniquify_phone(candidate.phone, suffix),
                email=uniquify_email(candidate.email, suffix) if candidate.email else None,
                status=candidate.status or self._default_status,
                comment=candidate.comment,
            )
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Cannot derive unique contact: {summarize_validation_error(exc)}"
            ) from exc

        contact = await create_contact(
            self._repository,
            fields,
            merge_segment_ids(segment_ids, candidate.segment_ids),
        )
        return ResolutionResult(
            action=ResolutionAction.FORCE_CREATE,
            outcome=ResolutionOutcome.CREATED,
            contact=ContactResponse.model_validate(contact),
            message="New contact created with synthetic phone/email",
        )
