"""
In-memory contact repository.

Implements ContactRepositoryProtocol over plain dicts while enforcing the same
uniqueness rules as the database (phone; email when not null; segment name).
Used for tests and local experimentation without a database.
"""

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from contactsvc.contacts.models import Contact, ContactStatus, Segment
from contactsvc.contacts.repository import validate_update_fields
from contactsvc.contacts.schemas import ContactCreate
from contactsvc.shared.exceptions import NotFoundError, UniqueConstraintViolation


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryContactRepository:
    """Stores contacts in memory. Order preserved by insertion."""

    def __init__(self) -> None:
        self._contacts: dict[UUID, Contact] = {}
        self._segments: dict[UUID, Segment] = {}
        self._failures: dict[str, Exception] = {}
        self.calls: list[str] = []

    def reset(self) -> None:
        self._contacts.clear()
        self._segments.clear()
        self._failures.clear()
        self.calls.clear()

    def configure_failure(self, method: str, error: Exception | None) -> None:
        """Make every call to `method` raise `error` (None clears it)."""
        if error is None:
            self._failures.pop(method, None)
        else:
            self._failures[method] = error

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        error = self._failures.get(method)
        if error is not None:
            raise error

    @property
    def contacts(self) -> list[Contact]:
        return list(self._contacts.values())

    def _check_unique(
        self,
        phone: str | None,
        email: str | None,
        exclude_id: UUID | None = None,
    ) -> None:
        for contact in self._contacts.values():
            if contact.id == exclude_id:
                continue
            if phone and contact.phone == phone:
                raise UniqueConstraintViolation(field="phone")
            if email and contact.email == email:
                raise UniqueConstraintViolation(field="email")

    def _require_contact(self, contact_id: UUID) -> Contact:
        contact = self._contacts.get(contact_id)
        if contact is None:
            raise NotFoundError(f"Contact {contact_id} not found")
        return contact

    def _load_segments(self, segment_ids: Sequence[UUID]) -> list[Segment]:
        wanted = list(dict.fromkeys(segment_ids))
        missing = [str(segment_id) for segment_id in wanted if segment_id not in self._segments]
        if missing:
            raise NotFoundError(
                f"Segment(s) not found: {', '.join(missing)}",
                details={"segment_ids": missing},
            )
        return [self._segments[segment_id] for segment_id in wanted]

    async def find_by_phone_or_email(
        self,
        phone: str | None,
        email: str | None,
    ) -> Sequence[Contact]:
        self._enter("find_by_phone_or_email")
        if not phone and not email:
            return []
        return [
            contact
            for contact in self._contacts.values()
            if (phone and contact.phone == phone) or (email and contact.email == email)
        ]

    async def get_by_id(self, contact_id: UUID) -> Contact | None:
        self._enter("get_by_id")
        return self._contacts.get(contact_id)

    async def create(
        self,
        fields: ContactCreate,
        segment_ids: Sequence[UUID] = (),
    ) -> Contact:
        self._enter("create")
        self._check_unique(fields.phone, fields.email)
        segments = self._load_segments(segment_ids)

        now = _utcnow()
        contact = Contact(
            id=uuid4(),
            created_at=now,
            updated_at=now,
            segments=segments,
            **fields.model_dump(),
        )
        self._contacts[contact.id] = contact
        return contact

    async def update(
        self,
        contact_id: UUID,
        fields: Mapping[str, Any],
        add_segment_ids: Sequence[UUID] = (),
    ) -> Contact:
        self._enter("update")
        validate_update_fields(fields)
        contact = self._require_contact(contact_id)
        self._check_unique(fields.get("phone"), fields.get("email"), exclude_id=contact_id)
        new_segments = self._load_segments(add_segment_ids)

        changed = False
        for key, value in fields.items():
            if getattr(contact, key) != value:
                setattr(contact, key, value)
                changed = True

        current = {segment.id for segment in contact.segments}
        for segment in new_segments:
            if segment.id not in current:
                contact.segments.append(segment)
                changed = True

        if changed:
            contact.updated_at = _utcnow()
        return contact

    async def delete(self, contact_id: UUID) -> bool:
        self._enter("delete")
        contact = self._contacts.pop(contact_id, None)
        if contact is None:
            return False
        contact.segments = []
        return True

    async def add_to_segments(self, contact_id: UUID, segment_ids: Sequence[UUID]) -> Contact:
        return await self.update(contact_id, {}, add_segment_ids=segment_ids)

    async def remove_from_segments(
        self,
        contact_id: UUID,
        segment_ids: Sequence[UUID],
    ) -> Contact:
        self._enter("remove_from_segments")
        contact = self._require_contact(contact_id)
        drop = set(segment_ids)
        contact.segments = [s for s in contact.segments if s.id not in drop]
        contact.updated_at = _utcnow()
        return contact

    async def create_segment(self, name: str, description: str | None = None) -> Segment:
        self._enter("create_segment")
        if any(segment.name == name for segment in self._segments.values()):
            raise UniqueConstraintViolation(field="name")

        now = _utcnow()
        segment = Segment(
            id=uuid4(),
            name=name,
            description=description,
            created_at=now,
            updated_at=now,
        )
        self._segments[segment.id] = segment
        return segment

    async def count_by_status(self) -> dict[ContactStatus, int]:
        self._enter("count_by_status")
        counts = {status: 0 for status in ContactStatus}
        for contact in self._contacts.values():
            counts[ContactStatus(contact.status)] += 1
        return counts

    async def count_by_segment(self) -> list[tuple[UUID, str, int]]:
        self._enter("count_by_segment")
        counts = {segment_id: 0 for segment_id in self._segments}
        for contact in self._contacts.values():
            for segment in contact.segments:
                counts[segment.id] += 1
        ordered = sorted(self._segments.values(), key=lambda s: s.name)
        return [(segment.id, segment.name, counts[segment.id]) for segment in ordered]
