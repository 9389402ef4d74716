"""
Contact repository for database operations.

Every mutating call is its own unit of work: it commits on success and rolls
back on failure, so a row written during a batch is visible to the next row's
duplicate detection and a failed row never leaves partial state behind.
"""

from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from contactsvc.contacts.models import Contact, ContactStatus, Segment, contact_segments
from contactsvc.contacts.schemas import ContactCreate
from contactsvc.shared.exceptions import (
    NotFoundError,
    RepositoryError,
    RepositoryUnavailableError,
    UniqueConstraintViolation,
    ValidationError,
)
from contactsvc.shared.logging import get_logger

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset({"name", "phone", "email", "status", "comment"})


class ContactRepositoryProtocol(Protocol):
    """Protocol for contact repository operations."""

    async def find_by_phone_or_email(
        self,
        phone: str | None,
        email: str | None,
    ) -> Sequence[Contact]:
        """Contacts whose phone equals `phone` or whose email equals `email`."""
        ...

    async def get_by_id(self, contact_id: UUID) -> Contact | None:
        ...

    async def create(
        self,
        fields: ContactCreate,
        segment_ids: Sequence[UUID] = (),
    ) -> Contact:
        """Create a contact; raises UniqueConstraintViolation on a phone/email collision."""
        ...

    async def update(
        self,
        contact_id: UUID,
        fields: Mapping[str, Any],
        add_segment_ids: Sequence[UUID] = (),
    ) -> Contact:
        ...

    async def delete(self, contact_id: UUID) -> bool:
        ...

    async def add_to_segments(self, contact_id: UUID, segment_ids: Sequence[UUID]) -> Contact:
        ...

    async def remove_from_segments(
        self,
        contact_id: UUID,
        segment_ids: Sequence[UUID],
    ) -> Contact:
        ...

    async def create_segment(self, name: str, description: str | None = None) -> Segment:
        ...

    async def count_by_status(self) -> dict[ContactStatus, int]:
        ...

    async def count_by_segment(self) -> list[tuple[UUID, str, int]]:
        ...


def violated_field(error: Exception) -> str:
    """Best-effort name of the unique field named in a driver error message."""
    text = str(getattr(error, "orig", None) or error).lower()
    for field in ("email", "phone", "name"):
        if field in text:
            return field
    return "unknown"


def translate_error(error: SQLAlchemyError) -> RepositoryError:
    """Map a SQLAlchemy error onto the repository error taxonomy."""
    if isinstance(error, IntegrityError):
        return UniqueConstraintViolation(
            field=violated_field(error),
            details={"error": str(error.orig)},
        )
    if isinstance(error, (OperationalError, InterfaceError)):
        return RepositoryUnavailableError(
            message=f"Contact storage unavailable: {error.orig}",
        )
    return RepositoryError(message=f"Contact storage error: {error}")


def validate_update_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update contact field(s): {', '.join(sorted(unknown))}")


class ContactRepository:
    """Repository for contact database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[None]:
        try:
            yield
            await self._session.commit()
        except Exception as exc:
            await self._rollback()
            if isinstance(exc, SQLAlchemyError):
                raise translate_error(exc) from exc
            raise

    @asynccontextmanager
    async def _reading(self) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            raise translate_error(exc) from exc

    async def _rollback(self) -> None:
        try:
            await self._session.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback failed")

    async def _select_contact(self, contact_id: UUID) -> Contact | None:
        stmt = (
            select(Contact)
            .where(Contact.id == contact_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def _require_contact(self, contact_id: UUID) -> Contact:
        contact = await self._select_contact(contact_id)
        if contact is None:
            raise NotFoundError(f"Contact {contact_id} not found")
        return contact

    async def _reload(self, contact_id: UUID) -> Contact:
        async with self._reading():
            return await self._require_contact(contact_id)

    async def _load_segments(self, segment_ids: Sequence[UUID]) -> list[Segment]:
        wanted = list(dict.fromkeys(segment_ids))
        if not wanted:
            return []

        result = await self._session.execute(select(Segment).where(Segment.id.in_(wanted)))
        by_id = {segment.id: segment for segment in result.scalars().all()}

        missing = [str(segment_id) for segment_id in wanted if segment_id not in by_id]
        if missing:
            raise NotFoundError(
                f"Segment(s) not found: {', '.join(missing)}",
                details={"segment_ids": missing},
            )
        return [by_id[segment_id] for segment_id in wanted]

    async def find_by_phone_or_email(
        self,
        phone: str | None,
        email: str | None,
    ) -> Sequence[Contact]:
        """Find contacts sharing a phone or an email in a single OR query.

        Args:
            phone: Exact phone to match, or None/blank to skip.
            email: Exact (already normalized) email to match, or None to skip.

        Returns:
            Matching contacts, oldest first.
        """
        conditions = []
        if phone:
            conditions.append(Contact.phone == phone)
        if email:
            conditions.append(Contact.email == email)
        if not conditions:
            return []

        stmt = (
            select(Contact)
            .where(or_(*conditions))
            .order_by(Contact.created_at, Contact.id)
            .execution_options(populate_existing=True)
        )
        async with self._reading():
            result = await self._session.execute(stmt)
            return result.scalars().all()

    async def get_by_id(self, contact_id: UUID) -> Contact | None:
        """Get a contact by ID.

        Args:
            contact_id: Contact UUID.

        Returns:
            Contact if found, None otherwise.
        """
        async with self._reading():
            return await self._select_contact(contact_id)

    async def create(
        self,
        fields: ContactCreate,
        segment_ids: Sequence[UUID] = (),
    ) -> Contact:
        """Create a single contact, attached to the given segments.

        Args:
            fields: Contact field values.
            segment_ids: Segments to attach the new contact to.

        Returns:
            Created contact with ID and segments.

        Raises:
            UniqueConstraintViolation: If phone or email is already taken.
            NotFoundError: If a segment does not exist.
        """
        async with self._unit_of_work():
            segments = await self._load_segments(segment_ids)
            contact = Contact(**fields.model_dump(), segments=segments)
            self._session.add(contact)
            await self._session.flush()
            contact_id = contact.id

        return await self._reload(contact_id)

    async def update(
        self,
        contact_id: UUID,
        fields: Mapping[str, Any],
        add_segment_ids: Sequence[UUID] = (),
    ) -> Contact:
        """Update contact fields and add it to more segments.

        Args:
            contact_id: Contact UUID.
            fields: Column values to write (subset of UPDATABLE_FIELDS).
            add_segment_ids: Segments added to (never replacing) the current set.

        Returns:
            Updated contact.

        Raises:
            NotFoundError: If the contact or a segment does not exist.
            UniqueConstraintViolation: If the new phone/email is already taken.
        """
        validate_update_fields(fields)

        async with self._unit_of_work():
            contact = await self._require_contact(contact_id)
            for key, value in fields.items():
                setattr(contact, key, value)

            if add_segment_ids:
                current = {segment.id for segment in contact.segments}
                for segment in await self._load_segments(add_segment_ids):
                    if segment.id not in current:
                        contact.segments.append(segment)

            await self._session.flush()

        return await self._reload(contact_id)

    async def delete(self, contact_id: UUID) -> bool:
        """Delete a contact.

        Returns:
            True if deleted, False if not found.
        """
        async with self._unit_of_work():
            contact = await self._select_contact(contact_id)
            if contact is None:
                return False
            await self._session.delete(contact)
        return True

    async def add_to_segments(self, contact_id: UUID, segment_ids: Sequence[UUID]) -> Contact:
        return await self.update(contact_id, {}, add_segment_ids=segment_ids)

    async def remove_from_segments(
        self,
        contact_id: UUID,
        segment_ids: Sequence[UUID],
    ) -> Contact:
        drop = set(segment_ids)
        async with self._unit_of_work():
            contact = await self._require_contact(contact_id)
            contact.segments = [s for s in contact.segments if s.id not in drop]
            await self._session.flush()

        return await self._reload(contact_id)

    async def create_segment(self, name: str, description: str | None = None) -> Segment:
        """Create a segment.

        Raises:
            UniqueConstraintViolation: If a segment with this name exists.
        """
        async with self._unit_of_work():
            segment = Segment(name=name, description=description)
            self._session.add(segment)
            await self._session.flush()
        return segment

    async def count_by_status(self) -> dict[ContactStatus, int]:
        """Count contacts grouped by status (every status present, zero if unused)."""
        stmt = select(Contact.status, func.count(Contact.id)).group_by(Contact.status)
        async with self._reading():
            result = await self._session.execute(stmt)
            rows = result.all()

        counts = {status: 0 for status in ContactStatus}
        for status, count in rows:
            counts[ContactStatus(status)] = count
        return counts

    async def count_by_segment(self) -> list[tuple[UUID, str, int]]:
        """Member count per segment, segments without members included."""
        stmt = (
            select(Segment.id, Segment.name, func.count(contact_segments.c.contact_id))
            .outerjoin(contact_segments, contact_segments.c.segment_id == Segment.id)
            .group_by(Segment.id, Segment.name)
            .order_by(Segment.name)
        )
        async with self._reading():
            result = await self._session.execute(stmt)
            return [(segment_id, name, count) for segment_id, name, count in result.all()]


__all__ = [
    "ContactRepository",
    "ContactRepositoryProtocol",
    "UPDATABLE_FIELDS",
    "translate_error",
    "violated_field",
]
