"""
SQLAlchemy models for contacts and segments.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contactsvc.shared.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContactStatus(str, Enum):
    """Contact lifecycle status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


contact_segments = Table(
    "contact_segments",
    Base.metadata,
    Column(
        "contact_id",
        Uuid,
        ForeignKey("contacts.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "segment_id",
        Uuid,
        ForeignKey("segments.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
)


class Segment(Base):
    """Tag-like grouping of contacts."""

    __tablename__ = "segments"
    __table_args__ = (UniqueConstraint("name", name="uq_segments_name"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<Segment(id={self.id}, name={self.name})>"


class Contact(Base):
    """Contact record. Phone is the unique business key; email is unique when set."""

    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("phone", name="uq_contacts_phone"),
        UniqueConstraint("email", name="uq_contacts_email"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[ContactStatus] = mapped_column(
        SQLEnum(
            ContactStatus,
            name="contact_status",
            native_enum=False,
            length=16,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=ContactStatus.ACTIVE,
    )
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    segments: Mapped[list[Segment]] = relationship(
        Segment,
        secondary=contact_segments,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, phone={self.phone}, status={self.status})>"
