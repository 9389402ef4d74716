"""
Pydantic schemas for contacts, duplicate matches and import/resolution results.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from contactsvc.contacts.models import ContactStatus


class DuplicateType(str, Enum):
    """Which business key(s) a candidate shares with an existing contact."""

    EMAIL = "email"
    PHONE = "phone"
    BOTH = "both"


class ResolutionAction(str, Enum):
    """How a detected duplicate should be handled."""

    UPDATE = "update"
    SKIP = "skip"
    FORCE_CREATE = "force-create"


class ResolutionOutcome(str, Enum):
    """What a resolution actually did to the repository."""

    UPDATED = "updated"
    SKIPPED = "skipped"
    CREATED = "created"


def normalize_email(value: Any) -> str | None:
    """Lower-case an email and treat blank values as absent."""
    if value is None:
        return None
    cleaned = str(value).strip().lower()
    return cleaned or None


class SegmentResponse(BaseModel):
    """Schema for segment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None


class ContactResponse(BaseModel):
    """Schema for contact response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    phone: str
    email: str | None
    status: ContactStatus
    comment: str | None
    segments: list[SegmentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ContactCreate(BaseModel):
    """Field set written by ContactRepository.create."""

    name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=1, max_length=64)
    email: str | None = Field(default=None, max_length=255)
    status: ContactStatus = ContactStatus.ACTIVE
    comment: str | None = None


class CandidateContact(BaseModel):
    """An unpersisted contact supplied by a user or an import row.

    Name and phone may be blank here: the batch processor rejects such rows
    as row-level errors instead of failing the whole request.
    """

    model_config = ConfigDict(extra="ignore")

    name: str = Field(default="", max_length=255)
    phone: str = Field(default="", max_length=50)
    email: EmailStr | None = None
    status: ContactStatus | None = None
    comment: str | None = None
    segment_ids: list[UUID] = Field(default_factory=list)

    @field_validator("name", "phone", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email_field(cls, v: Any) -> str | None:
        return normalize_email(v)

    @field_validator("comment", mode="before")
    @classmethod
    def blank_comment_to_none(cls, v: Any) -> str | None:
        if v is None:
            return None
        cleaned = str(v).strip()
        return cleaned or None

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            cleaned = v.strip().lower()
            return cleaned or None
        return v

    def missing_required_fields(self) -> list[str]:
        """Names of required fields that are blank."""
        return [name for name in ("name", "phone") if not getattr(self, name)]


class DuplicateMatch(BaseModel):
    """A collision between a candidate and one existing contact. Never persisted."""

    candidate: CandidateContact
    existing: ContactResponse
    duplicate_type: DuplicateType
    conflict_fields: list[str]


class ImportOutcome(BaseModel):
    """Accumulated result of a bulk import or bulk resolution."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    duplicates: list[DuplicateMatch] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def record_created(self) -> None:
        self.created += 1

    def record_updated(self) -> None:
        self.updated += 1

    def record_skipped(self) -> None:
        self.skipped += 1

    def record_duplicate(self, match: DuplicateMatch) -> None:
        self.duplicates.append(match)

    def record_error(self, message: str) -> None:
        self.errors.append(message)


class ResolutionResult(BaseModel):
    """Result of resolving a single duplicate."""

    action: ResolutionAction
    outcome: ResolutionOutcome
    contact: ContactResponse | None = None
    message: str


class DuplicateCheckResponse(BaseModel):
    """Schema for a single-contact duplicate check."""

    has_duplicates: bool
    duplicates: list[DuplicateMatch] = Field(default_factory=list)
    suggested_actions: list[ResolutionAction] = Field(default_factory=list)


class SegmentCount(BaseModel):
    segment_id: UUID
    name: str
    count: int


class ContactStats(BaseModel):
    """Summary counts over the contact table."""

    total: int
    active: int
    inactive: int
    pending: int
    by_segment: list[SegmentCount] = Field(default_factory=list)


class BulkImportRequest(BaseModel):
    """Schema for a JSON bulk import.

    Rows are kept as raw mappings so a malformed row becomes a row error
    instead of rejecting the whole request.
    """

    contacts: list[dict[str, Any]]
    segment_ids: list[UUID] = Field(default_factory=list)


class ResolveRequest(BaseModel):
    """Schema for resolving the duplicate(s) of one candidate."""

    match: DuplicateMatch | None = None
    matches: list[DuplicateMatch] = Field(default_factory=list)
    action: ResolutionAction
    target_contact_id: UUID | None = None
    segment_ids: list[UUID] = Field(default_factory=list)

    def all_matches(self) -> list[DuplicateMatch]:
        if self.match is not None:
            return [self.match, *self.matches]
        return list(self.matches)


class ResolveBatchRequest(BaseModel):
    """Schema for resolving duplicates left over from a bulk import."""

    matches: list[DuplicateMatch]
    actions: dict[int, ResolutionAction] = Field(
        default_factory=dict,
        description="Action per index into `matches`",
    )
    default_action: ResolutionAction | None = Field(
        default=None,
        description="Action for indices missing from `actions`",
    )
    segment_ids: list[UUID] = Field(default_factory=list)


class CSVRowError(BaseModel):
    """Schema for CSV row validation error."""

    line_number: int = Field(..., description="Line number in the CSV file (1-indexed)")
    field: str | None = Field(default=None, description="Field that caused the error")
    error: str = Field(..., description="Error description")
    value: str | None = Field(default=None, description="Invalid value")

    def __str__(self) -> str:
        text = f"Line {self.line_number}: {self.error}"
        if self.value:
            text += f" ({self.value!r})"
        return text
