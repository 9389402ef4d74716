"""
Contacts: storage, duplicate detection, bulk import and resolution.
"""

from contactsvc.contacts.models import Contact, ContactStatus, Segment
from contactsvc.contacts.schemas import (
    CandidateContact,
    DuplicateMatch,
    DuplicateType,
    ImportOutcome,
    ResolutionAction,
    ResolutionResult,
)

__all__ = [
    "CandidateContact",
    "Contact",
    "ContactStatus",
    "DuplicateMatch",
    "DuplicateType",
    "ImportOutcome",
    "ResolutionAction",
    "ResolutionResult",
    "Segment",
]
