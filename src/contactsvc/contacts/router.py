"""
API router for duplicate checks, bulk import and duplicate resolution.

Domain errors are mapped to HTTP responses by the handlers registered in
contactsvc.main.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from contactsvc.contacts.repository import ContactRepository, ContactRepositoryProtocol
from contactsvc.contacts.schemas import (
    BulkImportRequest,
    CandidateContact,
    ContactStats,
    DuplicateCheckResponse,
    ImportOutcome,
    ResolutionResult,
    ResolveBatchRequest,
    ResolveRequest,
)
from contactsvc.contacts.service import ContactService
from contactsvc.shared.database import get_db_session
from contactsvc.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/contacts", tags=["contacts"])


def get_contact_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> ContactRepositoryProtocol:
    """Dependency for the contact repository."""
    return ContactRepository(session)


def get_contact_service(
    repository: Annotated[ContactRepositoryProtocol, Depends(get_contact_repository)],
) -> ContactService:
    """Dependency for contact service."""
    return ContactService(repository)


@router.post(
    "/check-duplicates",
    response_model=DuplicateCheckResponse,
    summary="Check a contact for duplicates",
    description="Find existing contacts sharing the candidate's phone or email.",
)
async def check_duplicates(
    candidate: CandidateContact,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> DuplicateCheckResponse:
    return await service.check_duplicates(candidate)


@router.post(
    "/bulk-import",
    response_model=ImportOutcome,
    status_code=status.HTTP_201_CREATED,
    summary="Import contacts",
    description="Create every non-duplicate contact; duplicates are returned unresolved.",
)
async def bulk_import(
    request: BulkImportRequest,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ImportOutcome:
    return await service.import_batch(request.contacts, request.segment_ids)


@router.post(
    "/bulk-import/csv",
    response_model=ImportOutcome,
    status_code=status.HTTP_201_CREATED,
    summary="Import contacts from CSV",
    description="CSV must have 'name' and 'phone' columns. "
    "Optional 'email', 'status' and 'comment' columns.",
)
async def bulk_import_csv(
    file: Annotated[UploadFile, File(description="CSV file with contacts")],
    service: Annotated[ContactService, Depends(get_contact_service)],
    segment_ids: Annotated[
        list[UUID] | None,
        Query(description="Segments every created contact joins"),
    ] = None,
) -> ImportOutcome:
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be a CSV file",
        )

    content = await file.read()
    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File is empty",
        )

    outcome = await service.import_csv(content, segment_ids or [])
    logger.info(
        "Contact CSV uploaded",
        extra={"contact_filename": file.filename, "size_bytes": len(content)},
    )
    return outcome


@router.post(
    "/resolve",
    response_model=ResolutionResult,
    summary="Resolve one duplicate",
    description="Apply update, skip or force-create to the match(es) of one candidate.",
)
async def resolve_duplicate(
    request: ResolveRequest,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ResolutionResult:
    return await service.resolve_one(
        request.all_matches(),
        request.action,
        target_contact_id=request.target_contact_id,
        segment_ids=request.segment_ids,
    )


@router.post(
    "/resolve-duplicates",
    response_model=ImportOutcome,
    summary="Resolve duplicates in bulk",
    description="Apply the action chosen per index; failures are reported per duplicate.",
)
async def resolve_duplicates(
    request: ResolveBatchRequest,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ImportOutcome:
    return await service.resolve_batch(
        request.matches,
        request.actions,
        default_action=request.default_action,
        segment_ids=request.segment_ids,
    )


@router.get(
    "/stats",
    response_model=ContactStats,
    summary="Contact statistics",
)
async def get_stats(
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ContactStats:
    return await service.get_stats()
