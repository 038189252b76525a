"""
Proposal lifecycle API endpoints.

WHAT: RESTful API for submitting, editing, transitioning, accepting,
rejecting, reading, deleting proposals and attaching files to them.

WHY: Contractors bid on homeowner projects; homeowners review, accept
or reject. Every route is a thin shell over ProposalService, so the
rules are the same whichever client calls them.

HOW: FastAPI router with:
- Bearer-token principal on every route
- Role gates where the role alone decides (submit, list mine)
- Ownership checks in the service (they need the loaded proposal)
- Injected clock and file store, overridden in tests
"""

from typing import Optional
from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from homebid.core.auth import Principal
from homebid.core.clock import Clock, get_clock
from homebid.core.deps import get_current_principal, require_contractor
from homebid.db.session import get_db
from homebid.models.proposal import ProposalStatus
from homebid.schemas.proposal import (
    AcceptanceResponse,
    ProposalCreate,
    ProposalListResponse,
    ProposalReject,
    ProposalResponse,
    ProposalTransition,
    ProposalUpdate,
)
from homebid.services.file_storage import FileStore, get_file_store
from homebid.services.proposal_service import ProposalService


router = APIRouter(prefix="/proposals", tags=["proposals"])


@router.post(
    "",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit proposal",
    description="Create a proposal on an open project (contractor only)",
)
async def submit_proposal(
    data: ProposalCreate,
    principal: Principal = Depends(require_contractor),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProposalResponse:
    """
    Submit a proposal.

    WHAT: Validates schedule and amounts, derives total_amount, and
    stores the proposal as submitted (or draft when submit=false).

    Raises:
        ValidationError (400): Rule violations, listed in details.violations
        AuthorizationError (403): Not a contractor, or own project
        ProjectNotFoundError (404): Unknown project
        ResourceAlreadyExistsError (409): Already bidding on this project
    """
    service = ProposalService(db, clock)
    proposal = await service.create(
        principal,
        **data.model_dump(),
    )
    return ProposalResponse.model_validate(proposal)


@router.get(
    "/mine",
    response_model=ProposalListResponse,
    summary="List my proposals",
    description="The calling contractor's proposals across all projects",
)
async def list_my_proposals(
    status_filter: Optional[ProposalStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    principal: Principal = Depends(require_contractor),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProposalListResponse:
    service = ProposalService(db, clock)
    proposals = await service.list_mine(principal, status=status_filter, skip=skip, limit=limit)
    items = [ProposalResponse.model_validate(p) for p in proposals]
    return ProposalListResponse(items=items, total=len(items))


@router.post(
    "/acceptances/{operation_id}/resume",
    response_model=AcceptanceResponse,
    summary="Resume acceptance",
    description="Finish an acceptance cascade that failed part way",
)
async def resume_acceptance(
    operation_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> AcceptanceResponse:
    """
    Resume an acceptance operation.

    WHY: A PartialAcceptanceFailure response carries an operation_id;
    posting it here re-runs only the steps that did not complete.

    Raises:
        AcceptanceOperationNotFoundError (404): Unknown operation
        AuthorizationError (403): Not the homeowner who accepted
        PartialAcceptanceFailure (500): Still failing
    """
    service = ProposalService(db, clock)
    result = await service.resume_acceptance(operation_id, principal)
    return AcceptanceResponse.from_result(result)


@router.get(
    "/{proposal_id}",
    response_model=ProposalResponse,
    summary="Get proposal",
    description="Read a proposal; the homeowner's first read marks it viewed",
)
async def get_proposal(
    proposal_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProposalResponse:
    service = ProposalService(db, clock)
    proposal = await service.get(proposal_id, principal)
    return ProposalResponse.model_validate(proposal)


@router.patch(
    "/{proposal_id}",
    response_model=ProposalResponse,
    summary="Update proposal",
    description="Edit content while draft or submitted (owning contractor only)",
)
async def update_proposal(
    proposal_id: int,
    data: ProposalUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProposalResponse:
    """
    Update proposal content.

    Raises:
        ProposalNotEditableError (409): Viewed or terminal
        AuthorizationError (403): Not the owning contractor
        ValidationError (400): Edited fields break a rule
    """
    service = ProposalService(db, clock)
    proposal = await service.update(
        proposal_id,
        principal,
        data.model_dump(exclude_unset=True),
    )
    return ProposalResponse.model_validate(proposal)


@router.post(
    "/{proposal_id}/transition",
    response_model=ProposalResponse,
    summary="Change proposal status",
    description="Request a state machine transition; accepted runs the acceptance cascade",
)
async def transition_proposal(
    proposal_id: int,
    data: ProposalTransition,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProposalResponse:
    service = ProposalService(db, clock)
    proposal = await service.transition(
        proposal_id,
        principal,
        data.status,
        reason=data.reason,
        notes=data.notes,
    )
    return ProposalResponse.model_validate(proposal)


@router.post(
    "/{proposal_id}/accept",
    response_model=AcceptanceResponse,
    summary="Accept proposal",
    description="Accept a proposal, reject its pending siblings and award the project",
)
async def accept_proposal(
    proposal_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> AcceptanceResponse:
    """
    Accept a proposal.

    Raises:
        AuthorizationError (403): Not the project's homeowner
        InvalidStateTransitionError (400): Not submitted/viewed, or
            project already awarded
        PartialAcceptanceFailure (500): Cascade incomplete; resume with
            the operation_id in details
    """
    service = ProposalService(db, clock)
    result = await service.accept(proposal_id, principal)
    return AcceptanceResponse.from_result(result)


@router.post(
    "/{proposal_id}/reject",
    response_model=ProposalResponse,
    summary="Reject proposal",
    description="Reject a single proposal (project homeowner only)",
)
async def reject_proposal(
    proposal_id: int,
    data: ProposalReject,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProposalResponse:
    service = ProposalService(db, clock)
    proposal = await service.reject(proposal_id, principal, reason=data.reason, notes=data.notes)
    return ProposalResponse.model_validate(proposal)


@router.delete(
    "/{proposal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete proposal",
    description="Soft delete a draft, withdrawn, rejected or expired proposal",
)
async def delete_proposal(
    proposal_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> None:
    service = ProposalService(db, clock)
    await service.delete(proposal_id, principal)


@router.post(
    "/{proposal_id}/attachments",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Attach file",
    description="Upload a file and append it to the proposal's attachments",
)
async def attach_file(
    proposal_id: int,
    file: UploadFile = File(...),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    file_store: FileStore = Depends(get_file_store),
) -> ProposalResponse:
    """
    Attach a file.

    Raises:
        ProposalNotEditableError (409): Viewed or terminal
        AttachmentTooLargeError (400): Exceeds MAX_ATTACHMENT_BYTES
        FileStorageError (502): Storage rejected the upload
    """
    data = await file.read()
    service = ProposalService(db, clock, file_store=file_store)
    proposal = await service.attach_file(
        proposal_id,
        principal,
        data,
        filename=file.filename or "attachment",
        mime_type=file.content_type or "application/octet-stream",
    )
    return ProposalResponse.model_validate(proposal)
