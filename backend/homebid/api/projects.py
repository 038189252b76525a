"""
Project API endpoints.

WHAT: RESTful API for homeowner projects, their lifecycle, the proposals
on them and the consistency report.

WHY: A project is what contractors bid on. Homeowners create and manage
their own; contractors browse open ones. ``awarded`` is not reachable
from here; it is set only by accepting a proposal.

HOW: FastAPI router over ProjectService and ProposalService.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from homebid.core.auth import Principal
from homebid.core.clock import Clock, get_clock
from homebid.core.deps import get_current_principal, require_homeowner
from homebid.db.session import get_db
from homebid.models.project import ProjectStatus
from homebid.schemas.project import (
    ConsistencyReportResponse,
    ProjectCreate,
    ProjectListResponse,
    ProjectResponse,
    ProjectUpdate,
)
from homebid.schemas.proposal import ProposalListResponse, ProposalResponse
from homebid.services.project_service import ProjectService
from homebid.services.proposal_service import ProposalService


router = APIRouter(prefix="/projects", tags=["projects"])


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create project",
    description="Create a project as draft, or open it immediately with publish=true",
)
async def create_project(
    data: ProjectCreate,
    principal: Principal = Depends(require_homeowner),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProjectResponse:
    """
    Create a project.

    Raises:
        ValidationError (400): decision_date not after expiry_date, or
            expiry_date in the past
    """
    service = ProjectService(db, clock)
    project = await service.create(principal, **data.model_dump())
    return ProjectResponse.model_validate(project)


@router.get(
    "",
    response_model=ProjectListResponse,
    summary="List projects",
    description="Homeowners see their own projects; contractors see open projects",
)
async def list_projects(
    status_filter: Optional[ProjectStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProjectListResponse:
    service = ProjectService(db, clock)
    projects = await service.list_projects(principal, status=status_filter, skip=skip, limit=limit)
    return ProjectListResponse(
        items=[ProjectResponse.model_validate(p) for p in projects],
        total=len(projects),
        skip=skip,
        limit=limit,
    )


@router.get(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Get project",
)
async def get_project(
    project_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProjectResponse:
    service = ProjectService(db, clock)
    project = await service.get(project_id, principal)
    return ProjectResponse.model_validate(project)


@router.patch(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Update project",
    description="Edit project content; pass expected_version to detect concurrent changes",
)
async def update_project(
    project_id: int,
    data: ProjectUpdate,
    principal: Principal = Depends(require_homeowner),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProjectResponse:
    """
    Update a project.

    Raises:
        ConcurrentModificationError (409): expected_version is stale
        BusinessRuleViolation (422): Project past the bidding stage
    """
    changes = data.model_dump(exclude_unset=True)
    expected_version = changes.pop("expected_version", None)

    service = ProjectService(db, clock)
    project = await service.update(project_id, principal, changes, expected_version=expected_version)
    return ProjectResponse.model_validate(project)


@router.post(
    "/{project_id}/{action}",
    response_model=ProjectResponse,
    summary="Change project status",
    description="publish (draft→open), cancel (draft/open→cancelled), "
    "start (awarded→in_progress), complete (in_progress→completed)",
)
async def change_project_status(
    project_id: int,
    action: str,
    principal: Principal = Depends(require_homeowner),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProjectResponse:
    service = ProjectService(db, clock)
    project = await service.change_status(project_id, principal, action)
    return ProjectResponse.model_validate(project)


@router.get(
    "/{project_id}/proposals",
    response_model=ProposalListResponse,
    summary="List proposals on a project",
    description="Homeowner sees all non-draft proposals; a contractor sees their own",
)
async def list_project_proposals(
    project_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProposalListResponse:
    """
    List proposals for a project.

    WHY: Lapsed pending proposals on the project are expired before the
    read, so no listing shows an expired offer as submitted.
    """
    service = ProposalService(db, clock)
    proposals = await service.list_for_project(project_id, principal)
    items = [ProposalResponse.model_validate(p) for p in proposals]
    return ProposalListResponse(items=items, total=len(items))


@router.get(
    "/{project_id}/consistency",
    response_model=ConsistencyReportResponse,
    summary="Consistency report",
    description="Invariant violations between the project and its proposals",
)
async def consistency_report(
    project_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ConsistencyReportResponse:
    service = ProjectService(db, clock)
    report = await service.consistency_report(project_id, principal)
    return ConsistencyReportResponse(**report)
