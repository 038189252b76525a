"""
Pydantic schemas for project endpoints.

WHAT: Request/response schemas for homeowner projects and the
consistency report.

WHY: Schemas define API contracts for project operations:
1. Validate incoming request data
2. Document API for OpenAPI/Swagger
3. Keep status out of content edits (status only moves through the
   lifecycle endpoints and the acceptance cascade)

HOW: Uses Pydantic v2 with Field validators and ORM mode for SQLAlchemy.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field

from homebid.models.project import ProjectStatus, ProjectType


class ProjectCreate(BaseModel):
    """
    Project creation request schema.

    WHY: Projects start in DRAFT unless ``publish`` is set, in which case
    they open for proposals immediately.
    """

    title: str = Field(..., min_length=1, max_length=255, description="Project title")
    statement_of_work: str | None = Field(
        default=None,
        max_length=20000,
        description="What the homeowner wants done",
    )
    budget: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    categories: list[str] = Field(default_factory=list, description="Trade categories")
    location: dict[str, Any] | None = Field(default=None, description="Address and geo data")
    project_type: ProjectType = Field(default=ProjectType.OTHER)
    expiry_date: date = Field(..., description="Last day proposals are accepted")
    decision_date: date = Field(..., description="Day the homeowner intends to decide")
    publish: bool = Field(default=False, description="Open for proposals immediately")

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Kitchen renovation",
                "statement_of_work": "Replace cabinets and counters",
                "budget": "25000.00",
                "categories": ["carpentry", "plumbing"],
                "project_type": "renovation",
                "expiry_date": "2025-01-20",
                "decision_date": "2025-01-27",
                "publish": True,
            }
        }


class ProjectUpdate(BaseModel):
    """
    Project content edit schema.

    WHY: ``expected_version`` is the version the client last read; a
    mismatch means someone else (or the acceptance cascade) changed the
    project and the edit is refused with 409.
    """

    title: str | None = Field(default=None, min_length=1, max_length=255)
    statement_of_work: str | None = Field(default=None, max_length=20000)
    budget: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    categories: list[str] | None = None
    location: dict[str, Any] | None = None
    project_type: ProjectType | None = None
    expiry_date: date | None = None
    decision_date: date | None = None
    expected_version: int | None = Field(default=None, ge=1)


class ProjectResponse(BaseModel):
    """Project data in API responses."""

    id: int
    title: str
    statement_of_work: str | None = None
    budget: Decimal | None = None
    categories: list[str] = Field(default_factory=list)
    location: dict[str, Any] | None = None
    project_type: ProjectType
    status: ProjectStatus
    expiry_date: date
    decision_date: date
    creator_id: int
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProjectListResponse(BaseModel):
    """Paginated project list response schema."""

    items: list[ProjectResponse]
    total: int
    skip: int
    limit: int


class ConsistencyIssueResponse(BaseModel):
    code: str
    message: str
    proposal_ids: list[int] = Field(default_factory=list)


class ConsistencyReportResponse(BaseModel):
    """
    Invariant check result for one project.

    WHY: Lets a homeowner or operator see a half-finished acceptance and
    the operation id to resume.
    """

    project_id: int
    project_status: ProjectStatus
    consistent: bool
    proposal_counts: dict[str, int]
    issues: list[ConsistencyIssueResponse]
    unfinished_operation_id: Optional[str] = None
