"""
Pydantic schemas for proposal endpoints.

WHAT: Request/response schemas for the proposal lifecycle API.

WHY: Schemas define API contracts for proposal operations:
1. Validate the shape of incoming data (business rules run in the service)
2. Document API for OpenAPI/Swagger
3. Keep derived fields out of requests: total_amount, tax_rate and
   status timestamps are response-only, and an unknown request key
   such as total_amount is ignored

HOW: Uses Pydantic v2 with Field constraints and ORM mode for
SQLAlchemy integration. Amounts are Decimal and serialize as strings.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field, model_validator

from homebid.models.proposal import ProposalStatus, RejectionReason, VisibilitySetting
from homebid.schemas.project import ProjectResponse


class ProposalCreate(BaseModel):
    """
    Proposal submission request schema.

    WHY: ``submit`` false stores a draft the contractor can keep editing;
    true (default) submits it to the homeowner immediately.
    """

    project_id: int = Field(..., gt=0, description="Project being bid on")
    title: str = Field(..., min_length=1, max_length=255, description="Proposal title")
    description_of_work: str = Field(
        ...,
        min_length=1,
        max_length=20000,
        description="Scope of work",
    )
    notes: str | None = Field(default=None, max_length=5000, description="Notes to the homeowner")
    clause_preview_html: str | None = Field(
        default=None,
        max_length=50000,
        description="Rendered contract clauses",
    )
    subtotal_amount: Decimal = Field(..., max_digits=12, decimal_places=2, description="Price")
    tax_included: bool = Field(default=False, description="Subtotal already includes tax")
    tax_jurisdiction: str | None = Field(
        default=None,
        max_length=16,
        description="Tax region code (default from settings)",
    )
    deposit_amount: Decimal = Field(..., max_digits=12, decimal_places=2, description="Deposit")
    deposit_due_on: date = Field(..., description="Deposit due date")
    proposed_start_date: date = Field(..., description="Work start")
    proposed_end_date: date = Field(..., description="Work end")
    expiry_date: date = Field(..., description="Offer lapses after this date")
    visibility_settings: VisibilitySetting | None = Field(default=None)
    submit: bool = Field(default=True, description="False keeps the proposal in draft")

    class Config:
        json_schema_extra = {
            "example": {
                "project_id": 1,
                "title": "Kitchen renovation",
                "description_of_work": "Remove existing cabinets, install new cabinets and counters",
                "subtotal_amount": "1000.00",
                "tax_included": False,
                "deposit_amount": "200.00",
                "deposit_due_on": "2025-01-05",
                "proposed_start_date": "2025-01-10",
                "proposed_end_date": "2025-02-10",
                "expiry_date": "2025-01-08",
            }
        }


class ProposalUpdate(BaseModel):
    """
    Proposal content edit schema.

    WHAT: Partial update; only provided fields change. total_amount is
    always re-derived server-side.
    """

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description_of_work: str | None = Field(default=None, min_length=1, max_length=20000)
    notes: str | None = Field(default=None, max_length=5000)
    clause_preview_html: str | None = Field(default=None, max_length=50000)
    subtotal_amount: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)
    tax_included: bool | None = None
    tax_jurisdiction: str | None = Field(default=None, max_length=16)
    deposit_amount: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)
    deposit_due_on: date | None = None
    proposed_start_date: date | None = None
    proposed_end_date: date | None = None
    expiry_date: date | None = None
    visibility_settings: VisibilitySetting | None = None

    @model_validator(mode="after")
    def required_fields_not_null(self) -> "ProposalUpdate":
        """
        Reject an explicit null for a field the proposal cannot be without.
        """
        nullable = {"notes", "clause_preview_html", "tax_jurisdiction"}
        for field in self.model_fields_set - nullable:
            if getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "subtotal_amount": "1200.00",
                "tax_included": True,
            }
        }


class ProposalTransition(BaseModel):
    """
    Status change request.

    WHY: One endpoint covers every edge of the state machine; accepted
    is routed to the acceptance cascade, rejected records the reason.
    """

    status: ProposalStatus = Field(..., description="Requested status")
    reason: RejectionReason | None = Field(default=None, description="Rejection reason")
    notes: str | None = Field(default=None, max_length=2000, description="Rejection notes")


class ProposalReject(BaseModel):
    """
    Proposal rejection request schema.

    WHY: Knowing why bids lose helps contractors price the next one.
    """

    reason: RejectionReason | None = Field(default=None, description="Rejection reason")
    notes: str | None = Field(default=None, max_length=2000, description="Free-text notes")

    class Config:
        json_schema_extra = {
            "example": {
                "reason": "too_expensive",
                "notes": "Over our budget by about 20%",
            }
        }


class AttachedFile(BaseModel):
    """Reference to a stored attachment."""

    id: str
    filename: str
    url: str
    size: int
    mime_type: str
    uploaded_at: datetime


class ProposalResponse(BaseModel):
    """
    Proposal response schema.

    WHAT: Structure for proposal data in API responses, including the
    derived total and every transition timestamp.
    """

    id: int
    project_id: int
    contractor_id: int
    homeowner_id: int
    title: str
    description_of_work: str
    notes: str | None = None
    clause_preview_html: str | None = None
    subtotal_amount: Decimal
    tax_included: bool
    tax_jurisdiction: str
    tax_rate: Decimal
    total_amount: Decimal
    deposit_amount: Decimal
    deposit_due_on: date
    proposed_start_date: date
    proposed_end_date: date
    expiry_date: date
    status: ProposalStatus
    is_selected: bool
    submitted_date: datetime | None = None
    viewed_date: datetime | None = None
    accepted_date: datetime | None = None
    rejected_date: datetime | None = None
    withdrawn_date: datetime | None = None
    last_updated: datetime | None = None
    last_modified_by: int | None = None
    rejected_by: int | None = None
    rejection_reason: RejectionReason | None = None
    rejection_reason_notes: str | None = None
    attached_files: list[AttachedFile] = Field(default_factory=list)
    visibility_settings: VisibilitySetting
    acceptance_operation_id: str | None = None
    is_editable: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ProposalListResponse(BaseModel):
    """List wrapper for proposal listings."""

    items: list[ProposalResponse] = Field(..., description="Proposals")
    total: int = Field(..., description="Number of proposals returned")


class AcceptanceResponse(BaseModel):
    """
    Result of a completed acceptance cascade.

    WHY: The caller learns in one response which proposal won, which
    siblings were rejected because of it, and the awarded project.
    """

    operation_id: str
    accepted_proposal: ProposalResponse
    rejected_sibling_ids: list[int]
    project: ProjectResponse

    @classmethod
    def from_result(cls, result: Any) -> "AcceptanceResponse":
        return cls(
            operation_id=result.operation_id,
            accepted_proposal=ProposalResponse.model_validate(result.accepted_proposal),
            rejected_sibling_ids=result.rejected_sibling_ids,
            project=ProjectResponse.model_validate(result.project),
        )
