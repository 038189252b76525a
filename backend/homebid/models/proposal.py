"""
Proposal model for contractor offers against a project.

WHAT: SQLAlchemy model representing a contractor's priced, scheduled
offer on a homeowner project.

WHY: Proposals carry every field the lifecycle engine reasons about:
- Financials (subtotal, tax flag, derived total, deposit)
- Schedule (deposit due, start/end, expiry)
- Lifecycle status with per-transition timestamps
- Rejection metadata and soft-delete flag

HOW: Uses SQLAlchemy 2.0 with:
- Status enum for the proposal state machine
- JSON for the ordered attachment list
- A partial unique index allowing at most one live accepted proposal
  per project, enforced by the database itself
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped

from homebid.models.base import Base, enum_column


class ProposalStatus(str, Enum):
    """
    Proposal lifecycle status.

    WHY: Tracks proposal through the bidding process:
    - DRAFT: Being prepared, not visible to the homeowner
    - SUBMITTED: Sent to the homeowner for review
    - VIEWED: Homeowner has opened it
    - ACCEPTED: Homeowner selected it (terminal)
    - REJECTED: Homeowner declined it, or another proposal won (terminal)
    - WITHDRAWN: Contractor retracted it (terminal)
    - EXPIRED: expiry_date passed with no decision (terminal)
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset(
    {
        ProposalStatus.ACCEPTED,
        ProposalStatus.REJECTED,
        ProposalStatus.WITHDRAWN,
        ProposalStatus.EXPIRED,
    }
)

# Awaiting a homeowner decision
PENDING_STATUSES = frozenset({ProposalStatus.SUBMITTED, ProposalStatus.VIEWED})

# Content may change only here
EDITABLE_STATUSES = frozenset({ProposalStatus.DRAFT, ProposalStatus.SUBMITTED})


class RejectionReason(str, Enum):
    """Closed set of reasons a homeowner can give when rejecting."""

    INCOMPLETE_PROPOSAL = "incomplete_proposal"
    TOO_EXPENSIVE = "too_expensive"
    TIMELINE_TOO_LONG = "timeline_too_long"
    OUT_OF_SCOPE_ITEMS = "out_of_scope_items"
    OTHER = "other"


class VisibilitySetting(str, Enum):
    """
    Access-control hint consumed by presentation, never by the engine.
    """

    PRIVATE = "private"
    SHARED_WITH_TARGET_USER = "shared_with_target_user"
    SHARED_WITH_PARTICIPANT = "shared_with_participant"
    PUBLIC_TO_INVITEES = "public_to_invitees"
    PUBLIC_TO_MARKETPLACE = "public_to_marketplace"
    ADMIN_ONLY = "admin_only"


class Proposal(Base):
    """
    Contractor proposal model.

    Attributes:
        id: Primary key
        project_id: Owning project
        contractor_id: Submitting contractor (owner for content edits)
        homeowner_id: Project creator, denormalized for access checks
        title / description_of_work / notes / clause_preview_html: Content
        subtotal_amount: Pre-tax (or tax-inclusive) price, > 0
        tax_included: Whether subtotal already includes tax
        tax_jurisdiction / tax_rate: Rate used for the last total derivation
        total_amount: Derived from subtotal and tax flag, never caller-set
        deposit_amount: > 0 and <= total_amount
        deposit_due_on / proposed_start_date / proposed_end_date / expiry_date: Schedule
        status: Current lifecycle status
        is_selected: True only when status is accepted
        submitted_date .. withdrawn_date: Transition timestamps
        last_updated: Last content or status change
        last_modified_by: User who made the last change
        rejected_by / rejection_reason / rejection_reason_notes: Rejection metadata
        attached_files: Ordered list of file references
        visibility_settings: Presentation hint
        acceptance_operation_id: Acceptance cascade that last wrote this row
        is_deleted: Soft-delete flag
    """

    __tablename__ = "proposals"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)

    # Ownership
    project_id: Mapped[int] = Column(
        Integer,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contractor_id: Mapped[int] = Column(Integer, nullable=False, index=True)
    homeowner_id: Mapped[int] = Column(Integer, nullable=False, index=True)

    # Content
    title: Mapped[str] = Column(String(255), nullable=False)
    description_of_work: Mapped[str] = Column(Text, nullable=False)
    notes: Mapped[Optional[str]] = Column(Text, nullable=True)
    clause_preview_html: Mapped[Optional[str]] = Column(Text, nullable=True)

    # Financials
    subtotal_amount: Mapped[Decimal] = Column(Numeric(12, 2), nullable=False)
    tax_included: Mapped[bool] = Column(Boolean, nullable=False, default=False)
    tax_jurisdiction: Mapped[str] = Column(String(16), nullable=False)
    tax_rate: Mapped[Decimal] = Column(Numeric(6, 5), nullable=False)
    total_amount: Mapped[Decimal] = Column(Numeric(12, 2), nullable=False)
    deposit_amount: Mapped[Decimal] = Column(Numeric(12, 2), nullable=False)

    # Schedule
    deposit_due_on: Mapped[date] = Column(Date, nullable=False)
    proposed_start_date: Mapped[date] = Column(Date, nullable=False)
    proposed_end_date: Mapped[date] = Column(Date, nullable=False)
    expiry_date: Mapped[date] = Column(Date, nullable=False, index=True)

    # Lifecycle
    status: Mapped[ProposalStatus] = Column(
        enum_column(ProposalStatus, "proposalstatus"),
        nullable=False,
        default=ProposalStatus.DRAFT,
        index=True,
    )
    is_selected: Mapped[bool] = Column(Boolean, nullable=False, default=False)
    submitted_date: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    viewed_date: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    accepted_date: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    rejected_date: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    withdrawn_date: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    last_updated: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    last_modified_by: Mapped[Optional[int]] = Column(Integer, nullable=True)

    # Rejection metadata
    rejected_by: Mapped[Optional[int]] = Column(Integer, nullable=True)
    rejection_reason: Mapped[Optional[RejectionReason]] = Column(
        enum_column(RejectionReason, "rejectionreason"),
        nullable=True,
    )
    rejection_reason_notes: Mapped[Optional[str]] = Column(Text, nullable=True)

    # Attachments: [{"id", "filename", "url", "size", "mime_type", "uploaded_at"}]
    attached_files: Mapped[List[Dict[str, Any]]] = Column(JSON, nullable=False, default=list)

    visibility_settings: Mapped[VisibilitySetting] = Column(
        enum_column(VisibilitySetting, "visibilitysetting"),
        nullable=False,
        default=VisibilitySetting.SHARED_WITH_TARGET_USER,
    )

    acceptance_operation_id: Mapped[Optional[str]] = Column(
        String(36),
        nullable=True,
        index=True,
    )

    is_deleted: Mapped[bool] = Column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        # WHY: Last line of defence for "at most one accepted proposal per
        # project", independent of application locking
        Index(
            "uq_proposals_one_accepted_per_project",
            "project_id",
            unique=True,
            postgresql_where=text("status = 'accepted' AND is_deleted = false"),
            sqlite_where=text("status = 'accepted' AND is_deleted = 0"),
        ),
        Index("ix_proposals_project_status", "project_id", "status"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Proposal(id={self.id}, project_id={self.project_id}, status={self.status})>"

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES

    def is_lapsed(self, today: date) -> bool:
        """
        Check if the offer lapsed without a decision.

        Returns:
            True if still pending and expiry_date is before today
        """
        return self.is_pending and self.expiry_date < today
