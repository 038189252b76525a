"""
Acceptance operation ledger.

WHAT: One row per attempt to accept a proposal.

WHY: Accepting a proposal writes the target, every pending sibling and
the project. Those writes are committed step by step (the accepted
target first), so a crash or error can leave the cascade half done.
The ledger records which steps completed under a stable operation id;
a retry reads it and skips whatever was already applied.

HOW: String UUID primary key returned to the caller, JSON lists for the
completed steps and rejected sibling ids, a status enum for the
reconciliation job to query.
"""

import uuid
from enum import Enum
from typing import List, Optional
from sqlalchemy import Column, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped

from homebid.models.base import Base, TimestampMixin, enum_column


class AcceptanceStep(str, Enum):
    """Cascade steps, in execution order."""

    ACCEPT_TARGET = "accept_target"
    REJECT_SIBLINGS = "reject_siblings"
    AWARD_PROJECT = "award_project"


class AcceptanceOperationStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def _new_operation_id() -> str:
    return str(uuid.uuid4())


class AcceptanceOperation(Base, TimestampMixin):
    """
    Ledger entry for an acceptance cascade.

    Attributes:
        id: Operation id (UUID string)
        project_id: Project being awarded
        proposal_id: Proposal being accepted
        actor_id: Homeowner who requested the acceptance
        status: in_progress / completed / failed
        completed_steps: AcceptanceStep values already applied
        failed_step: Step that raised on the last attempt
        error: Last error message
        rejected_proposal_ids: Siblings rejected by this operation so far
        attempts: Number of times the remaining steps were run
    """

    __tablename__ = "acceptance_operations"

    id: Mapped[str] = Column(String(36), primary_key=True, default=_new_operation_id)
    project_id: Mapped[int] = Column(
        Integer,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    proposal_id: Mapped[int] = Column(
        Integer,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    actor_id: Mapped[int] = Column(Integer, nullable=False)
    status: Mapped[AcceptanceOperationStatus] = Column(
        enum_column(AcceptanceOperationStatus, "acceptanceoperationstatus"),
        nullable=False,
        default=AcceptanceOperationStatus.IN_PROGRESS,
        index=True,
    )
    completed_steps: Mapped[List[str]] = Column(JSON, nullable=False, default=list)
    failed_step: Mapped[Optional[str]] = Column(String(32), nullable=True)
    error: Mapped[Optional[str]] = Column(Text, nullable=True)
    rejected_proposal_ids: Mapped[List[int]] = Column(JSON, nullable=False, default=list)
    attempts: Mapped[int] = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<AcceptanceOperation(id={self.id}, proposal_id={self.proposal_id}, "
            f"status={self.status}, steps={self.completed_steps})>"
        )

    def has_completed(self, step: AcceptanceStep) -> bool:
        return step.value in (self.completed_steps or [])

    @property
    def is_finished(self) -> bool:
        return self.status == AcceptanceOperationStatus.COMPLETED
