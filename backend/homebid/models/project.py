"""
Project model for homeowner work requests.

WHAT: SQLAlchemy model representing a project contractors bid on.

WHY: The project is the aggregate proposals hang off. Its status is
written by two parties (the homeowner editing it, and the acceptance
cascade awarding it), so the row carries an optimistic version counter.

HOW: Uses SQLAlchemy 2.0 with:
- Status enum for the project lifecycle
- JSON for category list and location
- version_id_col so a stale UPDATE fails with StaleDataError
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Date,
    DateTime,
    Numeric,
    JSON,
)
from sqlalchemy.orm import Mapped

from homebid.models.base import Base, enum_column


class ProjectStatus(str, Enum):
    """
    Project lifecycle status.

    WHY: The proposal engine needs three meanings:
    - OPEN: accepting proposals
    - AWARDED: exactly one proposal accepted, work not started
    - IN_PROGRESS / COMPLETED / CANCELLED: closed for proposal purposes
    DRAFT projects are invisible to contractors.
    """

    DRAFT = "draft"
    OPEN = "open"
    AWARDED = "awarded"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProjectType(str, Enum):
    """Kind of work requested."""

    NEW_BUILD = "new_build"
    RENOVATION = "renovation"
    REPAIR = "repair"
    ADDITION = "addition"
    DEMOLITION = "demolition"
    LANDSCAPING = "landscaping"
    SPECIALTY = "specialty"
    OTHER = "other"


class Project(Base):
    """
    Homeowner project.

    Attributes:
        id: Primary key
        title: Project title
        statement_of_work: Description of the requested work
        budget: Homeowner's budget
        categories: Trade categories (JSON list of strings)
        location: Address/geo data (JSON object, opaque to the engine)
        project_type: Kind of work
        status: Current lifecycle status
        expiry_date: Last date new proposals are accepted
        decision_date: Date the homeowner intends to decide (after expiry_date)
        creator_id: Homeowner user id
        version: Optimistic lock counter
        created_at: Record creation timestamp
        updated_at: Last modification timestamp
    """

    __tablename__ = "projects"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)

    title: Mapped[str] = Column(String(255), nullable=False)
    statement_of_work: Mapped[Optional[str]] = Column(Text, nullable=True)
    budget: Mapped[Optional[Decimal]] = Column(Numeric(12, 2), nullable=True)
    categories: Mapped[List[str]] = Column(JSON, nullable=False, default=list)
    location: Mapped[Optional[Dict[str, Any]]] = Column(JSON, nullable=True)
    project_type: Mapped[ProjectType] = Column(
        enum_column(ProjectType, "projecttype"),
        nullable=False,
        default=ProjectType.OTHER,
    )

    status: Mapped[ProjectStatus] = Column(
        enum_column(ProjectStatus, "projectstatus"),
        nullable=False,
        default=ProjectStatus.DRAFT,
        index=True,
    )
    expiry_date: Mapped[date] = Column(Date, nullable=False)
    decision_date: Mapped[date] = Column(Date, nullable=False)

    # WHY: Identity lives in the external provider, so no FK to a users table
    creator_id: Mapped[int] = Column(Integer, nullable=False, index=True)

    version: Mapped[int] = Column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, title={self.title}, status={self.status})>"

    @property
    def is_open(self) -> bool:
        return self.status == ProjectStatus.OPEN

    def accepts_proposals_on(self, today: date) -> bool:
        """
        Check if a new proposal may be submitted today.

        Returns:
            True if project is open and today is on/before expiry_date
        """
        return self.is_open and today <= self.expiry_date
