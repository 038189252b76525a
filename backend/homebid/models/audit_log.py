"""
Audit Log Model.

WHAT: SQLAlchemy model for the append-only trail of proposal and
project mutations.

WHY: Every status change in this system is a business decision
(a homeowner accepted an offer, a contractor withdrew one). The audit
trail records who made it, from where, and what changed, so disputes
and half-applied cascades can be reconstructed.

HOW: Immutable append-only table. Uses JSON for flexible storage of
changes and metadata (JSONB on PostgreSQL, JSON on SQLite).
"""

import enum
from sqlalchemy import Column, Integer, String, Enum, Text, JSON

from homebid.models.base import Base, TimestampMixin, PrimaryKeyMixin


class AuditAction(str, enum.Enum):
    """
    Enumeration of auditable actions.

    Categories:
    - Data: create/update/delete of projects and proposals
    - Lifecycle: status transitions
    - Acceptance: cascade start, completion and failure
    """

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    STATUS_CHANGE = "STATUS_CHANGE"
    ATTACHMENT_ADDED = "ATTACHMENT_ADDED"

    ACCEPTANCE_STARTED = "ACCEPTANCE_STARTED"
    ACCEPTANCE_COMPLETED = "ACCEPTANCE_COMPLETED"
    ACCEPTANCE_FAILED = "ACCEPTANCE_FAILED"


class AuditLog(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Immutable audit log entry.

    Fields:
    - actor_user_id: Who performed the action (None for system actions
      such as the expiry sweep)
    - action: What type of event occurred (AuditAction enum)
    - resource_type: "proposal", "project" or "acceptance"
    - resource_id: Specific resource ID
    - changes: Before/after values, e.g. {"status": {"before": "submitted", "after": "accepted"}}
    - extra_data: Additional context (operation id, rejection reason, ...)
    - ip_address / user_agent: Request context
    """

    __tablename__ = "audit_logs"

    # WHY: No FK, identities are external
    actor_user_id = Column(Integer, nullable=True, index=True)

    action = Column(Enum(AuditAction), nullable=False, index=True)

    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(String(64), nullable=True, index=True)

    changes = Column(JSON, nullable=True)

    # NOTE: Named 'extra_data' because 'metadata' is reserved by SQLAlchemy
    extra_data = Column(JSON, nullable=True)

    ip_address = Column(String(45), nullable=True)  # IPv6 max length
    user_agent = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, action={self.action.value}, "
            f"actor_user_id={self.actor_user_id}, resource_type={self.resource_type})>"
        )
