"""
Database models package.

WHY: Centralizing model imports ensures Alembic and create_all see every
table, and gives services one place to import models from.
"""

from homebid.models.base import Base, TimestampMixin, PrimaryKeyMixin
from homebid.models.project import Project, ProjectStatus, ProjectType
from homebid.models.proposal import (
    Proposal,
    ProposalStatus,
    RejectionReason,
    VisibilitySetting,
    TERMINAL_STATUSES,
    PENDING_STATUSES,
    EDITABLE_STATUSES,
)
from homebid.models.acceptance_operation import (
    AcceptanceOperation,
    AcceptanceOperationStatus,
    AcceptanceStep,
)
from homebid.models.audit_log import AuditLog, AuditAction

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "Project",
    "ProjectStatus",
    "ProjectType",
    "Proposal",
    "ProposalStatus",
    "RejectionReason",
    "VisibilitySetting",
    "TERMINAL_STATUSES",
    "PENDING_STATUSES",
    "EDITABLE_STATUSES",
    "AcceptanceOperation",
    "AcceptanceOperationStatus",
    "AcceptanceStep",
    "AuditLog",
    "AuditAction",
]
