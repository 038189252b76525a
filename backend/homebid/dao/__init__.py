"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from homebid.dao.base import BaseDAO
from homebid.dao.audit_log import AuditLogDAO
from homebid.dao.project import ProjectDAO
from homebid.dao.proposal import ProposalDAO
from homebid.dao.acceptance_operation import AcceptanceOperationDAO

__all__ = [
    "BaseDAO",
    "AuditLogDAO",
    "ProjectDAO",
    "ProposalDAO",
    "AcceptanceOperationDAO",
]
