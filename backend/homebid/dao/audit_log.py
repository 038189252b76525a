"""
Audit Log Data Access Object (DAO).

WHAT: Data access layer for the proposal/project audit trail.

HOW: Standalone DAO (not BaseDAO) that overrides update/delete to
enforce immutability.
"""

from typing import Optional, List, Dict, Any
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homebid.models.audit_log import AuditLog, AuditAction
from homebid.core.exceptions import AuditLogImmutableError


class AuditLogDAO:
    """
    Data Access Object for audit log operations.

    WHY: Append-only by construction: create and query, never modify.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize AuditLogDAO with database session.

        Args:
            session: Async database session
        """
        self.session = session

    async def create(
        self,
        action: AuditAction,
        resource_type: str,
        actor_user_id: Optional[int] = None,
        resource_id: Optional[Any] = None,
        changes: Optional[Dict[str, Any]] = None,
        extra_data: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """
        Create a new audit log entry.

        Args:
            action: Type of event (from AuditAction enum)
            resource_type: Category of affected resource
            actor_user_id: User who performed the action (None for system)
            resource_id: Specific resource ID (stored as string)
            changes: Before/after values for mutations
            extra_data: Additional context
            ip_address: Client IP address
            user_agent: Client browser/application info

        Returns:
            The created AuditLog entry
        """
        log = AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            changes=changes,
            extra_data=extra_data,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(log)
        await self.session.flush()
        await self.session.refresh(log)
        return log

    async def get_for_resource(
        self,
        resource_type: str,
        resource_id: Any,
        action: Optional[AuditAction] = None,
    ) -> List[AuditLog]:
        """
        Get the trail for one resource, oldest first.

        Args:
            resource_type: "proposal", "project" or "acceptance"
            resource_id: Resource id
            action: Optional action filter

        Returns:
            Matching audit entries
        """
        query = select(AuditLog).where(
            AuditLog.resource_type == resource_type,
            AuditLog.resource_id == str(resource_id),
        )
        if action is not None:
            query = query.where(AuditLog.action == action)

        result = await self.session.execute(query.order_by(AuditLog.id))
        return list(result.scalars().all())

    async def update(self, log_id: int, **kwargs: Any) -> None:
        """
        Attempt to update an audit log (BLOCKED).

        Raises:
            AuditLogImmutableError: Always raised - updates not allowed
        """
        raise AuditLogImmutableError("Audit logs are immutable and cannot be updated.")

    async def delete(self, log_id: int) -> None:
        """
        Attempt to delete an audit log (BLOCKED).

        Raises:
            AuditLogImmutableError: Always raised - deletions not allowed
        """
        raise AuditLogImmutableError("Audit logs cannot be deleted.")
