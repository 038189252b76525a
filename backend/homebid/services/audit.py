"""
Audit logging service.

WHAT: Service layer for creating audit log entries with request context.

WHY: Every proposal and project mutation is a business decision worth
recording. This service gives the lifecycle services one-line helpers
and guarantees an audit failure never aborts the business operation.

HOW: Wraps AuditLogDAO, pulls IP/user agent from the RequestContext
middleware, and writes inside a SAVEPOINT so a failed insert can be
rolled back without discarding the caller's pending changes.
"""

import logging
from typing import Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession

from homebid.dao.audit_log import AuditLogDAO
from homebid.models.audit_log import AuditLog, AuditAction
from homebid.middleware.request_context import get_request_context


# Logger for audit service errors (not audit events themselves)
logger = logging.getLogger(__name__)


class AuditService:
    """
    Service for creating audit log entries.

    Example:
        audit = AuditService(db)
        await audit.log_status_change(
            resource_type="proposal",
            resource_id=proposal.id,
            actor_user_id=principal.user_id,
            before="submitted",
            after="accepted",
        )
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize audit service with database session.

        Args:
            session: Async database session for audit log persistence
        """
        self.dao = AuditLogDAO(session)
        self._session = session

    def _get_context(self) -> tuple[Optional[str], Optional[str]]:
        ctx = get_request_context()
        if ctx:
            return ctx.ip_address, ctx.user_agent
        return None, None

    async def log_event(
        self,
        action: AuditAction,
        resource_type: str,
        actor_user_id: Optional[int] = None,
        resource_id: Optional[Any] = None,
        changes: Optional[Dict[str, Any]] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Log a generic audit event.

        Args:
            action: Type of event (from AuditAction enum)
            resource_type: Category of affected resource
            actor_user_id: User who performed the action (None for system)
            resource_id: Specific resource ID
            changes: Before/after values for mutations
            extra_data: Additional context

        Returns:
            Created AuditLog or None if logging failed

        Note:
            This method never raises. Errors are logged to the
            application logger instead.
        """
        ip_address, user_agent = self._get_context()
        if extra_data is not None:
            ctx = get_request_context()
            if ctx:
                extra_data = {**extra_data, "request_id": ctx.request_id}

        try:
            async with self._session.begin_nested():
                return await self.dao.create(
                    actor_user_id=actor_user_id,
                    action=action,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    changes=changes,
                    extra_data=extra_data,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )

        except Exception as e:
            # WHY: Audit logging must never break the business operation
            logger.error(f"Failed to create audit log: {e}", exc_info=True)
            return None

    async def log_create(
        self,
        resource_type: str,
        resource_id: Any,
        actor_user_id: Optional[int],
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Log creation of a project or proposal."""
        return await self.log_event(
            action=AuditAction.CREATE,
            resource_type=resource_type,
            resource_id=resource_id,
            actor_user_id=actor_user_id,
            extra_data=extra_data,
        )

    async def log_update(
        self,
        resource_type: str,
        resource_id: Any,
        actor_user_id: Optional[int],
        changes: Dict[str, Any],
    ) -> Optional[AuditLog]:
        """Log a content edit with before/after values."""
        return await self.log_event(
            action=AuditAction.UPDATE,
            resource_type=resource_type,
            resource_id=resource_id,
            actor_user_id=actor_user_id,
            changes=changes,
        )

    async def log_delete(
        self,
        resource_type: str,
        resource_id: Any,
        actor_user_id: Optional[int],
    ) -> Optional[AuditLog]:
        """Log a soft delete."""
        return await self.log_event(
            action=AuditAction.DELETE,
            resource_type=resource_type,
            resource_id=resource_id,
            actor_user_id=actor_user_id,
        )

    async def log_status_change(
        self,
        resource_type: str,
        resource_id: Any,
        actor_user_id: Optional[int],
        before: str,
        after: str,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Log a lifecycle transition.

        Args:
            resource_type: "proposal" or "project"
            resource_id: Resource id
            actor_user_id: Acting user, None for system transitions
            before: Previous status value
            after: New status value
            extra_data: e.g. rejection reason, acceptance operation id
        """
        return await self.log_event(
            action=AuditAction.STATUS_CHANGE,
            resource_type=resource_type,
            resource_id=resource_id,
            actor_user_id=actor_user_id,
            changes={"status": {"before": before, "after": after}},
            extra_data=extra_data,
        )
