"""
Project Service.

WHAT: Business logic for homeowner projects: creation, content edits,
the homeowner-driven lifecycle (publish, cancel, start, complete) and the
consistency report.

WHY: A project row has two writers: its homeowner and the acceptance
cascade (which awards it). Edits therefore carry an expected version and
lifecycle moves take the same per-project lock as the cascade. The
``awarded`` status can only be reached through acceptance; no homeowner
action sets it.

HOW: Orchestrates ProjectDAO with the temporal validator, maps
SQLAlchemy's StaleDataError (version_id_col) to ConcurrentModificationError,
and records every change in the audit log.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from homebid.core.auth import Principal
from homebid.core.clock import Clock, system_clock
from homebid.core.exceptions import (
    AuthorizationError,
    BusinessRuleViolation,
    ConcurrentModificationError,
    InvalidStateTransitionError,
    ProjectNotFoundError,
    ValidationError,
)
from homebid.dao.acceptance_operation import AcceptanceOperationDAO
from homebid.dao.project import ProjectDAO
from homebid.dao.proposal import ProposalDAO
from homebid.models.project import Project, ProjectStatus, ProjectType
from homebid.services.acceptance_coordinator import AcceptanceCoordinator
from homebid.services.audit import AuditService
from homebid.services.consistency import check_project_consistency
from homebid.services.temporal_validator import validate_project_dates


logger = logging.getLogger(__name__)


# Homeowner-driven moves; awarded is reached only through acceptance
PROJECT_TRANSITIONS: Dict[str, Tuple[FrozenSet[ProjectStatus], ProjectStatus]] = {
    "publish": (frozenset({ProjectStatus.DRAFT}), ProjectStatus.OPEN),
    "cancel": (frozenset({ProjectStatus.DRAFT, ProjectStatus.OPEN}), ProjectStatus.CANCELLED),
    "start": (frozenset({ProjectStatus.AWARDED}), ProjectStatus.IN_PROGRESS),
    "complete": (frozenset({ProjectStatus.IN_PROGRESS}), ProjectStatus.COMPLETED),
}

EDITABLE_PROJECT_FIELDS = (
    "title",
    "statement_of_work",
    "budget",
    "categories",
    "location",
    "project_type",
    "expiry_date",
    "decision_date",
)

EDITABLE_PROJECT_STATUSES = frozenset({ProjectStatus.DRAFT, ProjectStatus.OPEN})


class ProjectService:
    """
    Service for project operations.

    Example:
        service = ProjectService(db, clock)
        project = await service.create(principal, title="Kitchen", ...)
        await service.change_status(project.id, principal, "publish")
    """

    def __init__(self, session: AsyncSession, clock: Clock = system_clock):
        """
        Initialize ProjectService.

        Args:
            session: Async database session
            clock: Source of today's date for date rules
        """
        self.session = session
        self.clock = clock
        self.project_dao = ProjectDAO(session)
        self.proposal_dao = ProposalDAO(session)
        self.operation_dao = AcceptanceOperationDAO(session)
        self.audit = AuditService(session)

    async def _get_project(self, project_id: int) -> Project:
        project = await self.project_dao.get_by_id(project_id)
        if project is None:
            raise ProjectNotFoundError(
                message=f"Project with id {project_id} not found",
                project_id=project_id,
            )
        return project

    def _require_creator(self, project: Project, principal: Principal) -> None:
        if not (principal.is_homeowner and project.creator_id == principal.user_id):
            raise AuthorizationError(
                message="Only the homeowner who created this project can change it",
                user_id=principal.user_id,
                project_id=project.id,
            )

    def _validate_dates(self, expiry_date: date, decision_date: date, check_past: bool) -> None:
        violations = validate_project_dates(
            expiry_date,
            decision_date,
            today=self.clock.today() if check_past else None,
        )
        if violations:
            raise ValidationError(
                message="Project dates are invalid",
                violations=[v.to_dict() for v in violations],
            )

    async def _flush(self, project_id: int) -> None:
        """
        Flush a project write, turning a stale version into a 409.

        WHY: Takes the id rather than the instance; the rollback expires
        every loaded object and an attribute read would need a lazy load.
        """
        try:
            await self.session.flush()
        except StaleDataError:
            await self.session.rollback()
            raise ConcurrentModificationError(
                message="Project was modified by someone else, reload and retry",
                project_id=project_id,
            )

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(
        self,
        principal: Principal,
        title: str,
        expiry_date: date,
        decision_date: date,
        statement_of_work: Optional[str] = None,
        budget: Optional[Decimal] = None,
        categories: Optional[List[str]] = None,
        location: Optional[Dict[str, Any]] = None,
        project_type: ProjectType = ProjectType.OTHER,
        publish: bool = False,
    ) -> Project:
        """
        Create a project.

        Args:
            principal: Must be a homeowner
            publish: True creates it open for proposals, else draft

        Returns:
            Created Project

        Raises:
            AuthorizationError: Caller is not a homeowner
            ValidationError: expiry in the past or decision not after expiry
        """
        if not principal.is_homeowner:
            raise AuthorizationError(
                message="Only homeowners can create projects",
                user_id=principal.user_id,
            )

        self._validate_dates(expiry_date, decision_date, check_past=True)

        project = await self.project_dao.create(
            title=title,
            statement_of_work=statement_of_work,
            budget=budget,
            categories=list(categories or []),
            location=location,
            project_type=project_type,
            status=ProjectStatus.OPEN if publish else ProjectStatus.DRAFT,
            expiry_date=expiry_date,
            decision_date=decision_date,
            creator_id=principal.user_id,
        )

        await self.audit.log_create(
            resource_type="project",
            resource_id=project.id,
            actor_user_id=principal.user_id,
            extra_data={"status": project.status.value},
        )
        logger.info("Homeowner %s created project %s", principal.user_id, project.id)
        return project

    async def get(self, project_id: int, principal: Principal) -> Project:
        """
        Get a project.

        WHY: Drafts are private to their creator; any other caller gets a
        404 so draft ids do not leak.
        """
        project = await self._get_project(project_id)
        if project.status == ProjectStatus.DRAFT and not (
            principal.is_admin or project.creator_id == principal.user_id
        ):
            raise ProjectNotFoundError(
                message=f"Project with id {project_id} not found",
                project_id=project_id,
            )
        return project

    async def list_projects(
        self,
        principal: Principal,
        status: Optional[ProjectStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Project]:
        """
        List projects visible to the caller.

        - Homeowner: own projects
        - Contractor: open projects
        - Admin: all projects
        """
        if principal.is_homeowner:
            return await self.project_dao.list_for_creator(
                principal.user_id, status=status, skip=skip, limit=limit
            )
        if principal.is_contractor:
            return await self.project_dao.list_open(skip=skip, limit=limit)

        filters = {"status": status} if status is not None else {}
        return await self.project_dao.get_all(skip=skip, limit=limit, **filters)

    async def update(
        self,
        project_id: int,
        principal: Principal,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Project:
        """
        Edit project content.

        Args:
            project_id: Project ID
            principal: Must be the creator
            changes: Field values to set (unknown keys, status and version ignored)
            expected_version: Version the caller last read

        Raises:
            ConcurrentModificationError: expected_version is stale, or the
                row changed between read and write
            BusinessRuleViolation: Project is past the bidding stage
            ValidationError: Dates break a rule
        """
        project = await self._get_project(project_id)
        self._require_creator(project, principal)

        if expected_version is not None and expected_version != project.version:
            raise ConcurrentModificationError(
                message="Project was modified by someone else, reload and retry",
                project_id=project.id,
                expected_version=expected_version,
                current_version=project.version,
            )

        if project.status not in EDITABLE_PROJECT_STATUSES:
            raise BusinessRuleViolation(
                message=f"A {project.status.value} project can no longer be edited",
                project_id=project.id,
                current_state=project.status.value,
            )

        changes = {k: v for k, v in changes.items() if k in EDITABLE_PROJECT_FIELDS}
        if "expiry_date" in changes or "decision_date" in changes:
            self._validate_dates(
                changes.get("expiry_date", project.expiry_date),
                changes.get("decision_date", project.decision_date),
                check_past="expiry_date" in changes,
            )

        diff: Dict[str, Any] = {}
        for field, value in changes.items():
            if field == "categories" and value is not None:
                value = list(value)
            before = getattr(project, field)
            if before != value:
                diff[field] = {"before": str(before), "after": str(value)}
                setattr(project, field, value)

        if diff:
            await self._flush(project_id)
            await self.audit.log_update(
                resource_type="project",
                resource_id=project.id,
                actor_user_id=principal.user_id,
                changes=diff,
            )

        return project

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def _ensure_no_acceptance(self, project: Project) -> None:
        """
        Refuse to cancel a project that already has a winner.

        WHY: A cascade that failed at the award step leaves the project
        open with an accepted proposal; cancelling it then would strand
        that proposal, and resuming would award a cancelled project.
        """
        unfinished = await self.operation_dao.get_unfinished_for_project(project.id)
        accepted = await self.proposal_dao.get_accepted_for_project(project.id)
        if unfinished is not None or accepted:
            raise InvalidStateTransitionError(
                message="Project has an accepted proposal; finish or resume the acceptance instead",
                current_state=project.status.value,
                requested_state=ProjectStatus.CANCELLED.value,
                project_id=project.id,
                operation_id=unfinished.id if unfinished is not None else None,
            )

    async def change_status(self, project_id: int, principal: Principal, action: str) -> Project:
        """
        Apply a homeowner lifecycle action (publish, cancel, start, complete).

        WHY: Takes the project's acceptance lock so a cancel cannot race
        an acceptance cascade on the same project.

        Raises:
            AuthorizationError: Caller is not the creator
            InvalidStateTransitionError: Action not allowed from the current
                status, or cancelling a project with an accepted proposal
            ValidationError: Publishing a project whose bidding window already closed
        """
        if action not in PROJECT_TRANSITIONS:
            raise InvalidStateTransitionError(
                message=f"Unknown project action '{action}'",
                requested_state=action,
            )
        sources, target = PROJECT_TRANSITIONS[action]

        project = await self._get_project(project_id)
        self._require_creator(project, principal)

        lock = AcceptanceCoordinator.lock_for(project_id)
        async with lock:
            project = await self.project_dao.get_for_update(project_id)

            if project.status not in sources:
                raise InvalidStateTransitionError(
                    message=f"Cannot {action} a {project.status.value} project",
                    current_state=project.status.value,
                    requested_state=target.value,
                    project_id=project.id,
                )

            if target == ProjectStatus.OPEN:
                self._validate_dates(project.expiry_date, project.decision_date, check_past=True)

            if target == ProjectStatus.CANCELLED:
                await self._ensure_no_acceptance(project)

            before = project.status
            project.status = target
            await self._flush(project_id)

        await self.audit.log_status_change(
            resource_type="project",
            resource_id=project.id,
            actor_user_id=principal.user_id,
            before=before.value,
            after=target.value,
        )
        logger.info("Project %s moved %s -> %s", project.id, before.value, target.value)
        return project

    # =========================================================================
    # Consistency
    # =========================================================================

    async def consistency_report(self, project_id: int, principal: Principal) -> Dict[str, Any]:
        """
        Report invariant violations for a project.

        Returns:
            Dict with project status, proposal counts by status, issues,
            and the id of any unfinished acceptance operation
        """
        project = await self._get_project(project_id)
        if not principal.is_admin:
            self._require_creator(project, principal)

        proposals = await self.proposal_dao.list_for_project(project_id)
        issues = check_project_consistency(project, proposals)
        unfinished = await self.operation_dao.get_unfinished_for_project(project_id)

        return {
            "project_id": project.id,
            "project_status": project.status.value,
            "consistent": not issues,
            "proposal_counts": await self.proposal_dao.count_by_status(project_id),
            "issues": [issue.to_dict() for issue in issues],
            "unfinished_operation_id": unfinished.id if unfinished else None,
        }
