"""
Acceptance coordinator.

WHAT: The only code path that moves a proposal to ``accepted``. Accepting
one proposal also rejects every competing pending proposal on the
project and awards the project.

WHY: These writes touch several rows and must behave as one unit:
there must never be two accepted proposals on a project, and a project
must not stay un-awarded while it has an accepted proposal. A crash
mid-cascade has to leave "one accepted, some siblings still pending"
(recoverable) rather than "siblings rejected, nothing accepted".

HOW:
1. Serialize per project: an in-process asyncio.Lock, plus
   SELECT ... FOR UPDATE on the project row, plus the project's
   optimistic version column and a partial unique index on accepted
   proposals for writers in other processes.
2. Check ownership (AuthorizationError) and state
   (InvalidStateTransitionError) before writing anything.
3. Commit the accepted target together with a new AcceptanceOperation
   ledger row. From here on the acceptance is durable and the operation
   id identifies the cascade.
4. Reject pending siblings (reason "other", note naming the selected
   proposal), commit, record the step in the ledger.
5. Award the project, commit, mark the ledger completed.

A failure in step 4 or 5 is rolled back, the remaining steps are retried
(ACCEPTANCE_STEP_RETRIES), and if they still fail the ledger is marked
failed and PartialAcceptanceFailure is raised naming the step and the
entities that were and were not updated. resume() re-runs the remaining
steps of a ledger entry; every step skips work already applied, so it
is safe to call any number of times.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from homebid.core.auth import Principal
from homebid.core.clock import Clock, system_clock
from homebid.core.config import settings
from homebid.core.exceptions import (
    AcceptanceOperationNotFoundError,
    AuthorizationError,
    InvalidStateTransitionError,
    PartialAcceptanceFailure,
    ProjectNotFoundError,
    ProposalNotFoundError,
)
from homebid.dao.acceptance_operation import AcceptanceOperationDAO
from homebid.dao.project import ProjectDAO
from homebid.dao.proposal import ProposalDAO
from homebid.models.acceptance_operation import (
    AcceptanceOperation,
    AcceptanceOperationStatus,
    AcceptanceStep,
)
from homebid.models.audit_log import AuditAction
from homebid.models.project import Project, ProjectStatus
from homebid.models.proposal import Proposal, ProposalStatus, RejectionReason
from homebid.services.audit import AuditService
from homebid.services.proposal_state_machine import Actor, apply_transition


logger = logging.getLogger(__name__)


@dataclass
class AcceptanceResult:
    """Outcome of a completed acceptance cascade."""

    operation_id: str
    accepted_proposal: Proposal
    project: Project
    rejected_sibling_ids: List[int] = field(default_factory=list)


def selection_note(selected: Proposal) -> str:
    """System note written on siblings rejected by a cascade."""
    return (
        f"Automatically rejected: the homeowner selected another proposal "
        f"(#{selected.id} \"{selected.title}\") for this project."
    )


class AcceptanceCoordinator:
    """
    Runs acceptance cascades.

    Example:
        coordinator = AcceptanceCoordinator(db, clock)
        result = await coordinator.accept(proposal_id, principal)
        result.rejected_sibling_ids  # [12, 15]
    """

    # WHY: Weak values so idle locks are collected; a lock lives only while
    # some coroutine holds or waits on it
    _locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = system_clock,
        max_retries: Optional[int] = None,
    ):
        """
        Initialize AcceptanceCoordinator.

        Args:
            session: Async database session; the coordinator commits on it
            clock: Source of "now" for transition timestamps
            max_retries: Extra attempts for steps 4-5 (default from settings)
        """
        self.session = session
        self.clock = clock
        self.max_retries = settings.ACCEPTANCE_STEP_RETRIES if max_retries is None else max_retries
        self.proposal_dao = ProposalDAO(session)
        self.project_dao = ProjectDAO(session)
        self.operation_dao = AcceptanceOperationDAO(session)
        self.audit = AuditService(session)

    @classmethod
    def lock_for(cls, project_id: int) -> asyncio.Lock:
        """Get the in-process lock serializing cascades on one project."""
        lock = cls._locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            cls._locks[project_id] = lock
        return lock

    # =========================================================================
    # Entry points
    # =========================================================================

    async def accept(self, proposal_id: int, principal: Principal) -> AcceptanceResult:
        """
        Accept a proposal and run the cascade.

        Args:
            proposal_id: Proposal to accept
            principal: Must be the homeowner of the proposal's project

        Returns:
            AcceptanceResult with the accepted proposal, awarded project
            and ids of the siblings rejected

        Raises:
            ProposalNotFoundError: Unknown or soft-deleted proposal
            AuthorizationError: Principal is not the project's homeowner
            InvalidStateTransitionError: Proposal not submitted/viewed,
                lapsed, or project not open / already awarded
            PartialAcceptanceFailure: Target accepted but the cascade
                could not be finished
        """
        proposal = await self.proposal_dao.get_active(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(
                message=f"Proposal with id {proposal_id} not found",
                proposal_id=proposal_id,
            )

        if not (principal.is_homeowner and proposal.homeowner_id == principal.user_id):
            raise AuthorizationError(
                message="Only the project's homeowner can accept a proposal",
                user_id=principal.user_id,
                proposal_id=proposal_id,
            )

        project_id = proposal.project_id
        lock = self.lock_for(project_id)
        async with lock:
            # WHY: Another cascade may have finished while we waited
            await self.session.refresh(proposal)
            project = await self.project_dao.get_for_update(project_id)
            if project is None:
                raise ProjectNotFoundError(
                    message=f"Project with id {project_id} not found",
                    project_id=project_id,
                )

            await self._check_preconditions(proposal, project)
            operation = await self._accept_target(proposal, project, principal)
            return await self._run_remaining(operation, proposal, project)

    async def resume(
        self,
        operation_id: str,
        principal: Optional[Principal] = None,
    ) -> AcceptanceResult:
        """
        Finish an interrupted cascade.

        Args:
            operation_id: Ledger id returned by PartialAcceptanceFailure
            principal: Caller; must be the homeowner who started it or an
                admin. None when called by the reconciliation job.

        Returns:
            AcceptanceResult for the (now completed) operation

        Raises:
            AcceptanceOperationNotFoundError: Unknown operation id
            AuthorizationError: Caller did not start the operation
            InvalidStateTransitionError: Target is no longer accepted
            PartialAcceptanceFailure: Remaining steps failed again
        """
        operation = await self.operation_dao.get_by_id(operation_id)
        if operation is None:
            raise AcceptanceOperationNotFoundError(
                message=f"Acceptance operation {operation_id} not found",
                operation_id=operation_id,
            )

        if principal is not None and not (
            principal.is_admin or principal.user_id == operation.actor_id
        ):
            raise AuthorizationError(
                message="Only the homeowner who accepted the proposal can resume this operation",
                user_id=principal.user_id,
                operation_id=operation_id,
            )

        lock = self.lock_for(operation.project_id)
        async with lock:
            await self.session.refresh(operation)
            target = await self.proposal_dao.get_by_id(operation.proposal_id)
            project = await self.project_dao.get_for_update(operation.project_id)
            if target is None or project is None:
                raise AcceptanceOperationNotFoundError(
                    message=f"Acceptance operation {operation_id} refers to missing records",
                    operation_id=operation_id,
                )
            await self.session.refresh(target)

            if target.status != ProposalStatus.ACCEPTED:
                raise InvalidStateTransitionError(
                    message="Proposal of this operation is no longer accepted",
                    current_state=target.status.value,
                    requested_state=ProposalStatus.ACCEPTED.value,
                    operation_id=operation_id,
                )

            if operation.is_finished:
                return self._result(operation, target, project)

            logger.info("Resuming acceptance operation %s", operation_id)
            return await self._run_remaining(operation, target, project)

    # =========================================================================
    # Steps
    # =========================================================================

    async def _check_preconditions(self, proposal: Proposal, project: Project) -> None:
        if proposal.status not in (ProposalStatus.SUBMITTED, ProposalStatus.VIEWED):
            raise InvalidStateTransitionError(
                message=f"Only submitted or viewed proposals can be accepted (proposal is {proposal.status.value})",
                current_state=proposal.status.value,
                requested_state=ProposalStatus.ACCEPTED.value,
            )

        if proposal.is_lapsed(self.clock.today()):
            raise InvalidStateTransitionError(
                message=f"Proposal expired on {proposal.expiry_date.isoformat()} and can no longer be accepted",
                current_state=proposal.status.value,
                requested_state=ProposalStatus.ACCEPTED.value,
            )

        accepted = await self.proposal_dao.get_accepted_for_project(project.id)
        unfinished = await self.operation_dao.get_unfinished_for_project(project.id)
        if project.status == ProjectStatus.AWARDED or accepted or unfinished:
            logger.warning(
                "Refused acceptance of proposal %s: project %s already has an accepted proposal",
                proposal.id,
                project.id,
            )
            raise InvalidStateTransitionError(
                message="This project already has an accepted proposal",
                current_state=project.status.value,
                requested_state=ProjectStatus.AWARDED.value,
                project_id=project.id,
            )

        if project.status != ProjectStatus.OPEN:
            raise InvalidStateTransitionError(
                message=f"Proposals cannot be accepted on a {project.status.value} project",
                current_state=project.status.value,
                requested_state=ProjectStatus.AWARDED.value,
                project_id=project.id,
            )

    async def _accept_target(
        self,
        proposal: Proposal,
        project: Project,
        principal: Principal,
    ) -> AcceptanceOperation:
        """Step 3: accept the target and open the ledger in one commit."""
        previous = proposal.status.value
        proposal_id = proposal.id
        project_id = project.id
        try:
            operation = await self.operation_dao.create(
                project_id=project_id,
                proposal_id=proposal_id,
                actor_id=principal.user_id,
                status=AcceptanceOperationStatus.IN_PROGRESS,
                completed_steps=[],
                rejected_proposal_ids=[],
                attempts=0,
            )
            apply_transition(
                proposal,
                ProposalStatus.ACCEPTED,
                Actor.HOMEOWNER,
                at=self.clock.now(),
                actor_id=principal.user_id,
            )
            proposal.acceptance_operation_id = operation.id
            operation.completed_steps = [AcceptanceStep.ACCEPT_TARGET.value]
            await self.session.flush()

            await self.audit.log_status_change(
                resource_type="proposal",
                resource_id=proposal_id,
                actor_user_id=principal.user_id,
                before=previous,
                after=ProposalStatus.ACCEPTED.value,
                extra_data={"operation_id": operation.id},
            )
            await self.audit.log_event(
                action=AuditAction.ACCEPTANCE_STARTED,
                resource_type="acceptance",
                resource_id=operation.id,
                actor_user_id=principal.user_id,
                extra_data={"proposal_id": proposal_id, "project_id": project_id},
            )
            await self.session.commit()

        except IntegrityError:
            # WHY: Another process accepted a proposal on this project first
            await self.session.rollback()
            raise InvalidStateTransitionError(
                message="This project already has an accepted proposal",
                current_state=ProposalStatus.SUBMITTED.value,
                requested_state=ProposalStatus.ACCEPTED.value,
                project_id=project_id,
            )

        logger.info(
            "Proposal %s accepted on project %s (operation %s)",
            proposal_id,
            project_id,
            operation.id,
        )
        return operation

    async def _run_remaining(
        self,
        operation: AcceptanceOperation,
        target: Proposal,
        project: Project,
    ) -> AcceptanceResult:
        """Run steps 4-5 with retries; raise PartialAcceptanceFailure if they keep failing."""
        operation_id = operation.id
        target_id = target.id
        project_id = project.id
        attempt = 0

        while True:
            step = AcceptanceStep.REJECT_SIBLINGS
            try:
                operation.attempts = (operation.attempts or 0) + 1
                await self.session.commit()
                await self._reject_siblings(operation, target)
                step = AcceptanceStep.AWARD_PROJECT
                project = await self._award_project(operation, project_id)
                return self._result(operation, target, project)

            except Exception as exc:
                await self.session.rollback()
                logger.error(
                    "Acceptance operation %s failed at %s (attempt %s): %s",
                    operation_id,
                    step.value,
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
                if attempt >= self.max_retries:
                    raise await self._partial_failure(operation_id, target_id, project_id, step, exc) from exc

                attempt += 1
                await self.session.refresh(operation)
                await self.session.refresh(target)

    async def _reject_siblings(self, operation: AcceptanceOperation, target: Proposal) -> None:
        """Step 4: reject every pending sibling. Already-terminal siblings are skipped."""
        if operation.has_completed(AcceptanceStep.REJECT_SIBLINGS):
            return

        now = self.clock.now()
        note = selection_note(target)
        siblings = await self.proposal_dao.get_pending_siblings(target.project_id, target.id)

        rejected_ids = list(operation.rejected_proposal_ids or [])
        for sibling in siblings:
            previous = sibling.status.value
            apply_transition(
                sibling,
                ProposalStatus.REJECTED,
                Actor.HOMEOWNER,
                at=now,
                actor_id=operation.actor_id,
                reason=RejectionReason.OTHER,
                notes=note,
            )
            sibling.acceptance_operation_id = operation.id
            rejected_ids.append(sibling.id)
            await self.audit.log_status_change(
                resource_type="proposal",
                resource_id=sibling.id,
                actor_user_id=operation.actor_id,
                before=previous,
                after=ProposalStatus.REJECTED.value,
                extra_data={
                    "operation_id": operation.id,
                    "reason": RejectionReason.OTHER.value,
                    "selected_proposal_id": target.id,
                },
            )

        operation.rejected_proposal_ids = sorted(set(rejected_ids))
        operation.completed_steps = list(operation.completed_steps or []) + [
            AcceptanceStep.REJECT_SIBLINGS.value
        ]
        await self.session.flush()
        await self.session.commit()

        logger.info(
            "Acceptance operation %s rejected %d sibling proposal(s)",
            operation.id,
            len(siblings),
        )

    async def _award_project(self, operation: AcceptanceOperation, project_id: int) -> Project:
        """
        Step 5: move the project to awarded and close the ledger entry.

        Only an open (or already awarded) project can be awarded; anything
        else fails this step and is reported like any other step failure.
        """
        project = await self.project_dao.get_for_update(project_id)
        if project is None:
            raise ProjectNotFoundError(
                message=f"Project with id {project_id} not found",
                project_id=project_id,
            )

        if project.status not in (ProjectStatus.OPEN, ProjectStatus.AWARDED):
            raise InvalidStateTransitionError(
                message=f"Cannot award a {project.status.value} project",
                current_state=project.status.value,
                requested_state=ProjectStatus.AWARDED.value,
                project_id=project.id,
                operation_id=operation.id,
            )

        if not operation.has_completed(AcceptanceStep.AWARD_PROJECT):
            previous = project.status.value
            if project.status != ProjectStatus.AWARDED:
                project.status = ProjectStatus.AWARDED
                await self.audit.log_status_change(
                    resource_type="project",
                    resource_id=project.id,
                    actor_user_id=operation.actor_id,
                    before=previous,
                    after=ProjectStatus.AWARDED.value,
                    extra_data={"operation_id": operation.id},
                )
            operation.completed_steps = list(operation.completed_steps or []) + [
                AcceptanceStep.AWARD_PROJECT.value
            ]

        operation.status = AcceptanceOperationStatus.COMPLETED
        operation.failed_step = None
        operation.error = None
        await self.session.flush()
        await self.audit.log_event(
            action=AuditAction.ACCEPTANCE_COMPLETED,
            resource_type="acceptance",
            resource_id=operation.id,
            actor_user_id=operation.actor_id,
            extra_data={
                "proposal_id": operation.proposal_id,
                "project_id": project.id,
                "rejected_proposal_ids": list(operation.rejected_proposal_ids or []),
            },
        )
        await self.session.commit()

        logger.info("Acceptance operation %s completed; project %s awarded", operation.id, project.id)
        return project

    # =========================================================================
    # Failure reporting
    # =========================================================================

    async def _partial_failure(
        self,
        operation_id: str,
        target_id: int,
        project_id: int,
        step: AcceptanceStep,
        exc: Exception,
    ) -> PartialAcceptanceFailure:
        """
        Mark the ledger failed and build the error describing what was applied.

        WHY: Uses plain ids captured before the rollback; ORM instances are
        expired at this point and must be reloaded explicitly.
        """
        completed_steps: List[str] = [AcceptanceStep.ACCEPT_TARGET.value]
        rejected_ids: List[int] = []
        pending_ids: Optional[List[int]] = None
        project_awarded = False

        try:
            operation = await self.operation_dao.get_by_id(operation_id)
            await self.session.refresh(operation)
            operation.status = AcceptanceOperationStatus.FAILED
            operation.failed_step = step.value
            operation.error = str(exc)[:1000]
            completed_steps = list(operation.completed_steps or [])
            rejected_ids = list(operation.rejected_proposal_ids or [])

            pending = await self.proposal_dao.get_pending_siblings(project_id, target_id)
            pending_ids = [p.id for p in pending]
            project = await self.project_dao.get_by_id(project_id)
            project_awarded = project is not None and project.status == ProjectStatus.AWARDED

            await self.session.flush()
            await self.audit.log_event(
                action=AuditAction.ACCEPTANCE_FAILED,
                resource_type="acceptance",
                resource_id=operation_id,
                actor_user_id=operation.actor_id,
                extra_data={"failed_step": step.value, "error": operation.error},
            )
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            logger.exception("Could not record failure of acceptance operation %s", operation_id)

        return PartialAcceptanceFailure(
            message=(
                f"Proposal {target_id} was accepted but the cascade failed at "
                f"'{step.value}'. Resume operation {operation_id} to finish it."
            ),
            operation_id=operation_id,
            failed_step=step.value,
            completed_steps=completed_steps,
            accepted_proposal_id=target_id,
            project_id=project_id,
            rejected_proposal_ids=rejected_ids,
            pending_proposal_ids=pending_ids,
            project_awarded=project_awarded,
        )

    def _result(
        self,
        operation: AcceptanceOperation,
        target: Proposal,
        project: Project,
    ) -> AcceptanceResult:
        return AcceptanceResult(
            operation_id=operation.id,
            accepted_proposal=target,
            project=project,
            rejected_sibling_ids=list(operation.rejected_proposal_ids or []),
        )
