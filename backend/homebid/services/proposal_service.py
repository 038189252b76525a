"""
Proposal Service.

WHAT: Business logic for the proposal lifecycle: submission, content
edits, status transitions, rejection, reads, soft delete and attachments.

WHY: The service layer:
1. Runs temporal and financial validation before anything is persisted
2. Derives total_amount itself (a caller-supplied total is never used)
3. Resolves ownership (contractor vs homeowner) for every operation
4. Routes every status change through the state machine, and every
   acceptance through the AcceptanceCoordinator

HOW: Orchestrates ProposalDAO/ProjectDAO, the pure validators and the
state machine. Methods flush but do not commit; the request's get_db
dependency commits (the acceptance cascade commits its own steps).
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from homebid.core.auth import Principal
from homebid.core.clock import Clock, system_clock
from homebid.core.config import settings
from homebid.core.exceptions import (
    AttachmentTooLargeError,
    AuthorizationError,
    ProjectNotFoundError,
    ProposalNotEditableError,
    ProposalNotFoundError,
    ResourceAlreadyExistsError,
    ValidationError,
)
from homebid.dao.project import ProjectDAO
from homebid.dao.proposal import ProposalDAO
from homebid.models.audit_log import AuditAction
from homebid.models.project import Project
from homebid.models.proposal import (
    Proposal,
    ProposalStatus,
    RejectionReason,
    VisibilitySetting,
)
from homebid.services.acceptance_coordinator import AcceptanceCoordinator, AcceptanceResult
from homebid.services.audit import AuditService
from homebid.services.expiry_sweep import expire_proposal, sweep_expired
from homebid.services.file_storage import FileStore, get_file_store
from homebid.services.financial_calculator import FinancialCalculator, ProposalTotals
from homebid.services.proposal_state_machine import (
    Actor,
    actor_for,
    apply_transition,
    check_transition,
    ensure_editable,
)
from homebid.services.temporal_validator import (
    ProposalSchedule,
    RuleViolation,
    validate_schedule,
)


logger = logging.getLogger(__name__)


# Fields a contractor may change while the proposal is editable
EDITABLE_FIELDS = (
    "title",
    "description_of_work",
    "notes",
    "clause_preview_html",
    "subtotal_amount",
    "tax_included",
    "tax_jurisdiction",
    "deposit_amount",
    "deposit_due_on",
    "proposed_start_date",
    "proposed_end_date",
    "expiry_date",
    "visibility_settings",
)

# A live offer or an accepted one cannot be deleted
DELETABLE_STATUSES = frozenset(
    {
        ProposalStatus.DRAFT,
        ProposalStatus.WITHDRAWN,
        ProposalStatus.REJECTED,
        ProposalStatus.EXPIRED,
    }
)


def _audit_value(value: Any) -> Any:
    """Make a field value JSON-safe for the audit trail."""
    if isinstance(value, (Decimal, date)):
        return str(value)
    if hasattr(value, "value"):
        return value.value
    return value


class ProposalService:
    """
    Service for proposal lifecycle operations.

    Example:
        service = ProposalService(db, clock)
        proposal = await service.create(principal, project_id=3, title="Roof", ...)
        await service.transition(proposal.id, principal, ProposalStatus.WITHDRAWN)
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = system_clock,
        calculator: Optional[FinancialCalculator] = None,
        file_store: Optional[FileStore] = None,
    ):
        """
        Initialize ProposalService.

        Args:
            session: Async database session
            clock: Source of "now" for validation and timestamps
            calculator: Tax/total calculator (default uses Settings rates)
            file_store: Attachment store (default S3 via get_file_store)
        """
        self.session = session
        self.clock = clock
        self.calculator = calculator or FinancialCalculator()
        self.file_store = file_store
        self.proposal_dao = ProposalDAO(session)
        self.project_dao = ProjectDAO(session)
        self.audit = AuditService(session)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_proposal(self, proposal_id: int) -> Proposal:
        proposal = await self.proposal_dao.get_active(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(
                message=f"Proposal with id {proposal_id} not found",
                proposal_id=proposal_id,
            )
        return proposal

    async def _get_project(self, project_id: int) -> Project:
        project = await self.project_dao.get_by_id(project_id)
        if project is None:
            raise ProjectNotFoundError(
                message=f"Project with id {project_id} not found",
                project_id=project_id,
            )
        return project

    def _require_owner(self, proposal: Proposal, principal: Principal) -> None:
        """Only the submitting contractor may change a proposal's content."""
        if actor_for(proposal, principal) != Actor.CONTRACTOR:
            raise AuthorizationError(
                message="Only the contractor who submitted this proposal can change it",
                user_id=principal.user_id,
                proposal_id=proposal.id,
            )

    def _check_project_accepts(self, project: Project, today: date) -> None:
        if not project.accepts_proposals_on(today):
            raise ValidationError(
                message="Project is not accepting proposals",
                violations=[
                    RuleViolation(
                        field="project_id",
                        rule="project_open",
                        message=(
                            f"Project is {project.status.value} with bidding until "
                            f"{project.expiry_date.isoformat()}"
                        ),
                    ).to_dict()
                ],
            )

    def _validate(self, fields: Dict[str, Any], today: date) -> ProposalTotals:
        """
        Run temporal then financial rules against one snapshot of today.

        Returns:
            Derived totals to store on the proposal

        Raises:
            ValidationError: With every violation in details.violations
        """
        violations: List[RuleViolation] = validate_schedule(
            ProposalSchedule(
                deposit_due_on=fields["deposit_due_on"],
                proposed_start_date=fields["proposed_start_date"],
                proposed_end_date=fields["proposed_end_date"],
                expiry_date=fields["expiry_date"],
            ),
            today,
        )

        totals = self.calculator.compute_totals(
            fields["subtotal_amount"],
            fields["tax_included"],
            fields.get("tax_jurisdiction"),
        )
        violations.extend(
            self.calculator.validate_amounts(
                fields["subtotal_amount"],
                fields["deposit_amount"],
                totals.total_amount,
            )
        )

        if violations:
            raise ValidationError(
                message="Proposal failed validation",
                violations=[v.to_dict() for v in violations],
            )
        return totals

    @staticmethod
    def _apply_totals(proposal: Proposal, totals: ProposalTotals) -> None:
        proposal.subtotal_amount = totals.subtotal_amount
        proposal.tax_included = totals.tax_included
        proposal.tax_jurisdiction = totals.tax_jurisdiction
        proposal.tax_rate = totals.tax_rate
        proposal.total_amount = totals.total_amount

    async def _log_transition(
        self,
        proposal: Proposal,
        before: ProposalStatus,
        actor_id: Optional[int],
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.audit.log_status_change(
            resource_type="proposal",
            resource_id=proposal.id,
            actor_user_id=actor_id,
            before=before.value,
            after=proposal.status.value,
            extra_data=extra_data,
        )

    # =========================================================================
    # Submission and edits
    # =========================================================================

    async def create(
        self,
        principal: Principal,
        project_id: int,
        title: str,
        description_of_work: str,
        subtotal_amount: Decimal,
        tax_included: bool,
        deposit_amount: Decimal,
        deposit_due_on: date,
        proposed_start_date: date,
        proposed_end_date: date,
        expiry_date: date,
        notes: Optional[str] = None,
        clause_preview_html: Optional[str] = None,
        tax_jurisdiction: Optional[str] = None,
        visibility_settings: Optional[VisibilitySetting] = None,
        submit: bool = True,
    ) -> Proposal:
        """
        Create a proposal, submitted or as a draft.

        WHAT: Validates the draft field set, derives the total and stores
        the proposal. With ``submit`` it goes straight to submitted.

        Args:
            principal: Must be a contractor
            project_id: Project being bid on
            submit: False keeps the proposal in draft
            (remaining args are the proposal content)

        Returns:
            Created Proposal

        Raises:
            AuthorizationError: Not a contractor, or bidding on own project
            ProjectNotFoundError: Unknown project
            ValidationError: Project not open, or rule violations
            ResourceAlreadyExistsError: Contractor already has a live
                proposal on this project
        """
        if not principal.is_contractor:
            raise AuthorizationError(
                message="Only contractors can submit proposals",
                user_id=principal.user_id,
            )

        project = await self._get_project(project_id)
        if project.creator_id == principal.user_id:
            raise AuthorizationError(
                message="You cannot submit a proposal on your own project",
                user_id=principal.user_id,
                project_id=project_id,
            )

        now = self.clock.now()
        today = self.clock.today()
        self._check_project_accepts(project, today)

        existing = await self.proposal_dao.find_active_for_contractor(project_id, principal.user_id)
        if existing is not None:
            raise ResourceAlreadyExistsError(
                message="You already have an active proposal on this project",
                project_id=project_id,
                proposal_id=existing.id,
            )

        fields = {
            "subtotal_amount": subtotal_amount,
            "tax_included": tax_included,
            "tax_jurisdiction": tax_jurisdiction,
            "deposit_amount": deposit_amount,
            "deposit_due_on": deposit_due_on,
            "proposed_start_date": proposed_start_date,
            "proposed_end_date": proposed_end_date,
            "expiry_date": expiry_date,
        }
        totals = self._validate(fields, today)

        proposal = await self.proposal_dao.create(
            project_id=project_id,
            contractor_id=principal.user_id,
            homeowner_id=project.creator_id,
            title=title,
            description_of_work=description_of_work,
            notes=notes,
            clause_preview_html=clause_preview_html,
            subtotal_amount=totals.subtotal_amount,
            tax_included=totals.tax_included,
            tax_jurisdiction=totals.tax_jurisdiction,
            tax_rate=totals.tax_rate,
            total_amount=totals.total_amount,
            deposit_amount=deposit_amount,
            deposit_due_on=deposit_due_on,
            proposed_start_date=proposed_start_date,
            proposed_end_date=proposed_end_date,
            expiry_date=expiry_date,
            status=ProposalStatus.DRAFT,
            is_selected=False,
            attached_files=[],
            visibility_settings=visibility_settings or VisibilitySetting.SHARED_WITH_TARGET_USER,
            last_updated=now,
            last_modified_by=principal.user_id,
            is_deleted=False,
            created_at=now,
        )

        await self.audit.log_create(
            resource_type="proposal",
            resource_id=proposal.id,
            actor_user_id=principal.user_id,
            extra_data={"project_id": project_id, "total_amount": str(totals.total_amount)},
        )

        if submit:
            apply_transition(
                proposal,
                ProposalStatus.SUBMITTED,
                Actor.CONTRACTOR,
                at=now,
                actor_id=principal.user_id,
            )
            await self.session.flush()
            await self._log_transition(proposal, ProposalStatus.DRAFT, principal.user_id)

        logger.info(
            "Contractor %s created proposal %s on project %s (%s)",
            principal.user_id,
            proposal.id,
            project_id,
            proposal.status.value,
        )
        return proposal

    async def update(
        self,
        proposal_id: int,
        principal: Principal,
        changes: Dict[str, Any],
    ) -> Proposal:
        """
        Edit proposal content.

        WHY: Every edit re-runs the full rule set on the merged field set
        and re-derives total_amount, so deposit <= total holds after any
        financial change. Unknown keys (including total_amount) are ignored.

        Raises:
            ProposalNotFoundError: Unknown or deleted proposal
            AuthorizationError: Caller is not the submitting contractor
            ProposalNotEditableError: Proposal is viewed or terminal
            ValidationError: Merged fields break a rule
        """
        proposal = await self._get_proposal(proposal_id)
        self._require_owner(proposal, principal)
        ensure_editable(proposal)

        changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        merged = {field: getattr(proposal, field) for field in EDITABLE_FIELDS}
        merged.update(changes)
        totals = self._validate(merged, self.clock.today())

        diff: Dict[str, Any] = {}
        for field, value in changes.items():
            before = getattr(proposal, field)
            if before != value:
                diff[field] = {"before": _audit_value(before), "after": _audit_value(value)}
                setattr(proposal, field, value)

        before_total = proposal.total_amount
        self._apply_totals(proposal, totals)
        if before_total != totals.total_amount:
            diff["total_amount"] = {
                "before": _audit_value(before_total),
                "after": _audit_value(totals.total_amount),
            }

        if diff:
            proposal.last_updated = self.clock.now()
            proposal.last_modified_by = principal.user_id
            await self.session.flush()
            await self.audit.log_update(
                resource_type="proposal",
                resource_id=proposal.id,
                actor_user_id=principal.user_id,
                changes=diff,
            )

        return proposal

    # =========================================================================
    # Transitions
    # =========================================================================

    async def transition(
        self,
        proposal_id: int,
        principal: Principal,
        target: ProposalStatus,
        reason: Optional[RejectionReason] = None,
        notes: Optional[str] = None,
    ) -> Proposal:
        """
        Request a status change.

        WHAT: Resolves the caller's actor kind, checks the edge, then:
        - accepted: runs the acceptance cascade
        - rejected: records reason/notes
        - submitted: re-validates the draft against today
        - anything else: applies the edge

        Returns:
            The proposal in its new (or unchanged, for a no-op) status

        Raises:
            AuthorizationError: Caller is not a party to the proposal
            InvalidStateTransitionError: Edge missing or not allowed for the actor
            ValidationError: Draft no longer passes validation at submission
            PartialAcceptanceFailure: See AcceptanceCoordinator
        """
        proposal = await self._get_proposal(proposal_id)
        actor = actor_for(proposal, principal)

        if not check_transition(proposal.status, target, actor):
            return proposal

        if target == ProposalStatus.ACCEPTED:
            result = await self.accept(proposal_id, principal)
            return result.accepted_proposal

        if target == ProposalStatus.REJECTED:
            return await self.reject(proposal_id, principal, reason=reason, notes=notes)

        today = self.clock.today()
        if target == ProposalStatus.SUBMITTED:
            project = await self._get_project(proposal.project_id)
            self._check_project_accepts(project, today)
            fields = {field: getattr(proposal, field) for field in EDITABLE_FIELDS}
            self._apply_totals(proposal, self._validate(fields, today))

        before = proposal.status
        apply_transition(
            proposal,
            target,
            actor,
            at=self.clock.now(),
            actor_id=principal.user_id,
        )
        await self.session.flush()
        await self._log_transition(proposal, before, principal.user_id)

        logger.info("Proposal %s moved %s -> %s", proposal.id, before.value, target.value)
        return proposal

    async def accept(self, proposal_id: int, principal: Principal) -> AcceptanceResult:
        """Accept a proposal; see AcceptanceCoordinator.accept."""
        coordinator = AcceptanceCoordinator(self.session, self.clock)
        return await coordinator.accept(proposal_id, principal)

    async def resume_acceptance(self, operation_id: str, principal: Principal) -> AcceptanceResult:
        """Finish an interrupted acceptance; see AcceptanceCoordinator.resume."""
        coordinator = AcceptanceCoordinator(self.session, self.clock)
        return await coordinator.resume(operation_id, principal)

    async def reject(
        self,
        proposal_id: int,
        principal: Principal,
        reason: Optional[RejectionReason] = None,
        notes: Optional[str] = None,
    ) -> Proposal:
        """
        Reject a single proposal.

        WHY: A homeowner can turn down one bid without touching the
        project or any other proposal.

        Raises:
            AuthorizationError: Caller is not a party to the proposal
            InvalidStateTransitionError: Caller is the contractor, or the
                proposal is not submitted/viewed
        """
        proposal = await self._get_proposal(proposal_id)
        actor = actor_for(proposal, principal)

        before = proposal.status
        changed = apply_transition(
            proposal,
            ProposalStatus.REJECTED,
            actor,
            at=self.clock.now(),
            actor_id=principal.user_id,
            reason=reason,
            notes=notes,
        )
        if not changed:
            return proposal

        await self.session.flush()
        await self._log_transition(
            proposal,
            before,
            principal.user_id,
            extra_data={"reason": reason.value if reason else None},
        )
        logger.info("Proposal %s rejected by homeowner %s", proposal.id, principal.user_id)
        return proposal

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, proposal_id: int, principal: Principal) -> Proposal:
        """
        Read a proposal.

        WHAT: The homeowner's first read of a submitted proposal marks it
        viewed. A lapsed pending proposal is expired before it is returned.
        Drafts are invisible to the homeowner.

        Raises:
            ProposalNotFoundError: Unknown, deleted, or a draft read by the homeowner
            AuthorizationError: Caller is not a party to the proposal
        """
        proposal = await self._get_proposal(proposal_id)
        actor = actor_for(proposal, principal)

        if actor == Actor.HOMEOWNER and proposal.status == ProposalStatus.DRAFT:
            raise ProposalNotFoundError(
                message=f"Proposal with id {proposal_id} not found",
                proposal_id=proposal_id,
            )

        now = self.clock.now()
        if proposal.is_lapsed(self.clock.today()):
            await expire_proposal(proposal, self.audit, now)
            await self.session.flush()
        elif actor == Actor.HOMEOWNER and proposal.status == ProposalStatus.SUBMITTED:
            apply_transition(proposal, ProposalStatus.VIEWED, Actor.SYSTEM, at=now)
            await self.session.flush()
            await self._log_transition(proposal, ProposalStatus.SUBMITTED, None)

        return proposal

    async def list_for_project(self, project_id: int, principal: Principal) -> List[Proposal]:
        """
        List proposals on a project, scoped to the caller.

        WHAT: The homeowner sees every non-draft proposal; a contractor
        sees only their own. Lapsed proposals on the project are expired
        first.

        Raises:
            ProjectNotFoundError: Unknown project
            AuthorizationError: Caller is neither the homeowner nor a contractor
        """
        project = await self._get_project(project_id)

        if principal.is_homeowner and project.creator_id == principal.user_id:
            await sweep_expired(self.session, self.clock, project_id=project_id)
            return await self.proposal_dao.list_for_project(project_id, include_drafts=False)

        if principal.is_contractor:
            await sweep_expired(self.session, self.clock, project_id=project_id)
            return await self.proposal_dao.list_for_project(
                project_id,
                contractor_id=principal.user_id,
            )

        raise AuthorizationError(
            message="You cannot view proposals on this project",
            user_id=principal.user_id,
            project_id=project_id,
        )

    async def list_mine(
        self,
        principal: Principal,
        status: Optional[ProposalStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Proposal]:
        """List the calling contractor's proposals across projects."""
        if not principal.is_contractor:
            raise AuthorizationError(
                message="Only contractors have their own proposals",
                user_id=principal.user_id,
            )
        return await self.proposal_dao.list_for_contractor(
            principal.user_id,
            status=status,
            skip=skip,
            limit=limit,
        )

    # =========================================================================
    # Delete and attachments
    # =========================================================================

    async def delete(self, proposal_id: int, principal: Principal) -> None:
        """
        Soft delete a proposal.

        Raises:
            AuthorizationError: Caller is not the submitting contractor
            ProposalNotEditableError: Proposal is pending or accepted
        """
        proposal = await self._get_proposal(proposal_id)
        self._require_owner(proposal, principal)

        if proposal.status not in DELETABLE_STATUSES:
            raise ProposalNotEditableError(
                message=f"A {proposal.status.value} proposal cannot be deleted; withdraw it first",
                proposal_id=proposal.id,
                current_state=proposal.status.value,
            )

        proposal.is_deleted = True
        proposal.last_updated = self.clock.now()
        proposal.last_modified_by = principal.user_id
        await self.session.flush()
        await self.audit.log_delete(
            resource_type="proposal",
            resource_id=proposal.id,
            actor_user_id=principal.user_id,
        )

    async def attach_file(
        self,
        proposal_id: int,
        principal: Principal,
        data: bytes,
        filename: str,
        mime_type: str,
    ) -> Proposal:
        """
        Store an attachment and append its reference to the proposal.

        Raises:
            AuthorizationError: Caller is not the submitting contractor
            ProposalNotEditableError: Proposal is viewed or terminal
            AttachmentTooLargeError: File exceeds MAX_ATTACHMENT_BYTES
            FileStorageError: Store rejected the upload
        """
        proposal = await self._get_proposal(proposal_id)
        self._require_owner(proposal, principal)
        ensure_editable(proposal)

        if len(data) > settings.MAX_ATTACHMENT_BYTES:
            raise AttachmentTooLargeError(
                message=f"Attachment exceeds {settings.MAX_ATTACHMENT_BYTES} bytes",
                size=len(data),
                max_size=settings.MAX_ATTACHMENT_BYTES,
            )

        store = self.file_store or get_file_store()
        reference = store.store(
            data,
            filename,
            mime_type,
            proposal_id=proposal.id,
            uploaded_by=principal.user_id,
        )

        try:
            # WHY: JSON columns only detect reassignment, not in-place append
            proposal.attached_files = list(proposal.attached_files or []) + [reference]
            proposal.last_updated = self.clock.now()
            proposal.last_modified_by = principal.user_id
            await self.session.flush()
        except SQLAlchemyError:
            store.delete(reference["id"])
            raise

        await self.audit.log_event(
            action=AuditAction.ATTACHMENT_ADDED,
            resource_type="proposal",
            resource_id=proposal.id,
            actor_user_id=principal.user_id,
            extra_data={"file_id": reference["id"], "filename": reference["filename"]},
        )
        return proposal
