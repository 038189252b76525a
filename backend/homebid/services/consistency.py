"""
Project/proposal consistency checks.

WHAT: Pure checks of the cross-entity invariants over one project and
its proposals.

WHY: The acceptance cascade commits step by step, so a failed cascade
can leave a project transiently inconsistent (accepted proposal, project
not yet awarded; siblings still pending). Operators and tests need one
place that says exactly what is wrong.

HOW: check_project_consistency() takes already-loaded rows and returns a
list of ConsistencyIssue; soft-deleted proposals are ignored.
"""

from dataclasses import dataclass, field, asdict
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from homebid.models.project import Project, ProjectStatus
from homebid.models.proposal import Proposal, ProposalStatus, PENDING_STATUSES
from homebid.services.financial_calculator import to_money


# Statuses a project can only reach after exactly one proposal was accepted
POST_AWARD_STATUSES = frozenset(
    {ProjectStatus.AWARDED, ProjectStatus.IN_PROGRESS, ProjectStatus.COMPLETED}
)


@dataclass(frozen=True)
class ConsistencyIssue:
    """One broken invariant."""

    code: str
    message: str
    proposal_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _expected_total(proposal: Proposal) -> Decimal:
    subtotal = to_money(proposal.subtotal_amount)
    if proposal.tax_included:
        return subtotal
    return to_money(subtotal * (Decimal(1) + Decimal(str(proposal.tax_rate))))


def check_project_consistency(
    project: Project,
    proposals: Iterable[Proposal],
) -> List[ConsistencyIssue]:
    """
    Check a project against its proposals.

    Codes:
        multiple_accepted: more than one accepted proposal
        awarded_without_accepted: project past award with no accepted proposal
        accepted_without_award: accepted proposal on a project not awarded
        pending_after_award: proposals still pending on an awarded project
        selection_mismatch: is_selected disagrees with status
        deposit_exceeds_total: deposit_amount > total_amount
        total_mismatch: total_amount differs from the derived total
        schedule_order: end <= start, or expiry after start

    Returns:
        Issues found; empty when consistent
    """
    live = [p for p in proposals if not p.is_deleted and p.project_id == project.id]
    issues: List[ConsistencyIssue] = []

    accepted = [p for p in live if p.status == ProposalStatus.ACCEPTED]
    if len(accepted) > 1:
        issues.append(
            ConsistencyIssue(
                code="multiple_accepted",
                message=f"{len(accepted)} proposals are accepted on one project",
                proposal_ids=[p.id for p in accepted],
            )
        )

    if project.status in POST_AWARD_STATUSES and not accepted:
        issues.append(
            ConsistencyIssue(
                code="awarded_without_accepted",
                message=f"Project is {project.status.value} but no proposal is accepted",
            )
        )

    if accepted and project.status not in POST_AWARD_STATUSES:
        issues.append(
            ConsistencyIssue(
                code="accepted_without_award",
                message=f"A proposal is accepted but the project is {project.status.value}",
                proposal_ids=[p.id for p in accepted],
            )
        )

    if accepted:
        pending = [p for p in live if p.status in PENDING_STATUSES]
        if pending:
            issues.append(
                ConsistencyIssue(
                    code="pending_after_award",
                    message="Proposals are still pending although another was accepted",
                    proposal_ids=[p.id for p in pending],
                )
            )

    mismatched = [p for p in live if bool(p.is_selected) != (p.status == ProposalStatus.ACCEPTED)]
    if mismatched:
        issues.append(
            ConsistencyIssue(
                code="selection_mismatch",
                message="is_selected must be set exactly on accepted proposals",
                proposal_ids=[p.id for p in mismatched],
            )
        )

    over_deposit = [p for p in live if to_money(p.deposit_amount) > to_money(p.total_amount)]
    if over_deposit:
        issues.append(
            ConsistencyIssue(
                code="deposit_exceeds_total",
                message="Deposit is larger than the total amount",
                proposal_ids=[p.id for p in over_deposit],
            )
        )

    bad_total = [p for p in live if to_money(p.total_amount) != _expected_total(p)]
    if bad_total:
        issues.append(
            ConsistencyIssue(
                code="total_mismatch",
                message="Stored total does not match subtotal and tax",
                proposal_ids=[p.id for p in bad_total],
            )
        )

    bad_schedule = [
        p
        for p in live
        if p.proposed_end_date <= p.proposed_start_date or p.expiry_date > p.proposed_start_date
    ]
    if bad_schedule:
        issues.append(
            ConsistencyIssue(
                code="schedule_order",
                message="Proposal schedule is out of order",
                proposal_ids=[p.id for p in bad_schedule],
            )
        )

    return issues
