"""
Proposal Data Access Object (DAO).

WHAT: Database operations for the Proposal model.

WHY: The lifecycle services ask the same few questions over and over
(which siblings are still pending? is there already an accepted
proposal? does this contractor already hold an active bid?). Putting
them here keeps the predicates in one place, and every one of them
excludes soft-deleted rows.

HOW: Extends BaseDAO with proposal-specific queries:
- Project listings with role-based filters
- Pending sibling enumeration for the acceptance cascade
- Lapsed-offer lookup for the expiry sweep
"""

from datetime import date
from typing import Dict, Iterable, List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from homebid.dao.base import BaseDAO
from homebid.models.proposal import (
    Proposal,
    ProposalStatus,
    PENDING_STATUSES,
)

# Statuses in which a contractor's bid still counts as live on a project
ACTIVE_STATUSES = (ProposalStatus.DRAFT, ProposalStatus.SUBMITTED, ProposalStatus.VIEWED)


class ProposalDAO(BaseDAO[Proposal]):
    """
    Data Access Object for Proposal model.

    WHY: Centralizes all proposal database operations and enforces the
    soft-delete filter on every read.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize ProposalDAO.

        Args:
            session: Async database session
        """
        super().__init__(Proposal, session)

    async def get_active(self, proposal_id: int) -> Optional[Proposal]:
        """
        Get a proposal by id unless it has been soft-deleted.

        Args:
            proposal_id: Proposal ID

        Returns:
            Proposal if found and not deleted, None otherwise
        """
        result = await self.session.execute(
            select(Proposal).where(
                Proposal.id == proposal_id,
                Proposal.is_deleted.is_(False),
            )
        )
        return result.scalar_one_or_none()

    async def list_for_project(
        self,
        project_id: int,
        contractor_id: Optional[int] = None,
        include_drafts: bool = True,
        statuses: Optional[Iterable[ProposalStatus]] = None,
    ) -> List[Proposal]:
        """
        List non-deleted proposals on a project.

        Args:
            project_id: Project ID
            contractor_id: Restrict to one contractor's proposals
            include_drafts: When False, drafts are omitted (homeowner view)
            statuses: Optional status filter

        Returns:
            Proposals ordered oldest first
        """
        query = select(Proposal).where(
            Proposal.project_id == project_id,
            Proposal.is_deleted.is_(False),
        )
        if contractor_id is not None:
            query = query.where(Proposal.contractor_id == contractor_id)
        if not include_drafts:
            query = query.where(Proposal.status != ProposalStatus.DRAFT)
        if statuses is not None:
            query = query.where(Proposal.status.in_(list(statuses)))

        result = await self.session.execute(query.order_by(Proposal.id))
        return list(result.scalars().all())

    async def list_for_contractor(
        self,
        contractor_id: int,
        status: Optional[ProposalStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Proposal]:
        """
        List a contractor's own non-deleted proposals, newest first.
        """
        query = select(Proposal).where(
            Proposal.contractor_id == contractor_id,
            Proposal.is_deleted.is_(False),
        )
        if status is not None:
            query = query.where(Proposal.status == status)

        result = await self.session.execute(
            query.order_by(Proposal.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def get_pending_siblings(self, project_id: int, exclude_id: int) -> List[Proposal]:
        """
        Get every other live proposal still awaiting a decision.

        WHAT: submitted/viewed, not deleted, same project, not the target.

        WHY: These are exactly the proposals the acceptance cascade must
        reject. Terminal siblings (withdrawn, rejected, expired) are left
        untouched.

        Args:
            project_id: Project ID
            exclude_id: The proposal being accepted

        Returns:
            Pending sibling proposals ordered by id
        """
        result = await self.session.execute(
            select(Proposal)
            .where(
                Proposal.project_id == project_id,
                Proposal.id != exclude_id,
                Proposal.is_deleted.is_(False),
                Proposal.status.in_(list(PENDING_STATUSES)),
            )
            .order_by(Proposal.id)
        )
        return list(result.scalars().all())

    async def get_accepted_for_project(self, project_id: int) -> List[Proposal]:
        """
        Get non-deleted accepted proposals on a project (0 or 1 when consistent).
        """
        result = await self.session.execute(
            select(Proposal).where(
                Proposal.project_id == project_id,
                Proposal.is_deleted.is_(False),
                Proposal.status == ProposalStatus.ACCEPTED,
            )
        )
        return list(result.scalars().all())

    async def find_active_for_contractor(
        self,
        project_id: int,
        contractor_id: int,
    ) -> Optional[Proposal]:
        """
        Find the contractor's live (draft/submitted/viewed) bid on a project.

        WHY: A contractor may hold only one live proposal per project.
        """
        result = await self.session.execute(
            select(Proposal)
            .where(
                Proposal.project_id == project_id,
                Proposal.contractor_id == contractor_id,
                Proposal.is_deleted.is_(False),
                Proposal.status.in_(ACTIVE_STATUSES),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_lapsed(self, today: date, project_id: Optional[int] = None) -> List[Proposal]:
        """
        Get pending proposals whose expiry_date is before today.

        Args:
            today: Current date from the injected clock
            project_id: Restrict to one project

        Returns:
            Proposals the expiry sweep should move to expired
        """
        query = select(Proposal).where(
            Proposal.is_deleted.is_(False),
            Proposal.status.in_(list(PENDING_STATUSES)),
            Proposal.expiry_date < today,
        )
        if project_id is not None:
            query = query.where(Proposal.project_id == project_id)

        result = await self.session.execute(query.order_by(Proposal.id))
        return list(result.scalars().all())

    async def count_by_status(self, project_id: int) -> Dict[str, int]:
        """
        Count non-deleted proposals on a project grouped by status.

        Returns:
            Mapping of status value to count (statuses with no rows omitted)
        """
        result = await self.session.execute(
            select(Proposal.status, func.count(Proposal.id))
            .where(
                Proposal.project_id == project_id,
                Proposal.is_deleted.is_(False),
            )
            .group_by(Proposal.status)
        )
        return {status.value: count for status, count in result.all()}
