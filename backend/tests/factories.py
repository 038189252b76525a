"""
Test factories for creating test data.

WHY: Factories provide a consistent, reusable way to create test objects,
reducing duplication and making tests more maintainable. Dates are
relative to the fixed test clock (2025-01-01), so a factory proposal is
valid on "today" unless a test says otherwise.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from homebid.core.auth import UserRole, create_access_token
from homebid.models.project import Project, ProjectStatus, ProjectType
from homebid.models.proposal import (
    Proposal,
    ProposalStatus,
    RejectionReason,
    VisibilitySetting,
)


NOW = datetime(2025, 1, 1, 9, 0, 0)
TODAY = NOW.date()

HOMEOWNER_ID = 1
OTHER_HOMEOWNER_ID = 2
CONTRACTOR_ID = 10
SECOND_CONTRACTOR_ID = 11
THIRD_CONTRACTOR_ID = 12
ADMIN_ID = 99

TAX_RATE = Decimal("0.13")


def days(n: int) -> date:
    """Date n days after the test clock's today."""
    return TODAY + timedelta(days=n)


def auth_headers(user_id: int, role: UserRole) -> Dict[str, str]:
    """
    Build an Authorization header for a user.

    WHY: Identity is external; tests mint the same token shape the
    identity provider would issue.
    """
    token = create_access_token({"user_id": user_id, "role": role.value})
    return {"Authorization": f"Bearer {token}"}


def homeowner_headers(user_id: int = HOMEOWNER_ID) -> Dict[str, str]:
    return auth_headers(user_id, UserRole.HOMEOWNER)


def contractor_headers(user_id: int = CONTRACTOR_ID) -> Dict[str, str]:
    return auth_headers(user_id, UserRole.CONTRACTOR)


def admin_headers(user_id: int = ADMIN_ID) -> Dict[str, str]:
    return auth_headers(user_id, UserRole.ADMIN)


def proposal_payload(project_id: int, **overrides: Any) -> Dict[str, Any]:
    """
    JSON body for POST /api/proposals that passes every rule on TODAY.
    """
    payload = {
        "project_id": project_id,
        "title": "Kitchen renovation",
        "description_of_work": "Replace cabinets, counters and backsplash",
        "subtotal_amount": "1000.00",
        "tax_included": False,
        "deposit_amount": "200.00",
        "deposit_due_on": days(5).isoformat(),
        "proposed_start_date": days(10).isoformat(),
        "proposed_end_date": days(40).isoformat(),
        "expiry_date": days(7).isoformat(),
    }
    payload.update(overrides)
    return payload


def _derived_total(subtotal: Decimal, tax_included: bool) -> Decimal:
    if tax_included:
        return subtotal
    return (subtotal * (Decimal(1) + TAX_RATE)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class ProjectFactory:
    """
    Factory for creating Project test instances.

    WHY: Most tests need an open project owned by HOMEOWNER_ID.
    """

    @staticmethod
    async def create(
        session: AsyncSession,
        creator_id: int = HOMEOWNER_ID,
        title: str = "Kitchen renovation",
        status: ProjectStatus = ProjectStatus.OPEN,
        expiry_date: Optional[date] = None,
        decision_date: Optional[date] = None,
        statement_of_work: Optional[str] = "Replace cabinets and counters",
        budget: Optional[Decimal] = Decimal("25000.00"),
        categories: Optional[List[str]] = None,
        project_type: ProjectType = ProjectType.RENOVATION,
    ) -> Project:
        """
        Create a project for testing.

        Args:
            session: Database session
            creator_id: Homeowner user id
            status: Initial status (default open)
            expiry_date: Bidding deadline (default TODAY + 14)
            decision_date: Decision date (default TODAY + 21)

        Returns:
            Created Project instance
        """
        project = Project(
            title=title,
            statement_of_work=statement_of_work,
            budget=budget,
            categories=categories if categories is not None else ["carpentry"],
            project_type=project_type,
            status=status,
            expiry_date=expiry_date or days(14),
            decision_date=decision_date or days(21),
            creator_id=creator_id,
        )
        session.add(project)
        await session.commit()
        await session.refresh(project)
        return project


class ProposalFactory:
    """
    Factory for creating Proposal test instances.

    WHY: Inserts rows directly, bypassing the service, so tests can set
    up any status (including terminal ones) without walking the state
    machine. The total is derived the same way the service derives it.
    """

    @staticmethod
    async def create(
        session: AsyncSession,
        project: Project,
        contractor_id: int = CONTRACTOR_ID,
        title: str = "Kitchen renovation",
        status: ProposalStatus = ProposalStatus.SUBMITTED,
        subtotal_amount: Decimal = Decimal("1000.00"),
        tax_included: bool = False,
        deposit_amount: Decimal = Decimal("200.00"),
        deposit_due_on: Optional[date] = None,
        proposed_start_date: Optional[date] = None,
        proposed_end_date: Optional[date] = None,
        expiry_date: Optional[date] = None,
        rejection_reason: Optional[RejectionReason] = None,
        attached_files: Optional[List[Dict[str, Any]]] = None,
        is_deleted: bool = False,
    ) -> Proposal:
        """
        Create a proposal for testing.

        Args:
            session: Database session
            project: Project the proposal bids on
            contractor_id: Submitting contractor
            status: Initial status (default submitted)
            expiry_date: Offer expiry (default TODAY + 7)

        Returns:
            Created Proposal instance
        """
        proposal = Proposal(
            project_id=project.id,
            contractor_id=contractor_id,
            homeowner_id=project.creator_id,
            title=title,
            description_of_work="Replace cabinets, counters and backsplash",
            subtotal_amount=subtotal_amount,
            tax_included=tax_included,
            tax_jurisdiction="ON",
            tax_rate=TAX_RATE,
            total_amount=_derived_total(subtotal_amount, tax_included),
            deposit_amount=deposit_amount,
            deposit_due_on=deposit_due_on or days(5),
            proposed_start_date=proposed_start_date or days(10),
            proposed_end_date=proposed_end_date or days(40),
            expiry_date=expiry_date or days(7),
            status=status,
            is_selected=status == ProposalStatus.ACCEPTED,
            submitted_date=None if status == ProposalStatus.DRAFT else NOW - timedelta(days=1),
            rejection_reason=rejection_reason,
            attached_files=attached_files or [],
            visibility_settings=VisibilitySetting.SHARED_WITH_TARGET_USER,
            is_deleted=is_deleted,
            created_at=NOW - timedelta(days=1),
        )
        session.add(proposal)
        await session.commit()
        await session.refresh(proposal)
        return proposal
