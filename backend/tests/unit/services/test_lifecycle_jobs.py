"""
Unit tests for the proposal lifecycle background jobs.

WHAT: Tests for the expiry sweep job and acceptance reconciliation.

WHY: Verifies that:
1. The sweep commits expiries in its own session
2. Failed acceptance cascades are finished by reconciliation
3. An operation that keeps failing is counted, not raised

HOW: Test data is committed through db_session first; each job opens
its own session from the test session factory.
"""

import pytest
from unittest.mock import patch
from sqlalchemy.ext.asyncio import AsyncSession

from homebid.core.auth import Principal, UserRole
from homebid.core.clock import FixedClock
from homebid.core.exceptions import PartialAcceptanceFailure
from homebid.models.project import ProjectStatus
from homebid.models.proposal import ProposalStatus
from homebid.services.acceptance_coordinator import AcceptanceCoordinator
from homebid.services.lifecycle_jobs import LifecycleBackgroundService

from tests.factories import (
    HOMEOWNER_ID,
    SECOND_CONTRACTOR_ID,
    ProjectFactory,
    ProposalFactory,
    days,
)


HOMEOWNER = Principal(user_id=HOMEOWNER_ID, role=UserRole.HOMEOWNER)


@pytest.fixture
def jobs(session_factory, clock: FixedClock) -> LifecycleBackgroundService:
    return LifecycleBackgroundService(session_factory=session_factory, clock=clock)


async def _failed_acceptance(session: AsyncSession, clock: FixedClock):
    project = await ProjectFactory.create(session)
    winner = await ProposalFactory.create(session, project)
    await ProposalFactory.create(session, project, contractor_id=SECOND_CONTRACTOR_ID)

    coordinator = AcceptanceCoordinator(session, clock, max_retries=0)
    with patch.object(AcceptanceCoordinator, "_award_project", side_effect=RuntimeError("boom")):
        with pytest.raises(PartialAcceptanceFailure):
            await coordinator.accept(winner.id, HOMEOWNER)
    return project


class TestExpirySweepJob:
    @pytest.mark.asyncio
    async def test_sweep_commits(self, jobs: LifecycleBackgroundService, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        lapsed = await ProposalFactory.create(db_session, project, expiry_date=days(-1))
        live = await ProposalFactory.create(db_session, project, contractor_id=SECOND_CONTRACTOR_ID)

        stats = await jobs.run_expiry_sweep()

        assert stats == {"expired": 1}
        await db_session.refresh(lapsed)
        await db_session.refresh(live)
        assert lapsed.status == ProposalStatus.EXPIRED
        assert live.status == ProposalStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, jobs: LifecycleBackgroundService):
        assert await jobs.run_expiry_sweep() == {"expired": 0}


class TestReconcileAcceptances:
    @pytest.mark.asyncio
    async def test_resumes_failed_operation(
        self, jobs: LifecycleBackgroundService, db_session: AsyncSession, clock: FixedClock
    ):
        project = await _failed_acceptance(db_session, clock)

        stats = await jobs.reconcile_acceptances()

        assert stats == {"resumed": 1, "failed": 0}
        await db_session.refresh(project)
        assert project.status == ProjectStatus.AWARDED

    @pytest.mark.asyncio
    async def test_still_failing_is_counted(
        self, jobs: LifecycleBackgroundService, db_session: AsyncSession, clock: FixedClock
    ):
        project = await _failed_acceptance(db_session, clock)

        with patch.object(AcceptanceCoordinator, "_award_project", side_effect=RuntimeError("still down")):
            stats = await jobs.reconcile_acceptances()

        assert stats == {"resumed": 0, "failed": 1}
        await db_session.refresh(project)
        assert project.status == ProjectStatus.OPEN

    @pytest.mark.asyncio
    async def test_no_failed_operations(self, jobs: LifecycleBackgroundService):
        assert await jobs.reconcile_acceptances() == {"resumed": 0, "failed": 0}
