"""
Tests for the expiry sweep.

WHY: A lapsed pending proposal must become expired; nothing else may be
touched, and the expiry day itself is still live.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from homebid.core.clock import FixedClock
from homebid.dao.audit_log import AuditLogDAO
from homebid.models.proposal import ProposalStatus
from homebid.services.audit import AuditService
from homebid.services.expiry_sweep import expire_proposal, sweep_expired

from tests.factories import (
    NOW,
    SECOND_CONTRACTOR_ID,
    THIRD_CONTRACTOR_ID,
    ProjectFactory,
    ProposalFactory,
    days,
)


class TestSweepExpired:
    @pytest.mark.asyncio
    async def test_expires_only_lapsed_pending(self, db_session: AsyncSession, clock: FixedClock):
        project = await ProjectFactory.create(db_session)
        submitted = await ProposalFactory.create(db_session, project, expiry_date=days(-1))
        viewed = await ProposalFactory.create(
            db_session,
            project,
            contractor_id=SECOND_CONTRACTOR_ID,
            status=ProposalStatus.VIEWED,
            expiry_date=days(-5),
        )
        due_today = await ProposalFactory.create(
            db_session, project, contractor_id=THIRD_CONTRACTOR_ID, expiry_date=days(0)
        )
        draft = await ProposalFactory.create(db_session, project, status=ProposalStatus.DRAFT, expiry_date=days(-1))
        deleted = await ProposalFactory.create(db_session, project, expiry_date=days(-1), is_deleted=True)

        expired_ids = await sweep_expired(db_session, clock)

        assert expired_ids == [submitted.id, viewed.id]
        assert submitted.status == ProposalStatus.EXPIRED
        assert submitted.last_updated == NOW
        assert viewed.status == ProposalStatus.EXPIRED
        assert due_today.status == ProposalStatus.SUBMITTED
        assert draft.status == ProposalStatus.DRAFT
        assert deleted.status == ProposalStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_scoped_to_project(self, db_session: AsyncSession, clock: FixedClock):
        first = await ProjectFactory.create(db_session)
        second = await ProjectFactory.create(db_session, title="Deck")
        in_scope = await ProposalFactory.create(db_session, first, expiry_date=days(-1))
        out_of_scope = await ProposalFactory.create(db_session, second, expiry_date=days(-1))

        expired_ids = await sweep_expired(db_session, clock, project_id=first.id)

        assert expired_ids == [in_scope.id]
        assert out_of_scope.status == ProposalStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_idempotent(self, db_session: AsyncSession, clock: FixedClock):
        project = await ProjectFactory.create(db_session)
        await ProposalFactory.create(db_session, project, expiry_date=days(-1))

        assert len(await sweep_expired(db_session, clock)) == 1
        assert await sweep_expired(db_session, clock) == []

    @pytest.mark.asyncio
    async def test_clock_drives_expiry(self, db_session: AsyncSession, clock: FixedClock):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project, expiry_date=days(3))

        assert await sweep_expired(db_session, clock) == []

        clock.advance(days=4)
        assert await sweep_expired(db_session, clock) == [proposal.id]

    @pytest.mark.asyncio
    async def test_expiry_audited_as_system(self, db_session: AsyncSession, clock: FixedClock):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project, expiry_date=days(-1))

        await sweep_expired(db_session, clock)

        trail = await AuditLogDAO(db_session).get_for_resource("proposal", proposal.id)
        assert len(trail) == 1
        assert trail[0].actor_user_id is None
        assert trail[0].changes == {"status": {"before": "submitted", "after": "expired"}}
        assert trail[0].extra_data == {"expiry_date": days(-1).isoformat()}


class TestExpireProposal:
    @pytest.mark.parametrize(
        "status",
        [ProposalStatus.DRAFT, ProposalStatus.ACCEPTED, ProposalStatus.WITHDRAWN],
    )
    @pytest.mark.asyncio
    async def test_non_pending_left_alone(self, db_session: AsyncSession, status):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project, status=status, expiry_date=days(-1))

        changed = await expire_proposal(proposal, AuditService(db_session), NOW)

        assert changed is False
        assert proposal.status == status
