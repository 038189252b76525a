"""
Proposal expiry sweep.

WHAT: Moves pending (submitted/viewed) proposals whose expiry_date has
passed to ``expired``.

WHY: An offer that lapsed without a decision must not keep looking like
a live bid. Expiry is applied eagerly: the background job sweeps all
projects periodically, and project listings sweep their own project
before reading, so a listing never shows a lapsed proposal as submitted.

HOW: Every expiry goes through the state machine as a SYSTEM transition
and is written to the audit log. The sweep flushes but does not commit;
the caller owns the transaction.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from homebid.core.clock import Clock
from homebid.dao.proposal import ProposalDAO
from homebid.models.proposal import Proposal, ProposalStatus
from homebid.services.audit import AuditService
from homebid.services.proposal_state_machine import Actor, apply_transition


logger = logging.getLogger(__name__)


async def expire_proposal(
    proposal: Proposal,
    audit: AuditService,
    at: datetime,
) -> bool:
    """
    Expire one proposal if it is still pending.

    Returns:
        True if the proposal was moved to expired
    """
    if not proposal.is_pending:
        return False

    previous = proposal.status.value
    apply_transition(proposal, ProposalStatus.EXPIRED, Actor.SYSTEM, at=at)
    await audit.log_status_change(
        resource_type="proposal",
        resource_id=proposal.id,
        actor_user_id=None,
        before=previous,
        after=ProposalStatus.EXPIRED.value,
        extra_data={"expiry_date": proposal.expiry_date.isoformat()},
    )
    return True


async def sweep_expired(
    session: AsyncSession,
    clock: Clock,
    project_id: Optional[int] = None,
) -> List[int]:
    """
    Expire every lapsed pending proposal.

    Args:
        session: Database session (not committed here)
        clock: Source of today's date
        project_id: Limit the sweep to one project

    Returns:
        Ids of the proposals that were expired
    """
    dao = ProposalDAO(session)
    audit = AuditService(session)
    now = clock.now()

    lapsed = await dao.get_lapsed(clock.today(), project_id=project_id)
    expired_ids: List[int] = []
    for proposal in lapsed:
        if await expire_proposal(proposal, audit, now):
            expired_ids.append(proposal.id)

    if expired_ids:
        await session.flush()
        logger.info(
            "Expired %d lapsed proposal(s)%s",
            len(expired_ids),
            f" on project {project_id}" if project_id is not None else "",
        )

    return expired_ids
