"""
Proposal lifecycle background jobs.

WHAT: The two periodic jobs of the proposal engine:
1. Expiry sweep: moves lapsed pending proposals to expired
2. Acceptance reconciliation: resumes failed acceptance cascades

WHY: Expiry is time-driven, so something has to act when no request
arrives. A failed cascade leaves a project with an accepted proposal
that is not yet awarded; reconciliation finishes it without waiting for
the homeowner to retry.

HOW: Each run opens its own session from the session factory, commits
at the end, and returns a stats dict. One failing operation does not
stop the reconciliation of the others.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from homebid.core.clock import Clock, system_clock
from homebid.core.exceptions import AppException
from homebid.dao.acceptance_operation import AcceptanceOperationDAO
from homebid.db.session import AsyncSessionLocal
from homebid.services.acceptance_coordinator import AcceptanceCoordinator
from homebid.services.expiry_sweep import sweep_expired


logger = logging.getLogger(__name__)


class LifecycleBackgroundService:
    """
    Background jobs for proposal expiry and acceptance reconciliation.

    Example:
        service = LifecycleBackgroundService()
        await service.run_expiry_sweep()  # {"expired": 3}
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        clock: Clock = system_clock,
    ):
        """
        Initialize the background service.

        Args:
            session_factory: Factory for job sessions (default AsyncSessionLocal)
            clock: Source of "now"
        """
        self._session_factory = session_factory or AsyncSessionLocal
        self.clock = clock

    async def run_expiry_sweep(self) -> Dict[str, int]:
        """
        Expire every lapsed pending proposal.

        Returns:
            Dict with the number of proposals expired
        """
        start_time = datetime.utcnow()
        session = self._session_factory()
        try:
            expired_ids = await sweep_expired(session, self.clock)
            await session.commit()
        except Exception as e:
            logger.error(f"Error in proposal expiry sweep: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()

        elapsed = (datetime.utcnow() - start_time).total_seconds()
        logger.info(f"Expiry sweep completed in {elapsed:.2f}s. Expired: {len(expired_ids)}")
        return {"expired": len(expired_ids)}

    async def reconcile_acceptances(self, limit: int = 50) -> Dict[str, int]:
        """
        Resume failed acceptance operations.

        Returns:
            Dict with counts of operations resumed and still failing
        """
        stats = {"resumed": 0, "failed": 0}

        session = self._session_factory()
        try:
            operations = await AcceptanceOperationDAO(session).list_failed(limit=limit)
            operation_ids = [op.id for op in operations]
            coordinator = AcceptanceCoordinator(session, self.clock)

            for operation_id in operation_ids:
                try:
                    await coordinator.resume(operation_id)
                    stats["resumed"] += 1
                except AppException as e:
                    logger.error(f"Acceptance operation {operation_id} still failing: {e.message}")
                    stats["failed"] += 1
        finally:
            await session.close()

        if operation_ids:
            logger.info(
                f"Acceptance reconciliation: {stats['resumed']} resumed, {stats['failed']} still failing"
            )
        return stats


_lifecycle_service: Optional[LifecycleBackgroundService] = None


def get_lifecycle_service() -> LifecycleBackgroundService:
    """Get the process-wide background service."""
    global _lifecycle_service
    if _lifecycle_service is None:
        _lifecycle_service = LifecycleBackgroundService()
    return _lifecycle_service
