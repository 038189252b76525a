"""
Acceptance operation Data Access Object (DAO).

WHAT: Reads and writes for the acceptance ledger.
"""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homebid.dao.base import BaseDAO
from homebid.models.acceptance_operation import (
    AcceptanceOperation,
    AcceptanceOperationStatus,
)


class AcceptanceOperationDAO(BaseDAO[AcceptanceOperation]):
    """Data Access Object for AcceptanceOperation model."""

    def __init__(self, session: AsyncSession):
        super().__init__(AcceptanceOperation, session)

    async def get_unfinished_for_project(self, project_id: int) -> Optional[AcceptanceOperation]:
        """
        Get an in-progress or failed operation on the project, if any.

        WHY: While one exists the project already has an accepted proposal
        whose cascade is not finished; a new accept must not start.
        """
        result = await self.session.execute(
            select(AcceptanceOperation)
            .where(
                AcceptanceOperation.project_id == project_id,
                AcceptanceOperation.status != AcceptanceOperationStatus.COMPLETED,
            )
            .order_by(AcceptanceOperation.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_failed(self, limit: int = 50) -> List[AcceptanceOperation]:
        """
        List failed operations, oldest first, for the reconciliation job.
        """
        result = await self.session.execute(
            select(AcceptanceOperation)
            .where(AcceptanceOperation.status == AcceptanceOperationStatus.FAILED)
            .order_by(AcceptanceOperation.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())
