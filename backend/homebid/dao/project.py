"""
Project Data Access Object (DAO).

WHAT: Database operations for the Project model.

WHY: Besides plain lookups, the acceptance cascade needs to lock the
project row for the duration of a cascade, which belongs in the data
layer rather than in the coordinator.
"""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homebid.dao.base import BaseDAO
from homebid.models.project import Project, ProjectStatus


class ProjectDAO(BaseDAO[Project]):
    """Data Access Object for Project model."""

    def __init__(self, session: AsyncSession):
        """
        Initialize ProjectDAO.

        Args:
            session: Async database session
        """
        super().__init__(Project, session)

    async def get_for_update(self, project_id: int) -> Optional[Project]:
        """
        Load a project and take a row lock on it.

        WHY: Serializes the homeowner's own edits against the acceptance
        cascade's status write (SELECT ... FOR UPDATE on PostgreSQL;
        SQLite has a single writer and ignores the clause).
        populate_existing refreshes an already-loaded instance so the
        caller sees the committed status and version.

        Args:
            project_id: Project ID

        Returns:
            Locked Project or None
        """
        result = await self.session.execute(
            select(Project)
            .where(Project.id == project_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_creator(
        self,
        creator_id: int,
        status: Optional[ProjectStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Project]:
        """List a homeowner's projects, newest first."""
        query = select(Project).where(Project.creator_id == creator_id)
        if status is not None:
            query = query.where(Project.status == status)

        result = await self.session.execute(
            query.order_by(Project.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def list_open(self, skip: int = 0, limit: int = 100) -> List[Project]:
        """
        List projects open for proposals.

        WHY: Contractors browse these to decide what to bid on.
        """
        result = await self.session.execute(
            select(Project)
            .where(Project.status == ProjectStatus.OPEN)
            .order_by(Project.expiry_date, Project.id)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())
