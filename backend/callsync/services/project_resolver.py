"""Resolve a webhook path slug to an active LiveKit project."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callsync.models.project import Project
from callsync.utils.logging import get_logger

logger = get_logger("project_resolver")


class ProjectResolver:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def resolve(self, slug: str) -> Optional[Project]:
        """Return the active project for ``slug``, else ``None``.

        Unknown, inactive and unreadable projects all return ``None`` so the
        caller cannot tell them apart.
        """
        try:
            async with self.session_maker() as db:
                result = await db.execute(select(Project).where(Project.slug == slug))
                project = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error(
                "project_lookup_failed",
                project_slug=slug,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        if project is None:
            logger.warning("project_unknown", project_slug=slug)
            return None
        if not project.is_active:
            logger.warning("project_inactive", project_slug=slug, org_id=project.org_id)
            return None
        return project
