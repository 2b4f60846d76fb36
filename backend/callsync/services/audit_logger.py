"""Append verified webhook events to ``agent_logs``."""

from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callsync.errors import StoreError
from callsync.models.agent_log import AgentLog, AgentLogLevel
from callsync.models.project import Project
from callsync.services.normalizer import UNKNOWN_EVENT
from callsync.utils.logging import get_logger

logger = get_logger("audit_logger")


class AuditLogger:
    """Best-effort audit trail, committed in its own transaction."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def _insert(self, project: Project, event: Dict[str, Any]) -> None:
        event_name = event.get("event")
        if not isinstance(event_name, str) or not event_name.strip():
            event_name = UNKNOWN_EVENT
        try:
            async with self.session_maker() as db:
                db.add(
                    AgentLog(
                        org_id=project.org_id,
                        level=AgentLogLevel.DEBUG.value,
                        event_name=event_name[:100],
                        meta=event,
                    )
                )
                await db.commit()
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    async def record(self, project: Project, event: Dict[str, Any]) -> bool:
        """Insert one audit row. Failures are logged and reported as ``False``."""
        try:
            await self._insert(project, event)
        except StoreError as exc:
            logger.error(
                "audit_insert_failed",
                org_id=project.org_id,
                error=str(exc),
            )
            return False
        return True
