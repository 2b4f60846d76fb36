"""Apply normalized room events to the ``calls`` table.

Per ``(org_id, external_ref)`` a call moves Absent -> Open -> Closed:

- ``room_started`` inserts an open row unless one already exists. Redelivery
  never touches ``started_at`` or ``ended_at`` of an existing row.
- ``room_finished`` sets ``ended_at`` on the open row. A missing row (finish
  delivered before start, or start lost) and an already closed row are no-ops.
- Every other event kind leaves the table untouched.

Store failures are logged and swallowed; the sender is not asked to retry.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callsync.errors import StoreError
from callsync.models.call import Call
from callsync.models.project import Project
from callsync.services.normalizer import NormalizedEvent
from callsync.utils.logging import get_logger

logger = get_logger("call_reconciler")

ROOM_STARTED = "room_started"
ROOM_FINISHED = "room_finished"

FALLBACK_REF_PREFIX = "lk_"


class ReconcileResult(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    CLOSED = "closed"
    ALREADY_CLOSED = "already_closed"
    NOT_FOUND = "not_found"
    SKIPPED = "skipped"
    IGNORED = "ignored"
    FAILED = "failed"


def fallback_external_ref(received_at: datetime) -> str:
    """Unique ref for a started room that reported neither sid nor name."""
    millis = int(received_at.timestamp() * 1000)
    return f"{FALLBACK_REF_PREFIX}{millis}_{uuid.uuid4().hex[:8]}"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _duration_seconds(started_at: datetime, ended_at: datetime) -> int:
    delta = _as_utc(ended_at) - _as_utc(started_at)
    return max(0, int(delta.total_seconds()))


def _conflict_insert(dialect: str):
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    return None


async def _find_call(db: AsyncSession, org_id: str, external_ref: str) -> Optional[Call]:
    result = await db.execute(
        select(Call).where(Call.org_id == org_id, Call.external_ref == external_ref)
    )
    return result.scalar_one_or_none()


async def _insert_if_absent(db: AsyncSession, values: dict) -> bool:
    """Insert an open call; ``False`` when the row already existed."""
    bind = db.get_bind()
    dialect = bind.dialect.name if bind is not None else ""
    insert_fn = _conflict_insert(dialect)

    if insert_fn is not None:
        stmt = (
            insert_fn(Call)
            .values(**values)
            .on_conflict_do_nothing(index_elements=[Call.org_id, Call.external_ref])
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)

    existing = await _find_call(db, values["org_id"], values["external_ref"])
    if existing is not None:
        return False
    try:
        async with db.begin_nested():
            db.add(Call(**values))
    except IntegrityError:
        # Lost the race to a concurrent delivery; the unique key settled it.
        return False
    return True


class CallReconciler:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def apply(self, project: Project, event: NormalizedEvent) -> ReconcileResult:
        """Apply ``event`` for ``project``'s organization."""
        try:
            if event.kind == ROOM_STARTED:
                return await self._room_started(project, event)
            if event.kind == ROOM_FINISHED:
                return await self._room_finished(project, event)
        except StoreError as exc:
            logger.error(
                "call_reconcile_failed",
                org_id=project.org_id,
                event_kind=event.kind,
                room_sid=event.room_sid,
                room_name=event.room_name,
                error=str(exc),
            )
            return ReconcileResult.FAILED

        logger.debug("call_reconcile_ignored_event", event_kind=event.kind)
        return ReconcileResult.IGNORED

    async def _room_started(self, project: Project, event: NormalizedEvent) -> ReconcileResult:
        external_ref = event.identity
        if external_ref is None:
            external_ref = fallback_external_ref(event.received_at)
            logger.warning(
                "call_started_without_room_identity",
                org_id=project.org_id,
                external_ref=external_ref,
            )

        values = {
            "org_id": project.org_id,
            "external_ref": external_ref,
            "started_at": event.occurred_at,
            "summary": None,
            "tags": [],
        }
        try:
            async with self.session_maker() as db:
                created = await _insert_if_absent(db, values)
                await db.commit()
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

        if not created:
            logger.info(
                "call_start_redelivered",
                org_id=project.org_id,
                external_ref=external_ref,
            )
            return ReconcileResult.ALREADY_EXISTS

        logger.info(
            "call_opened",
            org_id=project.org_id,
            external_ref=external_ref,
            started_at=event.occurred_at.isoformat(),
            started_at_source=event.occurred_at_source,
        )
        return ReconcileResult.CREATED

    async def _room_finished(self, project: Project, event: NormalizedEvent) -> ReconcileResult:
        external_ref = event.identity
        if external_ref is None:
            logger.warning("call_finish_without_room_identity", org_id=project.org_id)
            return ReconcileResult.SKIPPED

        ended_at = event.occurred_at
        try:
            async with self.session_maker() as db:
                call = await _find_call(db, project.org_id, external_ref)
                if call is None:
                    logger.warning(
                        "call_finish_without_open_call",
                        org_id=project.org_id,
                        external_ref=external_ref,
                    )
                    return ReconcileResult.NOT_FOUND
                if call.ended_at is not None:
                    logger.info(
                        "call_finish_redelivered",
                        org_id=project.org_id,
                        external_ref=external_ref,
                    )
                    return ReconcileResult.ALREADY_CLOSED

                result = await db.execute(
                    update(Call)
                    .where(
                        Call.id == call.id,
                        Call.ended_at.is_(None),
                    )
                    .values(
                        ended_at=ended_at,
                        duration_seconds=_duration_seconds(call.started_at, ended_at),
                    )
                )
                await db.commit()
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

        if not result.rowcount:
            # Closed by a concurrent delivery between the read and the update.
            return ReconcileResult.ALREADY_CLOSED

        logger.info(
            "call_closed",
            org_id=project.org_id,
            external_ref=external_ref,
            ended_at=ended_at.isoformat(),
            ended_at_source=event.occurred_at_source,
        )
        return ReconcileResult.CLOSED
