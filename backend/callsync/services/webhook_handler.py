"""Sequence verification, project resolution, auditing and reconciliation."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callsync.database import get_session_maker
from callsync.errors import ConfigError
from callsync.services.audit_logger import AuditLogger
from callsync.services.call_reconciler import CallReconciler, ReconcileResult
from callsync.services.normalizer import normalize_event
from callsync.services.project_resolver import ProjectResolver
from callsync.services.webhook_verifier import WebhookVerifier, get_webhook_verifier
from callsync.utils.logging import get_logger

logger = get_logger("webhook_handler")


class WebhookStatus(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class WebhookOutcome:
    status: WebhookStatus
    event_kind: Optional[str] = None
    audited: bool = False
    reconcile_result: Optional[ReconcileResult] = None


class WebhookHandler:
    """Runs one inbound webhook to completion.

    Raises ``AuthError`` or ``ConfigError`` before any store access; every
    later failure is recovered and logged.
    """

    def __init__(
        self,
        verifier: WebhookVerifier,
        resolver: Optional[ProjectResolver],
        audit_logger: Optional[AuditLogger],
        reconciler: Optional[CallReconciler],
    ):
        self.verifier = verifier
        self.resolver = resolver
        self.audit_logger = audit_logger
        self.reconciler = reconciler

    @classmethod
    def from_session_maker(
        cls,
        verifier: WebhookVerifier,
        session_maker: Optional[async_sessionmaker[AsyncSession]],
    ) -> "WebhookHandler":
        if session_maker is None:
            return cls(verifier, None, None, None)
        return cls(
            verifier,
            ProjectResolver(session_maker),
            AuditLogger(session_maker),
            CallReconciler(session_maker),
        )

    async def handle(
        self, project_slug: str, raw_body: Union[bytes, str], auth_header: str
    ) -> WebhookOutcome:
        received_at = datetime.now(timezone.utc)
        event = self.verifier.receive(raw_body, auth_header)

        if self.resolver is None or self.audit_logger is None or self.reconciler is None:
            raise ConfigError("Database is not configured")

        normalized = normalize_event(event, received_at=received_at)
        logger.info(
            "livekit_webhook_verified",
            event_kind=normalized.kind,
            room_sid=normalized.room_sid,
            room_name=normalized.room_name,
            occurred_at_source=normalized.occurred_at_source,
        )

        project = await self.resolver.resolve(project_slug)
        if project is None:
            return WebhookOutcome(status=WebhookStatus.IGNORED, event_kind=normalized.kind)

        audited = await self.audit_logger.record(project, event)
        result = await self.reconciler.apply(project, normalized)

        logger.info(
            "livekit_webhook_processed",
            org_id=project.org_id,
            event_kind=normalized.kind,
            audited=audited,
            reconcile_result=result.value,
        )
        return WebhookOutcome(
            status=WebhookStatus.PROCESSED,
            event_kind=normalized.kind,
            audited=audited,
            reconcile_result=result,
        )


def get_webhook_handler(
    verifier: WebhookVerifier = Depends(get_webhook_verifier),
    session_maker: Optional[async_sessionmaker[AsyncSession]] = Depends(get_session_maker),
) -> WebhookHandler:
    """FastAPI dependency wiring a handler for the current app."""
    return WebhookHandler.from_session_maker(verifier, session_maker)
