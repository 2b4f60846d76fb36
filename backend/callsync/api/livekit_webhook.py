"""LiveKit webhook endpoints."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from callsync.errors import AuthError, ConfigError
from callsync.schemas.webhook import WebhookAck
from callsync.services.webhook_handler import (
    WebhookHandler,
    WebhookStatus,
    get_webhook_handler,
)
from callsync.utils.logging import get_logger

router = APIRouter()
logger = get_logger("livekit_webhook")


@router.post("/livekit/webhook/{project_slug}", response_model=WebhookAck)
async def livekit_webhook(
    project_slug: str,
    request: Request,
    handler: WebhookHandler = Depends(get_webhook_handler),
):
    # The signature covers the exact bytes; read them before anything parses.
    raw_body = await request.body()
    auth_header = request.headers.get("authorization") or ""

    structlog.contextvars.bind_contextvars(project_slug=project_slug)
    try:
        outcome = await handler.handle(project_slug, raw_body, auth_header)
    except AuthError as e:
        logger.warning("livekit_webhook_verify_failed", error=str(e))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid signature")
    except ConfigError as e:
        logger.error("livekit_webhook_misconfigured", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="server env misconfig"
        )
    finally:
        structlog.contextvars.unbind_contextvars("project_slug")

    if outcome.status == WebhookStatus.IGNORED:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return WebhookAck()


@router.get("/livekit/webhook/{project_slug}", response_model=WebhookAck)
async def livekit_webhook_health(project_slug: str) -> WebhookAck:
    """Health probe for the sender's endpoint check. No side effects."""
    return WebhookAck()
