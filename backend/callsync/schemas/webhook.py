"""Webhook response schemas."""

from pydantic import BaseModel


class WebhookAck(BaseModel):
    """Body returned to the webhook sender."""
    ok: bool = True


class HealthResponse(BaseModel):
    status: str = "healthy"
    app: str
    version: str
    database_configured: bool
    livekit_configured: bool
