"""Schemas package initialization."""

from callsync.schemas.webhook import HealthResponse, WebhookAck

__all__ = [
    "HealthResponse",
    "WebhookAck",
]
