"""API package initialization."""

from callsync.api.livekit_webhook import router as livekit_webhook_router

__all__ = [
    "livekit_webhook_router",
]
