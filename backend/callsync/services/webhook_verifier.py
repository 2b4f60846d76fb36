"""Verification of LiveKit webhook requests.

LiveKit signs each delivery with a HS256 JWT in the ``Authorization`` header.
The token is checked with the LiveKit SDK's ``TokenVerifier``; its ``sha256``
claim must match the digest of the exact request body. The body is then decoded
as a plain dict rather than the SDK's ``WebhookEvent`` protobuf, which would
drop the ``data``/``payload`` wrappers some senders use.
"""

import base64
import hashlib
import hmac
import json
from datetime import timedelta
from typing import Any, Dict, Optional, Union

import jwt
from fastapi import Request
from livekit import api

from callsync.errors import AuthError, ConfigError


def body_digest(raw_body: bytes) -> str:
    """Base64 SHA-256 digest in the form LiveKit puts in the ``sha256`` claim."""
    return base64.b64encode(hashlib.sha256(raw_body).digest()).decode("ascii")


class WebhookVerifier:
    """Checks a raw body and ``Authorization`` value against the API key pair."""

    def __init__(self, api_key: str, api_secret: str, leeway_seconds: int = 10):
        self.api_key = (api_key or "").strip()
        self.api_secret = (api_secret or "").strip()
        self.leeway_seconds = leeway_seconds
        self._token_verifier: Optional[api.TokenVerifier] = None
        if self.configured:
            self._token_verifier = api.TokenVerifier(
                self.api_key,
                self.api_secret,
                leeway=timedelta(seconds=leeway_seconds),
            )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_secret)

    def receive(self, raw_body: Union[bytes, str], auth_header: str) -> Dict[str, Any]:
        """Return the decoded event, or raise :class:`AuthError`.

        ``raw_body`` must be the untouched request body. Raises
        :class:`ConfigError` when the API key pair is not configured.
        """
        if self._token_verifier is None:
            raise ConfigError("LiveKit API credentials are not configured")

        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")

        token = (auth_header or "").strip()
        if token.lower().startswith("bearer "):
            token = token[7:].strip()
        if not token:
            raise AuthError("Missing authorization header")

        try:
            claims = self._token_verifier.verify(token)
        except (jwt.PyJWTError, ValueError, TypeError, KeyError) as exc:
            raise AuthError(f"Invalid webhook token: {exc}") from exc

        claimed = claims.sha256
        if not isinstance(claimed, str) or not claimed:
            raise AuthError("Webhook token has no body digest")
        if not hmac.compare_digest(claimed, body_digest(raw_body)):
            raise AuthError("Body digest mismatch")

        try:
            event = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise AuthError("Signed body is not valid JSON") from exc
        if not isinstance(event, dict):
            raise AuthError("Signed body is not a JSON object")
        return event


def get_webhook_verifier(request: Request) -> WebhookVerifier:
    """FastAPI dependency building the verifier from the app's settings."""
    settings = request.app.state.settings
    return WebhookVerifier(
        settings.livekit_api_key,
        settings.livekit_api_secret,
        leeway_seconds=settings.webhook_leeway_seconds,
    )
