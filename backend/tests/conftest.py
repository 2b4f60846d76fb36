import base64
import hashlib
import json

import httpx
import pytest
import pytest_asyncio
from livekit import api

from callsync.config import Settings
from callsync.database import init_models
from callsync.main import create_app
from callsync.models.project import Project

API_KEY = "APItestkey"
API_SECRET = "test-secret-that-is-long-enough"
ORG_ID = "org-acme"


class RecordingLogger:
    """Stand-in for a structlog logger that keeps every call."""

    def __init__(self):
        self.records = []

    def _record(self, level, event, **kwargs):
        self.records.append((level, event, kwargs))

    def debug(self, event, **kwargs):
        self._record("debug", event, **kwargs)

    def info(self, event, **kwargs):
        self._record("info", event, **kwargs)

    def warning(self, event, **kwargs):
        self._record("warning", event, **kwargs)

    def error(self, event, **kwargs):
        self._record("error", event, **kwargs)

    def events(self, level=None):
        return [event for lvl, event, _ in self.records if level is None or lvl == level]


def build_auth_header(body: bytes, api_key: str = API_KEY, secret: str = API_SECRET) -> str:
    digest = base64.b64encode(hashlib.sha256(body).digest()).decode("ascii")
    return api.AccessToken(api_key, secret).with_sha256(digest).to_jwt()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'callsync.db'}",
        livekit_api_key=API_KEY,
        livekit_api_secret=API_SECRET,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest_asyncio.fixture
async def session_maker(app):
    await init_models(app.state.engine)
    yield app.state.session_maker
    await app.state.engine.dispose()


@pytest_asyncio.fixture
async def projects(session_maker):
    async with session_maker() as db:
        acme = Project(slug="acme", org_id=ORG_ID, is_active=True)
        dormant = Project(slug="dormant", org_id="org-dormant", is_active=False)
        db.add_all([acme, dormant])
        await db.commit()
    return {"acme": acme, "dormant": dormant}


@pytest_asyncio.fixture
async def client(app, session_maker, projects):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def post_event(client):
    """POST a signed event (dict or raw bytes) to a project's webhook."""

    async def _post(slug, payload, auth_header=None):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        headers = {
            "content-type": "application/webhook+json",
            "authorization": auth_header if auth_header is not None else build_auth_header(body),
        }
        return await client.post(f"/api/livekit/webhook/{slug}", content=body, headers=headers)

    return _post


@pytest.fixture
def recording_logger():
    return RecordingLogger()


@pytest.fixture
def sign():
    return build_auth_header
