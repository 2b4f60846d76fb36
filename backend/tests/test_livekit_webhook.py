import json
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from callsync.config import Settings
from callsync.errors import StoreError
from callsync.main import create_app
from callsync.models.agent_log import AgentLog
from callsync.models.call import Call
from callsync.services import call_reconciler as reconciler_module
from callsync.services.audit_logger import AuditLogger

ROOM_STARTED = {"event": "room_started", "room": {"sid": "RM1"}, "created_at": 1700000000000}


async def _count(session_maker, model):
    async with session_maker() as db:
        return (await db.execute(select(func.count(model.id)))).scalar_one()


async def _calls(session_maker):
    async with session_maker() as db:
        return (await db.execute(select(Call).order_by(Call.id))).scalars().all()


async def _logs(session_maker):
    async with session_maker() as db:
        return (await db.execute(select(AgentLog).order_by(AgentLog.id))).scalars().all()


@pytest.mark.asyncio
async def test_room_started_creates_open_call(post_event, session_maker):
    response = await post_event("acme", ROOM_STARTED)

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    calls = await _calls(session_maker)
    assert len(calls) == 1
    assert calls[0].org_id == "org-acme"
    assert calls[0].external_ref == "RM1"
    assert calls[0].started_at.replace(tzinfo=timezone.utc) == datetime(
        2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc
    )
    assert calls[0].ended_at is None
    assert len(await _logs(session_maker)) == 1


@pytest.mark.asyncio
async def test_redelivered_room_started_keeps_one_call(post_event, session_maker):
    for _ in range(2):
        response = await post_event("acme", ROOM_STARTED)
        assert response.status_code == 200

    calls = await _calls(session_maker)
    assert [call.external_ref for call in calls] == ["RM1"]
    # Every verified delivery is audited, duplicates included.
    assert await _count(session_maker, AgentLog) == 2


@pytest.mark.asyncio
async def test_room_finished_closes_existing_call(post_event, session_maker):
    await post_event("acme", ROOM_STARTED)

    response = await post_event("acme", {"event": "room_finished", "room_sid": "RM1"})

    assert response.status_code == 200
    calls = await _calls(session_maker)
    assert len(calls) == 1
    assert calls[0].external_ref == "RM1"
    assert calls[0].ended_at is not None
    assert calls[0].started_at.replace(tzinfo=timezone.utc) == datetime(
        2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc
    )


@pytest.mark.asyncio
async def test_room_finished_before_start_is_accepted(post_event, session_maker):
    response = await post_event("acme", {"event": "room_finished", "room": {"sid": "RM_NEVER"}})

    assert response.status_code == 200
    assert await _count(session_maker, Call) == 0
    assert await _count(session_maker, AgentLog) == 1


@pytest.mark.asyncio
async def test_tampered_authorization_is_rejected_without_writes(post_event, session_maker, sign):
    body = json.dumps(ROOM_STARTED).encode("utf-8")
    token = sign(body)
    tampered = token[:-4] + ("AAAA" if not token.endswith("AAAA") else "BBBB")

    response = await post_event("acme", body, auth_header=tampered)

    assert response.status_code == 401
    assert await _count(session_maker, Call) == 0
    assert await _count(session_maker, AgentLog) == 0


@pytest.mark.asyncio
async def test_token_for_other_body_is_rejected(post_event, session_maker, sign):
    other = json.dumps({"event": "room_started", "room": {"sid": "RM2"}}).encode("utf-8")

    response = await post_event("acme", ROOM_STARTED, auth_header=sign(other))

    assert response.status_code == 401
    assert await _count(session_maker, Call) == 0


@pytest.mark.asyncio
async def test_missing_authorization_is_rejected(post_event, session_maker):
    response = await post_event("acme", ROOM_STARTED, auth_header="")

    assert response.status_code == 401
    assert await _count(session_maker, AgentLog) == 0


@pytest.mark.asyncio
async def test_unknown_and_inactive_projects_are_indistinguishable(post_event, session_maker):
    ghost = await post_event("ghost", ROOM_STARTED)
    dormant = await post_event("dormant", ROOM_STARTED)

    assert ghost.status_code == 204
    assert dormant.status_code == 204
    assert ghost.content == dormant.content == b""
    assert sorted(ghost.headers.keys()) == sorted(dormant.headers.keys())
    assert await _count(session_maker, Call) == 0
    assert await _count(session_maker, AgentLog) == 0


@pytest.mark.asyncio
async def test_other_event_is_only_audited(post_event, session_maker):
    response = await post_event("acme", {"event": "participant_joined"})

    assert response.status_code == 200
    logs = await _logs(session_maker)
    assert len(logs) == 1
    assert logs[0].event_name == "participant_joined"
    assert await _count(session_maker, Call) == 0


@pytest.mark.asyncio
async def test_room_started_without_identity_creates_one_call(post_event, session_maker):
    response = await post_event("acme", {"event": "room_started"})

    assert response.status_code == 200
    calls = await _calls(session_maker)
    assert len(calls) == 1
    assert calls[0].external_ref.startswith("lk_")


@pytest.mark.asyncio
async def test_reconcile_failure_keeps_audit_and_succeeds(post_event, session_maker, monkeypatch):
    async def broken_insert(db, values):
        raise OperationalError("INSERT INTO calls", {}, Exception("connection reset"))

    monkeypatch.setattr(reconciler_module, "_insert_if_absent", broken_insert)

    response = await post_event("acme", ROOM_STARTED)

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert await _count(session_maker, AgentLog) == 1
    assert await _count(session_maker, Call) == 0


@pytest.mark.asyncio
async def test_audit_failure_still_reconciles(post_event, session_maker, monkeypatch):
    async def broken_insert(self, project, event):
        raise StoreError("agent_logs unavailable")

    monkeypatch.setattr(AuditLogger, "_insert", broken_insert)

    response = await post_event("acme", {"event": "room_started", "room": {"sid": "RMX"}})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    calls = await _calls(session_maker)
    assert [call.external_ref for call in calls] == ["RMX"]
    assert await _count(session_maker, AgentLog) == 0


@pytest.mark.asyncio
async def test_wrapped_payload_shapes_reconcile(post_event, session_maker):
    await post_event("acme", {"event": "room_started", "data": {"room": {"sid": "RM_DATA"}}})
    await post_event("acme", {"event": "room_started", "payload": {"room": {"name": "lobby"}}})

    refs = sorted(call.external_ref for call in await _calls(session_maker))
    assert refs == ["RM_DATA", "lobby"]


def test_health_probe_has_no_side_effects(tmp_path):
    settings = Settings(_env_file=None, database_url="")
    with TestClient(create_app(settings)) as client:
        response = client.get("/api/livekit/webhook/anything")
        assert response.status_code == 200
        assert response.json() == {"ok": True}

        health = client.get("/health")
        assert health.status_code == 200
        assert health.json()["database_configured"] is False
        assert health.json()["livekit_configured"] is False


def test_missing_livekit_credentials_is_server_error(tmp_path):
    settings = Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'misconfig.db'}",
        livekit_api_key="",
        livekit_api_secret="",
    )
    with TestClient(create_app(settings)) as client:
        response = client.post(
            "/api/livekit/webhook/acme",
            content=json.dumps(ROOM_STARTED),
            headers={"authorization": "anything"},
        )
    assert response.status_code == 500


def test_missing_database_is_server_error_after_verification(sign):
    settings = Settings(
        _env_file=None,
        database_url="",
        livekit_api_key="APItestkey",
        livekit_api_secret="test-secret-that-is-long-enough",
    )
    body = json.dumps(ROOM_STARTED).encode("utf-8")
    with TestClient(create_app(settings)) as client:
        bad = client.post("/api/livekit/webhook/acme", content=body, headers={"authorization": "bogus"})
        good = client.post("/api/livekit/webhook/acme", content=body, headers={"authorization": sign(body)})

    assert bad.status_code == 401
    assert good.status_code == 500


def test_importing_main_builds_no_app():
    import callsync.main as main_module

    assert not hasattr(main_module, "app")
    assert callable(main_module.create_app)
