import json

import pytest
from fastapi.testclient import TestClient

from services import engine as engine_svc
from services import github, settings
from services.storage import MemoryStore

DEMO_SOURCE = {"url": "https://example.invalid/demo.json", "kind": "flat", "field": "LATEST"}


@pytest.fixture
def engine(session_factory, response_factory):
    settings.update({"extra_sources": {"Demo": DEMO_SOURCE}})
    session = session_factory(response_factory({"LATEST": "2.0.0"}))
    eng = engine_svc.build(
        store=MemoryStore(),
        session=session,
        identity=lambda: ("Demo", "1.0.0"),
        sleep=lambda s: None,
    )
    engine_svc.set_engine(eng)
    return eng


@pytest.fixture
def client(engine):
    from main import create_app

    # Not entered as a context manager, so the lifespan scheduler stays off
    return TestClient(create_app())


def test_health(client):
    assert client.get("/api/health").json() == {"ok": True}


def test_check_round_trip(client):
    before = client.get("/api/check").json()
    assert before["status"] == "unknown"
    assert before["software_name"] == "Demo"

    ran = client.post("/api/check", params={"use_cache": "false"}).json()
    assert ran["status"] == "update_available"
    assert ran["latest_version"] == "2.0.0"

    after = client.get("/api/check").json()
    assert after == ran


def test_manual_check_does_not_alert(client, engine):
    events = []
    engine.broadcaster.subscribe(lambda event, payload: events.append(event))
    client.post("/api/check")
    assert events == ["result"]


def test_settings_round_trip(client, engine):
    resp = client.put("/api/settings", json={"alert_type": "tab", "alarm_schedule": "300"})
    assert resp.status_code == 200
    assert resp.json()["alert_type"] == "tab"

    data = client.get("/api/settings").json()
    assert data["alarm_schedule"] == "300"
    assert data["managed"] == []
    assert "Demo" in data["sources"]

    trigger = engine.alarms.get(engine.reconciler.name)
    assert trigger.period_minutes == 300
    assert client.get("/api/info").json()["check_interval_minutes"] == 300


@pytest.mark.parametrize(
    "body",
    [
        {"alarm_schedule": "10"},
        {"alert_type": "smoke-signal"},
        {"extra_sources": {"Broken": {"url": "ftp://nowhere", "field": "x"}}},
    ],
)
def test_invalid_settings_are_rejected(client, body):
    assert client.put("/api/settings", json=body).status_code == 422


def test_managed_settings_are_read_only(client, data_home):
    (data_home / "managed.json").write_text(json.dumps({"alert_type": "disabled"}), encoding="utf-8")
    resp = client.put("/api/settings", json={"alert_type": "tab"})
    assert resp.status_code == 409
    assert client.get("/api/settings").json()["managed"] == ["alert_type"]


def test_info_reports_identity(client):
    data = client.get("/api/info").json()
    assert data["software_name"] == "Demo"
    assert data["supported"] is True
    assert "Firefox" in data["builtin_sources"]


def test_manager_update(client, monkeypatch):
    monkeypatch.setattr(github, "check_manager_update_sync", lambda: {"update_available": False})
    assert client.get("/api/info/manager-update").json() == {"update_available": False}


def test_recent_logs(client):
    client.post("/api/check")
    logs = client.get("/api/debug/recent-logs").json()["logs"]
    assert "Check finished" in logs


def test_event_stream_relays_results_and_alerts(engine):
    import asyncio

    from api.checker import events

    engine.orchestrator.run_check()

    async def scenario():
        response = await events()
        stream = response.body_iterator
        first = await stream.__anext__()
        engine.broadcaster.publish("alert", {"kind": "open"})
        second = await stream.__anext__()
        await stream.aclose()
        return first, second

    first, second = asyncio.run(scenario())

    assert first.startswith("event: result\n")
    assert '"update_available"' in first
    assert second == 'event: alert\ndata: {"kind": "open"}\n\n'
    assert engine.broadcaster._listeners == []
