import httpx
import pytest

from app.config import settings
from app.db import get_session
from app.entrypoints.api.deps import get_pipeline_deps, get_session_store
from app.entrypoints.fastapi_app import create_app

from conftest import make_messages, put_chat

KEY = "chat:919800000001::whatsapp-api::s1"


@pytest.fixture
def api(make_deps, store, async_session_maker, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    app = create_app()

    async def _deps():
        yield make_deps()

    async def _store():
        yield store

    async def _session():
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_pipeline_deps] = _deps
    app.dependency_overrides[get_session_store] = _store
    app.dependency_overrides[get_session] = _session

    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_trigger_requires_bearer_secret(api, fake_redis, primary):
    put_chat(fake_redis, KEY, make_messages(4), ttl=100)

    async with api as client:
        for headers in ({}, {"Authorization": "Bearer wrong"}, {"Authorization": "s3cret"}):
            r = await client.post("/api/process-chats", headers=headers)
            assert r.status_code == 401
            assert r.json() == {"detail": "Unauthorized"}

    assert primary.calls == []


@pytest.mark.asyncio
async def test_trigger_runs_pipeline(api, fake_redis):
    put_chat(fake_redis, KEY, make_messages(4), ttl=100, businessInfo="Acme")

    async with api as client:
        r = await client.post("/api/process-chats", headers={"Authorization": "Bearer s3cret"})
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["message"] == "Processed 1 chats"
        assert body["results"]["processed"] == [KEY]
        assert isinstance(body["duration_ms"], int)

        # GET is accepted too; nothing left to do
        r = await client.get("/api/process-chats", headers={"Authorization": "Bearer s3cret"})
        assert r.status_code == 200
        assert r.json()["results"]["processed"] == []

        runs = await client.get("/api/job-runs", headers={"Authorization": "Bearer s3cret"})
        assert runs.status_code == 200
        assert [run["status"] for run in runs.json()] == ["success", "success"]


@pytest.mark.asyncio
async def test_scan_failure_is_500_with_summary(api, fake_redis):
    fake_redis.scan_error = ConnectionError("redis down")

    async with api as client:
        r = await client.post("/api/process-chats", headers={"Authorization": "Bearer s3cret"})

    assert r.status_code == 500
    body = r.json()
    assert body["success"] is False
    assert body["message"] == "Failed to process chats"
    assert "redis down" in body["error"]
    assert body["results"] == {"processed": [], "skipped": [], "errors": []}


@pytest.mark.asyncio
async def test_no_secret_configured_means_open(api, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", None)
    async with api as client:
        r = await client.get("/api/process-chats")
    assert r.status_code == 200
    assert r.json()["message"] == "No chats to process"


@pytest.mark.asyncio
async def test_health(api):
    async with api as client:
        assert (await client.get("/health")).json() == {"status": "ok"}
        r = await client.get("/health/redis")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "redis": True}
