from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

import db
import main
from app.types.parser_contract import ParsedTask
from config import settings

from conftest import FakeTranscriber

SECRET = "s3cret"


@pytest_asyncio.fixture
async def client(database, telegram, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", SECRET)
    main.app.dependency_overrides[main.get_telegram] = lambda: telegram
    main.app.dependency_overrides[main.get_transcriber] = lambda: FakeTranscriber(available=False)
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    main.app.dependency_overrides.clear()


def _auth(token=SECRET):
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_webhook_accepts_update_and_processes_in_background(client, telegram):
    update = {
        "update_id": 100,
        "message": {"message_id": 1, "chat": {"id": 42}, "text": "купить молоко"},
    }
    r = await client.post("/telegram/webhook", json=update)
    assert r.status_code == 200
    assert r.json() == {"ok": True}

    assert [t.text for t in await db.list_boxed_tasks("42")] == ["купить молоко"]
    assert len(telegram.sent) == 1


@pytest.mark.asyncio
async def test_webhook_redelivery_is_processed_once(client, telegram):
    update = {
        "update_id": 101,
        "message": {"message_id": 1, "chat": {"id": 42}, "text": "купить хлеб"},
    }
    for _ in range(3):
        r = await client.post("/telegram/webhook", json=update)
        assert r.status_code == 200
    assert len(await db.list_tasks("42")) == 1
    assert len(telegram.sent) == 1


@pytest.mark.asyncio
async def test_webhook_rejects_invalid_json(client):
    r = await client.post(
        "/telegram/webhook", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert r.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"update_id": "42"}, {"update_id": None}, [1, 2]])
async def test_webhook_requires_integer_update_id(client, body):
    r = await client.post("/telegram/webhook", json=body)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_cron_tick_requires_secret(client):
    assert (await client.post("/cron/tick")).status_code == 401
    assert (await client.post("/cron/tick", headers=_auth("wrong"))).status_code == 401
    assert (await client.post("/cron/tick", headers={"Authorization": SECRET})).status_code == 401


@pytest.mark.asyncio
async def test_cron_tick_without_configured_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", None)
    assert (await client.post("/cron/tick", headers=_auth(""))).status_code == 401


@pytest.mark.asyncio
async def test_cron_tick_sends_due_reminders(client, telegram):
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    await db.create_task("42", ParsedTask(text="позвонить маме", due_at=past))

    r = await client.post("/cron/tick", headers=_auth())
    assert r.status_code == 200
    assert r.json() == {"ok": True, "due": 1, "sent": 1}

    r = await client.post("/cron/tick", headers=_auth())
    assert r.json() == {"ok": True, "due": 0, "sent": 0}
    assert len(telegram.sent) == 1


@pytest.mark.asyncio
async def test_cron_tick_reports_storage_failure(client, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(db, "list_due_reminder_batch", broken)
    r = await client.post("/cron/tick", headers=_auth())
    assert r.status_code == 500
    assert r.json()["ok"] is False


@pytest.mark.asyncio
async def test_cron_daily(client, telegram):
    await db.create_task("42", ParsedTask(text="купить молоко"))
    r = await client.post("/cron/daily", headers=_auth())
    assert r.status_code == 200
    assert r.json() == {"ok": True, "delivered": 1}
    assert "В коробке: 1" in telegram.texts("42")[0]


@pytest.mark.asyncio
async def test_list_tasks_requires_chat_id(client):
    assert (await client.get("/tasks")).status_code == 400


@pytest.mark.asyncio
async def test_list_and_update_tasks(client):
    task = await db.create_task("42", ParsedTask(text="купить молоко"))

    r = await client.get("/tasks", params={"chatId": "42"})
    assert r.status_code == 200
    assert [t["id"] for t in r.json()["tasks"]] == [task.id]

    r = await client.post(f"/tasks/{task.id}/done", params={"chatId": "42"})
    assert r.json() == {"ok": True, "result": "applied"}

    r = await client.post(f"/tasks/{task.id}/done", params={"chatId": "42"})
    assert r.json() == {"ok": False, "result": "already_completed"}


@pytest.mark.asyncio
async def test_task_action_errors(client):
    task = await db.create_task("42", ParsedTask(text="купить молоко"))
    r = await client.post(f"/tasks/{task.id}/explode", params={"chatId": "42"})
    assert r.status_code == 400
    r = await client.post("/tasks/missing/done", params={"chatId": "42"})
    assert r.status_code == 404
