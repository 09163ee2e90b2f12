import hmac
import json
import logging

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

import db
from app.services import ingress
from app.services.scheduler import run_cron_tick, run_daily_digest
from app.services.transcription import Transcriber
from app.types.telegram import TelegramUpdate
from app.utils.logging_config import configure_logging
from app.utils.telegram import TelegramClient
from config import settings

_LOGGER = logging.getLogger(__name__)

app = FastAPI()


@app.on_event("startup")
async def startup_event():
    configure_logging()
    app.state.telegram = TelegramClient(
        settings.TELEGRAM_BOT_TOKEN,
        base_url=settings.TELEGRAM_API_BASE,
        timeout=settings.TELEGRAM_TIMEOUT,
    )
    app.state.transcriber = Transcriber(
        settings.OPENAI_API_KEY,
        model=settings.OPENAI_TRANSCRIBE_MODEL,
        timeout=settings.TRANSCRIBE_TIMEOUT,
    )
    if not settings.TELEGRAM_BOT_TOKEN:
        _LOGGER.warning("TELEGRAM_BOT_TOKEN not set: running in DEV mode, messages are logged only")
    # Tables are managed via Alembic migrations


@app.on_event("shutdown")
async def shutdown_event():
    await app.state.telegram.aclose()
    await db.dispose_engine()


# --------------------------------------------
# Dependencies
# --------------------------------------------

def get_telegram(request: Request):
    return request.app.state.telegram


def get_transcriber(request: Request):
    return request.app.state.transcriber


def require_cron_auth(request: Request) -> None:
    """Bearer token must equal CRON_SECRET; an unset secret rejects everything."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    secret = settings.CRON_SECRET
    if (
        not secret
        or scheme.lower() != "bearer"
        or not hmac.compare_digest(token.strip().encode(), secret.encode())
    ):
        raise HTTPException(401, "Unauthorized")


# --------------------------------------------
# Endpoints
# --------------------------------------------

@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/telegram/webhook")
async def telegram_webhook(
    request: Request,
    background: BackgroundTasks,
    telegram=Depends(get_telegram),
    transcriber=Depends(get_transcriber),
):
    raw_body = await request.body()
    try:
        update = TelegramUpdate.model_validate(json.loads(raw_body))
    except (ValueError, ValidationError):
        # json.JSONDecodeError is a ValueError subclass
        raise HTTPException(400, "Invalid update")

    background.add_task(ingress.process_update, update, telegram, transcriber)
    return {"ok": True}


@app.post("/cron/tick", dependencies=[Depends(require_cron_auth)])
async def cron_tick(telegram=Depends(get_telegram)):
    try:
        result = await run_cron_tick(telegram)
    except Exception:
        _LOGGER.exception("Cron tick failed")
        return JSONResponse({"ok": False, "error": "tick failed"}, status_code=500)
    return {"ok": True, "due": result.due, "sent": result.sent}


@app.post("/cron/daily", dependencies=[Depends(require_cron_auth)])
async def cron_daily(telegram=Depends(get_telegram)):
    try:
        delivered = await run_daily_digest(telegram)
    except Exception:
        _LOGGER.exception("Daily digest failed")
        return JSONResponse({"ok": False, "error": "digest failed"}, status_code=500)
    return {"ok": True, "delivered": delivered}


@app.get("/tasks")
async def list_tasks(chat_id: str | None = Query(None, alias="chatId")):
    if not chat_id:
        raise HTTPException(400, "chatId is required")
    tasks = await db.list_tasks(chat_id)
    return {"ok": True, "tasks": [task.to_dict() for task in tasks]}


@app.post("/tasks/{task_id}/{action}")
async def task_action(
    task_id: str,
    action: str,
    chat_id: str | None = Query(None, alias="chatId"),
):
    if not chat_id:
        raise HTTPException(400, "chatId is required")
    transition = ingress.TRANSITIONS.get(action)
    if transition is None:
        raise HTTPException(400, f"Unknown action: {action}")
    outcome = await transition(chat_id, task_id)
    if outcome is db.Transition.NOT_FOUND:
        raise HTTPException(404, "Task not found")
    _LOGGER.info(
        "Task action: task_id=%s chat_id=%s action=%s outcome=%s",
        task_id,
        chat_id,
        action,
        outcome.value,
    )
    return {"ok": outcome is db.Transition.APPLIED, "result": outcome.value}
