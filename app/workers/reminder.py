"""Celery tasks that drive the same tick and digest as the cron endpoints."""

from __future__ import annotations

import asyncio
import logging

import db
from app.celery_app import celery_app
from app.services.scheduler import run_cron_tick, run_daily_digest
from app.utils.telegram import TelegramClient
from config import settings

_LOGGER = logging.getLogger(__name__)


def _client() -> TelegramClient:
    return TelegramClient(
        settings.TELEGRAM_BOT_TOKEN,
        base_url=settings.TELEGRAM_API_BASE,
        timeout=settings.TELEGRAM_TIMEOUT,
    )


async def _tick() -> dict:
    telegram = _client()
    try:
        result = await run_cron_tick(telegram)
    finally:
        await telegram.aclose()
        # each asyncio.run gets a fresh loop; pooled connections must not outlive it
        await db.dispose_engine()
    return {"due": result.due, "sent": result.sent, "failed": result.failed}


async def _digest() -> int:
    telegram = _client()
    try:
        return await run_daily_digest(telegram)
    finally:
        await telegram.aclose()
        await db.dispose_engine()


# ---------------------------------------------------------------------------
# Celery Tasks
# ---------------------------------------------------------------------------

@celery_app.task(name="app.workers.reminder.dispatch_due", bind=True, max_retries=3)
def dispatch_due(self):  # noqa: D401
    """Run one reminder tick."""
    try:
        return asyncio.run(_tick())
    except Exception as exc:  # noqa: BLE001
        _LOGGER.exception("Reminder tick failed")
        raise self.retry(exc=exc, countdown=30)


@celery_app.task(name="app.workers.reminder.send_daily_digest", bind=True, max_retries=3)
def send_daily_digest(self):  # noqa: D401
    """Send the morning digest to every chat with tasks."""
    try:
        return asyncio.run(_digest())
    except Exception as exc:  # noqa: BLE001
        _LOGGER.exception("Daily digest failed")
        raise self.retry(exc=exc, countdown=300)
