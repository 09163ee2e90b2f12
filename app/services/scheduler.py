"""
Cron-driven reminder delivery and the daily digest.

Nothing here keeps timers: an external caller (``POST /cron/tick``, the
celery beat task or ``app.scripts.scan_due_reminders``) drives every tick,
and ``tasks.next_reminder_at`` is the only scheduling state.

Delivery is at-most-once per (task, scheduled instant):

1. read the due batch, earliest first;
2. insert the ``sent_reminders`` ledger row; a unique violation means some
   other tick owns this occurrence, so skip it;
3. send through Telegram;
4. advance ``next_reminder_at`` (compare-and-set).

The daily digest also trims old completed tasks and processed-update
markers.

If the send fails the claim is kept and the occurrence is advanced anyway:
a missed reminder is preferred over a duplicate. The failure is logged at
ERROR level with the chat and task ids.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import db
from app.services.digest import (
    digest_keyboard,
    format_reminder_text,
    format_today_digest,
    reminder_keyboard,
)
from app.utils.telegram import TelegramError
from config import settings

_LOGGER = logging.getLogger(__name__)


@dataclass
class TickResult:
    due: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0


async def run_cron_tick(
    telegram,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
) -> TickResult:
    now = now or datetime.now(timezone.utc)
    batch_size = batch_size or settings.REMINDER_BATCH_SIZE
    stale_before = now - timedelta(minutes=settings.STALE_CLAIM_MINUTES)

    tasks = await db.list_due_reminder_batch(limit=batch_size, now=now)
    result = TickResult(due=len(tasks))

    for task in tasks:
        scheduled_at = task.next_reminder_at
        if not await db.claim_reminder(task.id, scheduled_at, now=now):
            result.skipped += 1
            if await db.advance_stale_claim(
                task.id, scheduled_at, task.remind_every_minutes, stale_before
            ):
                _LOGGER.warning(
                    "Stale claim advanced: task_id=%s scheduled_at=%s",
                    task.id,
                    scheduled_at.isoformat(),
                )
            continue

        try:
            message_id = await telegram.send_message(
                task.chat_id,
                format_reminder_text(task),
                reply_markup=reminder_keyboard(task.id),
            )
        except TelegramError as exc:
            result.failed += 1
            _LOGGER.error(
                "Reminder send failed, occurrence dropped: task_id=%s chat_id=%s scheduled_at=%s error=%s",
                task.id,
                task.chat_id,
                scheduled_at.isoformat(),
                exc,
            )
        else:
            result.sent += 1
            if message_id is not None:
                await db.attach_message_id(task.id, scheduled_at, message_id)
            _LOGGER.info(
                "Reminder sent: task_id=%s chat_id=%s scheduled_at=%s",
                task.id,
                task.chat_id,
                scheduled_at.isoformat(),
            )

        await db.advance_next_reminder(task.id, scheduled_at, task.remind_every_minutes)

    _LOGGER.info(
        "Cron tick done: due=%s sent=%s failed=%s skipped=%s",
        result.due,
        result.sent,
        result.failed,
        result.skipped,
    )
    return result


async def send_chat_digest(telegram, chat_id: str, now: Optional[datetime] = None) -> None:
    active = await db.list_today_active(chat_id, now=now)
    boxed_count = await db.count_boxed_tasks(chat_id)
    await telegram.send_message(
        chat_id,
        format_today_digest(active, boxed_count),
        reply_markup=digest_keyboard(active),
    )


async def run_daily_digest(telegram, now: Optional[datetime] = None) -> int:
    """Send the digest to every chat with at least one task; returns delivered count."""
    now = now or datetime.now(timezone.utc)
    removed = await db.cleanup_completed_overflow(settings.COMPLETED_RETENTION)
    pruned = await db.prune_processed_updates(
        now - timedelta(days=settings.PROCESSED_UPDATE_TTL_DAYS)
    )
    delivered = 0
    for chat_id in await db.list_chats_with_tasks():
        try:
            await send_chat_digest(telegram, chat_id, now=now)
        except TelegramError as exc:
            _LOGGER.error("Daily digest failed: chat_id=%s error=%s", chat_id, exc)
            continue
        delivered += 1
    _LOGGER.info(
        "Daily digest done: delivered=%s removed_tasks=%s pruned_updates=%s",
        delivered,
        removed,
        pruned,
    )
    return delivered
