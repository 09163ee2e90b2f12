"""
Background processing of Telegram webhook updates.

The HTTP handler in ``main.py`` only validates the payload and acknowledges
it; everything here runs afterwards as a background task:

1. deduplicate by ``(chat_id, update_id)`` through the processed-update ledger;
2. button callbacks → guarded status transitions;
3. extract text (text, caption, pre-filled transcript or a transcribed voice);
4. commands and list shortcuts;
5. otherwise parse a reminder and store the task.

Every user-facing failure ends in a chat reply, never in an exception
escaping to the web server.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Optional

import db
from app.services import replies
from app.services.command_parser import (
    has_recurrence,
    is_reminder_request,
    parse_command,
    parse_task_spec,
)
from app.services.digest import format_task_list, list_keyboard, task_keyboard
from app.services.scheduler import run_cron_tick
from app.services.transcription import (
    Transcriber,
    TranscriptionError,
    TranscriptionUnavailable,
)
from app.types.parser_contract import ParsedReminder
from app.types.telegram import CallbackQuery, Message, TelegramUpdate
from app.utils.telegram import TelegramError
from config import settings

_LOGGER = logging.getLogger(__name__)

TRANSITIONS = {
    "done": db.mark_done,
    "cancel": db.mark_canceled,
    "box": db.mark_boxed,
    "activate": db.mark_active,
}

_LIST_COMMANDS = {"/today": "today", "/all": "all", "/box": "box", "/done": "done"}
_SHORTCUTS = {
    "что сегодня": "today",
    "сегодня": "today",
    "дела": "today",
    "все задачи": "all",
    "задачи": "all",
    "коробка": "box",
    "инбокс": "box",
    "сделано": "done",
}


def _normalize_intent(text: str) -> str:
    text = re.sub(r"[.,!?;:()\"'`]", " ", text.lower())
    return re.sub(r"\s+", " ", text).strip()


async def _safe_send(telegram, chat_id: str, text: str, reply_markup: Optional[dict] = None) -> None:
    try:
        await telegram.send_message(chat_id, text, reply_markup=reply_markup)
    except Exception as exc:  # noqa: BLE001
        _LOGGER.error("Reply failed: chat_id=%s error=%s", chat_id, exc)


# ──────────────────────────────────────────────────────────────────────────
# Entry-point
# ──────────────────────────────────────────────────────────────────────────

async def process_update(
    update: TelegramUpdate,
    telegram,
    transcriber: Optional[Transcriber] = None,
    now: Optional[datetime] = None,
) -> None:
    chat_id = update.chat_id
    try:
        if not await db.mark_update_processed(chat_id, update.update_id):
            _LOGGER.info(
                "Duplicate update skipped: update_id=%s chat_id=%s", update.update_id, chat_id
            )
            return
        if chat_id is None:
            return

        if update.callback_query is not None:
            await _handle_callback(update.callback_query, chat_id, telegram, now)
            return

        message = update.effective_message
        if message is None:
            return
        text = await _extract_text(message, chat_id, telegram, transcriber)
        if text is None:
            return
        await handle_text(chat_id, text, telegram, now=now)
    except Exception:
        _LOGGER.exception(
            "Update processing failed: update_id=%s chat_id=%s", update.update_id, chat_id
        )
        if chat_id is not None:
            await _safe_send(telegram, chat_id, replies.GENERIC_ERROR)


async def _extract_text(
    message: Message,
    chat_id: str,
    telegram,
    transcriber: Optional[Transcriber],
) -> Optional[str]:
    """Return the user's text or ``None`` after replying why there is none."""
    for candidate in (message.text, message.caption):
        if candidate and candidate.strip():
            return candidate.strip()

    voice = message.voice or message.audio
    if voice is None:
        await telegram.send_message(chat_id, replies.MISSING_TEXT)
        return None
    if voice.transcript and voice.transcript.strip():
        return voice.transcript.strip()

    if transcriber is None or not transcriber.available:
        await telegram.send_message(chat_id, replies.VOICE_UNAVAILABLE)
        return None
    try:
        audio = await telegram.download_file(voice.file_id)
        return await transcriber.transcribe(audio)
    except (TelegramError, TranscriptionError, TranscriptionUnavailable) as exc:
        _LOGGER.warning("Voice processing failed: chat_id=%s error=%s", chat_id, exc)
        await telegram.send_message(chat_id, replies.VOICE_FAILED)
        return None


# ──────────────────────────────────────────────────────────────────────────
# Text routing
# ──────────────────────────────────────────────────────────────────────────

async def handle_text(chat_id: str, text: str, telegram, now: Optional[datetime] = None) -> None:
    if text.startswith("/"):
        command = text.split()[0].split("@")[0].lower()
        if command in ("/start", "/help"):
            await telegram.send_message(chat_id, replies.HELP)
            return
        if command in _LIST_COMMANDS:
            await send_list(_LIST_COMMANDS[command], chat_id, telegram, now=now)
            return
        if command == "/tick":
            await _manual_tick(chat_id, telegram, now)
            return

    shortcut = _SHORTCUTS.get(_normalize_intent(text))
    if shortcut:
        await send_list(shortcut, chat_id, telegram, now=now)
        return

    await create_from_text(chat_id, text, telegram, now=now)


async def create_from_text(chat_id: str, text: str, telegram, now: Optional[datetime] = None) -> None:
    parsed = parse_command(text, now)
    if isinstance(parsed, ParsedReminder):
        task = await db.create_task(chat_id, parsed)
        _LOGGER.info(
            "Task scheduled: task_id=%s chat_id=%s due_at=%s every=%s",
            task.id,
            chat_id,
            parsed.due_at.isoformat(),
            parsed.remind_every_minutes,
        )
        await telegram.send_message(
            chat_id, replies.confirmation_reply(parsed), reply_markup=task_keyboard(task)
        )
        return

    _LOGGER.info("Parse failed: chat_id=%s reason=%s", chat_id, parsed.reason)
    if parsed.reason == "missing_date":
        if has_recurrence(text):
            await telegram.send_message(chat_id, replies.RECURRENCE_NEEDS_DATE)
            return
        if not is_reminder_request(text):
            task = await db.create_task(chat_id, parse_task_spec(text, now))
            await telegram.send_message(
                chat_id, replies.boxed_reply(task.text), reply_markup=task_keyboard(task)
            )
            return
    await telegram.send_message(chat_id, replies.failure_reply(parsed.reason))


async def send_list(kind: str, chat_id: str, telegram, now: Optional[datetime] = None) -> None:
    if kind == "today":
        tasks = await db.list_today_active(chat_id, now=now)
        text = format_task_list("Что сегодня", tasks, "На сегодня задач нет.")
    elif kind == "all":
        tasks = await db.list_active_tasks(chat_id)
        text = format_task_list("Все задачи", tasks, "Активных задач нет.")
        boxed_count = await db.count_boxed_tasks(chat_id)
        if boxed_count:
            text += f"\n\nВ коробке: {boxed_count}"
    elif kind == "box":
        tasks = await db.list_boxed_tasks(chat_id)
        text = format_task_list("Коробка", tasks, "Коробка пуста.")
    else:
        tasks = await db.list_recent_completed(chat_id)
        text = format_task_list("Сделано", tasks, "Выполненных задач пока нет.")
        await telegram.send_message(chat_id, text)
        return
    await telegram.send_message(chat_id, text, reply_markup=list_keyboard(tasks))


async def _manual_tick(chat_id: str, telegram, now: Optional[datetime]) -> None:
    if not settings.OWNER_CHAT_ID or chat_id != settings.OWNER_CHAT_ID:
        await telegram.send_message(chat_id, replies.TICK_FORBIDDEN)
        return
    result = await run_cron_tick(telegram, now=now)
    await telegram.send_message(
        chat_id, f"Tick: due={result.due} sent={result.sent} failed={result.failed}"
    )


# ──────────────────────────────────────────────────────────────────────────
# Inline buttons
# ──────────────────────────────────────────────────────────────────────────

async def _handle_callback(
    query: CallbackQuery, chat_id: str, telegram, now: Optional[datetime]
) -> None:
    action, _, task_id = (query.data or "").partition(":")
    transition = TRANSITIONS.get(action)
    if transition is None or not task_id:
        await telegram.answer_callback_query(query.id)
        return
    outcome = await transition(chat_id, task_id, now=now)
    _LOGGER.info(
        "Task action: task_id=%s chat_id=%s action=%s outcome=%s",
        task_id,
        chat_id,
        action,
        outcome.value,
    )
    reply = replies.transition_reply(action, outcome)
    await telegram.answer_callback_query(query.id, reply)
    await telegram.send_message(chat_id, reply)
