import pytest

import db
from app.services import replies
from app.services.ingress import process_update
from app.services.transcription import TranscriptionError
from app.types.telegram import TelegramUpdate
from app.utils.civil_time import to_absolute
from config import settings

from conftest import FakeTranscriber

NOON = to_absolute(2026, 2, 23, 12, 0)


def _message(update_id, text=None, chat_id=42, **extra):
    message = {"message_id": update_id, "chat": {"id": chat_id}, **extra}
    if text is not None:
        message["text"] = text
    return TelegramUpdate.model_validate({"update_id": update_id, "message": message})


def _callback(update_id, data, chat_id=42):
    return TelegramUpdate.model_validate(
        {
            "update_id": update_id,
            "callback_query": {
                "id": f"cb{update_id}",
                "data": data,
                "message": {"message_id": 1, "chat": {"id": chat_id}},
            },
        }
    )


@pytest.mark.asyncio
async def test_reminder_is_created_and_confirmed(database, telegram):
    await process_update(_message(1, "напомни завтра в 09:30 позвонить маме"), telegram, now=NOON)

    assert telegram.texts() == ["Ок. Напомню 24.02 в 09:30 (МСК): позвонить маме"]
    tasks = await db.list_active_tasks("42")
    assert len(tasks) == 1
    assert tasks[0].due_at == to_absolute(2026, 2, 24, 9, 30)
    assert tasks[0].next_reminder_at == tasks[0].due_at


@pytest.mark.asyncio
async def test_duplicate_update_is_ignored(database, telegram):
    update = _message(7, "напомни завтра в 09:30 позвонить маме")
    await process_update(update, telegram, now=NOON)
    await process_update(update, telegram, now=NOON)

    assert len(telegram.sent) == 1
    assert len(await db.list_tasks("42")) == 1


@pytest.mark.asyncio
async def test_recurrence_in_confirmation(database, telegram):
    await process_update(
        _message(2, "сделать отчёт в пятницу в 15:00, напоминай каждые 3 часа"), telegram, now=NOON
    )
    assert telegram.texts()[0].endswith("Повторять каждые 180 мин.")


@pytest.mark.asyncio
async def test_plain_text_goes_to_box(database, telegram):
    await process_update(_message(3, "купить молоко"), telegram, now=NOON)

    boxed = await db.list_boxed_tasks("42")
    assert [t.text for t in boxed] == ["купить молоко"]
    assert telegram.texts()[0].startswith("Положил в коробку")


@pytest.mark.asyncio
async def test_explicit_request_without_date_asks_when(database, telegram):
    await process_update(_message(4, "напомни купить молоко"), telegram, now=NOON)
    assert telegram.texts() == [replies.MISSING_DATE]
    assert await db.list_tasks("42") == []


@pytest.mark.asyncio
async def test_recurrence_without_date_asks_for_date(database, telegram):
    await process_update(_message(5, "пить воду каждые 2 часа"), telegram, now=NOON)
    assert telegram.texts() == [replies.RECURRENCE_NEEDS_DATE]
    assert await db.list_tasks("42") == []


@pytest.mark.asyncio
async def test_time_in_past_is_explained(database, telegram):
    late = to_absolute(2026, 2, 23, 22, 0)
    await process_update(_message(6, "напомни сегодня в 21:30 выключить плиту"), telegram, now=late)
    assert telegram.texts() == [replies.failure_reply("time_in_past")]
    assert await db.list_tasks("42") == []


@pytest.mark.asyncio
async def test_message_without_text(database, telegram):
    await process_update(_message(8, sticker={"file_id": "s"}), telegram, now=NOON)
    assert telegram.texts() == [replies.MISSING_TEXT]


@pytest.mark.asyncio
async def test_caption_is_used_as_text(database, telegram):
    await process_update(_message(9, caption="завтра в 10:00 забрать фото"), telegram, now=NOON)
    assert "забрать фото" in telegram.texts()[0]


@pytest.mark.asyncio
async def test_voice_is_transcribed(database, telegram):
    telegram.files["v1"] = b"OggS..."
    transcriber = FakeTranscriber("напомни завтра в 08:00 выпить таблетку")
    await process_update(_message(10, voice={"file_id": "v1", "duration": 3}), telegram, transcriber, now=NOON)

    assert transcriber.calls == 1
    assert "выпить таблетку" in telegram.texts()[0]


@pytest.mark.asyncio
async def test_voice_without_transcription_key(database, telegram):
    transcriber = FakeTranscriber(available=False)
    await process_update(_message(11, voice={"file_id": "v1"}), telegram, transcriber, now=NOON)
    assert telegram.texts() == [replies.VOICE_UNAVAILABLE]
    assert transcriber.calls == 0


@pytest.mark.asyncio
async def test_voice_transcription_failure(database, telegram):
    telegram.files["v1"] = b"OggS..."
    transcriber = FakeTranscriber(error=TranscriptionError("empty transcript"))
    await process_update(_message(12, voice={"file_id": "v1"}), telegram, transcriber, now=NOON)
    assert telegram.texts() == [replies.VOICE_FAILED]


@pytest.mark.asyncio
async def test_prefilled_transcript_skips_transcriber(database, telegram):
    voice = {"file_id": "v1", "transcript": "завтра в 09:00 позвонить врачу"}
    await process_update(_message(13, voice=voice), telegram, None, now=NOON)
    assert "позвонить врачу" in telegram.texts()[0]


@pytest.mark.asyncio
async def test_done_button(database, telegram):
    await process_update(_message(20, "завтра в 09:00 позвонить врачу"), telegram, now=NOON)
    task = (await db.list_active_tasks("42"))[0]

    await process_update(_callback(21, f"done:{task.id}"), telegram, now=NOON)
    await process_update(_callback(22, f"done:{task.id}"), telegram, now=NOON)

    assert (await db.get_task("42", task.id)).status == "completed"
    assert [text for _, text in telegram.answered] == [
        "Готово, отмечено как выполнено.",
        "Уже выполнено.",
    ]


@pytest.mark.asyncio
async def test_button_from_other_chat_cannot_touch_task(database, telegram):
    await process_update(_message(23, "завтра в 09:00 позвонить врачу"), telegram, now=NOON)
    task = (await db.list_active_tasks("42"))[0]

    await process_update(_callback(24, f"cancel:{task.id}", chat_id=99), telegram, now=NOON)

    assert (await db.get_task("42", task.id)).status == "active"
    assert telegram.answered[-1][1] == "Задача не найдена."


@pytest.mark.asyncio
async def test_today_command_lists_tasks(database, telegram):
    await process_update(_message(30, "сегодня в 18:00 тренировка"), telegram, now=NOON)
    await process_update(_message(31, "/today"), telegram, now=NOON)

    listing = telegram.sent[-1]
    assert listing["text"] == "Что сегодня\n\n• 18:00 — тренировка"
    assert listing["reply_markup"] is not None


@pytest.mark.asyncio
async def test_shortcut_phrase(database, telegram):
    await process_update(_message(32, "Коробка"), telegram, now=NOON)
    assert telegram.texts() == ["Коробка\n\nКоробка пуста."]


@pytest.mark.asyncio
async def test_help(database, telegram):
    await process_update(_message(33, "/start"), telegram, now=NOON)
    assert telegram.texts() == [replies.HELP]


@pytest.mark.asyncio
async def test_tick_command_is_owner_only(database, telegram, monkeypatch):
    monkeypatch.setattr(settings, "OWNER_CHAT_ID", "1")
    await process_update(_message(40, "/tick"), telegram, now=NOON)
    assert telegram.texts() == [replies.TICK_FORBIDDEN]


@pytest.mark.asyncio
async def test_tick_command_for_owner(database, telegram, monkeypatch):
    monkeypatch.setattr(settings, "OWNER_CHAT_ID", "42")
    await process_update(_message(41, "/tick"), telegram, now=NOON)
    assert telegram.texts() == ["Tick: due=0 sent=0 failed=0"]


@pytest.mark.asyncio
async def test_storage_failure_gets_generic_reply(database, telegram, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(db, "create_task", broken)
    await process_update(_message(50, "завтра в 09:00 позвонить врачу"), telegram, now=NOON)
    assert telegram.texts() == [replies.GENERIC_ERROR]
