"""Canned chat replies (Russian)."""

from __future__ import annotations

from app.types.parser_contract import FailureReason, ParsedReminder
from db.db import Transition

EXAMPLES = "\n".join(
    [
        "напомни завтра полить цветок",
        "напомни завтра в 09:30 позвонить маме",
        "напомни сегодня в 21:30 выключить плиту",
        "сделать отчёт в пятницу в 15:00, напоминай каждые 3 часа",
    ]
)

HELP = "\n".join(
    [
        "Привет! Я напоминалка. Пиши задачу с датой, и я напомню (время МСК).",
        "",
        "Примеры:",
        EXAMPLES,
        "",
        "Команды:",
        "/today — задачи на сегодня",
        "/all — все активные задачи",
        "/box — коробка (задачи без даты)",
        "/done — сделано",
    ]
)

MISSING_TEXT = "Пришли текстом: завтра в 09:30 позвонить маме"
MISSING_DATE = "Когда напомнить? Пример: «завтра в 09:30 позвонить маме»"
RECURRENCE_NEEDS_DATE = "Укажи дату и время для напоминаний, например: «завтра в 10:00, напоминай каждые 3 часа»."
GENERIC_ERROR = "Не удалось обработать сообщение. Попробуй ещё раз."
VOICE_UNAVAILABLE = "Голос временно недоступен. Пришли, пожалуйста, текстом."
VOICE_FAILED = "Не удалось распознать голосовое. Попробуй текстом."
TICK_FORBIDDEN = "Команда доступна только владельцу бота."

_FAILURES: dict[FailureReason, str] = {
    "missing_date": MISSING_DATE,
    "invalid_time": "Не понял время: часы 0–23, минуты 0–59. Пример: «завтра в 09:30 позвонить маме»",
    "empty_text": "О чём напомнить? Добавь текст после даты: «завтра в 09:30 позвонить маме»",
    "time_in_past": "Это время уже прошло. Укажи время в будущем (МСК).",
    "invalid_format": f"Не понял.\n{EXAMPLES}",
}

_TRANSITIONS: dict[tuple[str, Transition], str] = {
    ("done", Transition.APPLIED): "Готово, отмечено как выполнено.",
    ("cancel", Transition.APPLIED): "Задача отменена.",
    ("box", Transition.APPLIED): "Переместил в коробку.",
    ("activate", Transition.APPLIED): "Активировал задачу.",
}

_BLOCKED: dict[Transition, str] = {
    Transition.NOT_FOUND: "Задача не найдена.",
    Transition.ALREADY_ACTIVE: "Уже активна.",
    Transition.ALREADY_BOXED: "Уже в коробке.",
    Transition.ALREADY_COMPLETED: "Уже выполнено.",
    Transition.ALREADY_CANCELED: "Уже отменено.",
    Transition.NEEDS_DUE_DATE: "Нужны дата и время. Создай новую задачу с дедлайном.",
}


def failure_reply(reason: FailureReason) -> str:
    return _FAILURES[reason]


def confirmation_reply(parsed: ParsedReminder) -> str:
    text = f"Ок. Напомню {parsed.date_label} в {parsed.time_label} (МСК): {parsed.text}"
    if parsed.remind_every_minutes:
        text += f"\nПовторять каждые {parsed.remind_every_minutes} мин."
    return text


def boxed_reply(task_text: str) -> str:
    return f"Положил в коробку (без напоминания): {task_text}\nЧтобы напомнить, добавь дату: «завтра в 10:00 ...»"


def transition_reply(action: str, outcome: Transition) -> str:
    return _TRANSITIONS.get((action, outcome)) or _BLOCKED[outcome]
