"""Pure formatting of task lines, reminder messages and the daily digest."""

from __future__ import annotations

from typing import Iterable, Sequence

from app.utils.civil_time import format_date_time, format_time
from db.models import Task

DIGEST_TITLE = "Сводка на сегодня"
NOTHING_TODAY = "Сегодня активных задач нет."


def render_task_line(task: Task) -> str:
    content = f"{'!' if task.important else ''}{task.text}"
    if task.due_at:
        return f"• {format_time(task.due_at)} — {content}"
    return f"• {content}"


def format_reminder_text(task: Task) -> str:
    due_label = format_date_time(task.due_at) if task.due_at else "без времени"
    every = (
        f"каждые {task.remind_every_minutes} мин"
        if task.remind_every_minutes
        else "без повтора"
    )
    return f"🔔 Напоминание\n{render_task_line(task)}\n{due_label} (МСК) • {every}"


def format_today_digest(active: Sequence[Task], boxed_count: int) -> str:
    lines = [render_task_line(task) for task in active] or [NOTHING_TODAY]
    text = f"{DIGEST_TITLE}\n\n" + "\n".join(lines)
    if boxed_count > 0:
        text += f"\n\nВ коробке: {boxed_count}"
    return text


def format_task_list(title: str, tasks: Iterable[Task], empty: str) -> str:
    lines = [render_task_line(task) for task in tasks]
    return f"{title}\n\n" + ("\n".join(lines) if lines else empty)


# ──────────────────────────────────────────────────────────────────────────
# Inline keyboards (callback data is "<action>:<task id>")
# ──────────────────────────────────────────────────────────────────────────

def reminder_keyboard(task_id: str) -> dict:
    return {
        "inline_keyboard": [[
            {"text": "✅ Выполнено", "callback_data": f"done:{task_id}"},
            {"text": "❌ Отменить", "callback_data": f"cancel:{task_id}"},
            {"text": "📥 В коробку", "callback_data": f"box:{task_id}"},
        ]]
    }


def task_keyboard(task: Task) -> dict:
    if task.status == "boxed":
        return {
            "inline_keyboard": [[
                {"text": "✅ Выполнено", "callback_data": f"done:{task.id}"},
                {"text": "▶️ Активировать", "callback_data": f"activate:{task.id}"},
                {"text": "❌ Отменить", "callback_data": f"cancel:{task.id}"},
            ]]
        }
    return reminder_keyboard(task.id)


def digest_keyboard(active: Sequence[Task]) -> dict | None:
    if not active:
        return None
    return {
        "inline_keyboard": [
            [
                {"text": f"✅ {task.text[:24]}", "callback_data": f"done:{task.id}"},
                {"text": "❌", "callback_data": f"cancel:{task.id}"},
            ]
            for task in active[:10]
        ]
    }


def list_keyboard(tasks: Sequence[Task]) -> dict | None:
    if not tasks:
        return None
    rows = []
    for task in tasks[:10]:
        row = [{"text": f"✅ {task.text[:24]}", "callback_data": f"done:{task.id}"}]
        if task.status == "boxed":
            row.append({"text": "▶️", "callback_data": f"activate:{task.id}"})
        else:
            row.append({"text": "📥", "callback_data": f"box:{task.id}"})
        row.append({"text": "❌", "callback_data": f"cancel:{task.id}"})
        rows.append(row)
    return {"inline_keyboard": rows}
