"""
Async DB helpers for the reminder backend.
Uses SQLAlchemy 2.0 + asyncpg driver – no raw SQL strings in app code.

Every helper opens its own short session so that claims, advances and
ledger inserts are committed independently; the database (not the process)
is the only place scheduling state lives.
"""

from __future__ import annotations

import math
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.types.parser_contract import ParsedTask
from app.utils.civil_time import today_range
from db.models import Base, ProcessedUpdate, SentReminder, Task

# ──────────────────────────────────────────────────────────────────────
# 1. Lazy engine / session factory
# ──────────────────────────────────────────────────────────────────────
_engine = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def _build_url() -> str:
    url = os.getenv("DATABASE_URL") or os.getenv("DATABASE_PUBLIC_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set")
    if url.startswith("sqlite"):
        return url
    if "+asyncpg" not in url:
        url = url.replace("postgres://", "postgresql+asyncpg://", 1).replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    return url


def get_engine():
    global _engine
    if _engine is None:
        url = _build_url()
        if url.startswith("sqlite"):
            _engine = create_async_engine(url, connect_args={"timeout": 30})
        else:
            _engine = create_async_engine(url, pool_size=5, max_overflow=5, pool_pre_ping=True)
    return _engine


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    async with _session_maker() as session:
        yield session


async def create_all():
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine():
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────────────
# 2. Processed-update ledger (webhook idempotency)
# ──────────────────────────────────────────────────────────────────────

async def mark_update_processed(chat_id: Optional[str], update_id: int) -> bool:
    """Record ``(chat_id, update_id)``; ``False`` means it was already handled."""
    async with get_session() as s:
        s.add(ProcessedUpdate(chat_id=chat_id or "", update_id=update_id))
        try:
            await s.commit()
        except IntegrityError:
            await s.rollback()
            return False
    return True


async def prune_processed_updates(older_than: datetime) -> int:
    async with get_session() as s:
        res = await s.execute(
            delete(ProcessedUpdate).where(ProcessedUpdate.created_at < older_than)
        )
        await s.commit()
        return res.rowcount or 0


# ──────────────────────────────────────────────────────────────────────
# 3. Task CRUD
# ──────────────────────────────────────────────────────────────────────

async def create_task(chat_id: str, spec: ParsedTask) -> Task:
    """Active with a reminder when a due instant was parsed, boxed otherwise."""
    task = Task(
        chat_id=chat_id,
        text=spec.text,
        important=spec.important,
        status="active" if spec.due_at else "boxed",
        due_at=spec.due_at,
        remind_every_minutes=spec.remind_every_minutes,
        next_reminder_at=spec.due_at,
    )
    async with get_session() as s:
        s.add(task)
        await s.commit()
    return task


async def get_task(chat_id: str, task_id: str) -> Task | None:
    async with get_session() as s:
        res = await s.execute(
            select(Task).where(Task.id == task_id, Task.chat_id == chat_id)
        )
        return res.scalar_one_or_none()


async def _list(stmt) -> list[Task]:
    async with get_session() as s:
        res = await s.execute(stmt)
        return list(res.scalars().all())


async def list_tasks(chat_id: str) -> list[Task]:
    return await _list(
        select(Task)
        .where(Task.chat_id == chat_id)
        .order_by(Task.status, Task.due_at, Task.created_at.desc())
    )


async def list_active_tasks(chat_id: str, limit: int = 30) -> list[Task]:
    return await _list(
        select(Task)
        .where(Task.chat_id == chat_id, Task.status == "active")
        .order_by(Task.due_at, Task.created_at.desc())
        .limit(limit)
    )


async def list_boxed_tasks(chat_id: str, limit: int = 30) -> list[Task]:
    return await _list(
        select(Task)
        .where(Task.chat_id == chat_id, Task.status == "boxed")
        .order_by(Task.created_at.desc())
        .limit(limit)
    )


async def list_recent_completed(chat_id: str, limit: int = 15) -> list[Task]:
    return await _list(
        select(Task)
        .where(Task.chat_id == chat_id, Task.status == "completed")
        .order_by(Task.completed_at.desc(), Task.created_at.desc())
        .limit(limit)
    )


async def count_boxed_tasks(chat_id: str) -> int:
    async with get_session() as s:
        res = await s.execute(
            select(func.count()).select_from(Task).where(
                Task.chat_id == chat_id, Task.status == "boxed"
            )
        )
        return int(res.scalar_one())


async def list_today_active(chat_id: str, now: datetime | None = None, limit: int = 10) -> list[Task]:
    start, end = today_range(now)
    return await _list(
        select(Task)
        .where(
            Task.chat_id == chat_id,
            Task.status == "active",
            Task.due_at >= start,
            Task.due_at < end,
        )
        .order_by(Task.due_at)
        .limit(limit)
    )


async def list_chats_with_tasks() -> list[str]:
    async with get_session() as s:
        res = await s.execute(select(Task.chat_id).distinct().order_by(Task.chat_id))
        return list(res.scalars().all())


# ──────────────────────────────────────────────────────────────────────
# 4. Reminder scheduling (claim → send → advance)
# ──────────────────────────────────────────────────────────────────────

async def list_due_reminder_batch(limit: int = 100, now: datetime | None = None) -> list[Task]:
    """Active tasks whose ``next_reminder_at <= now``, earliest first."""
    now = now or _utcnow()
    return await _list(
        select(Task)
        .where(
            Task.status == "active",
            Task.next_reminder_at.is_not(None),
            Task.next_reminder_at <= now,
        )
        .order_by(Task.next_reminder_at)
        .limit(limit)
    )


async def claim_reminder(
    task_id: str, scheduled_at: datetime, now: datetime | None = None
) -> bool:
    """Insert the ledger row for one occurrence.

    ``True`` means this caller owns the delivery. A unique violation means
    another tick already claimed it; a task that is no longer active (or has
    moved on to another occurrence) is not claimed either.
    """
    async with get_session() as s:
        s.add(
            SentReminder(task_id=task_id, scheduled_at=scheduled_at, created_at=now or _utcnow())
        )
        try:
            await s.flush()
        except IntegrityError:
            await s.rollback()
            return False
        res = await s.execute(
            select(Task.id).where(
                Task.id == task_id,
                Task.status == "active",
                Task.next_reminder_at == scheduled_at,
            )
        )
        if res.scalar_one_or_none() is None:
            await s.rollback()
            return False
        await s.commit()
    return True


async def attach_message_id(task_id: str, scheduled_at: datetime, message_id) -> None:
    async with get_session() as s:
        await s.execute(
            update(SentReminder)
            .where(SentReminder.task_id == task_id, SentReminder.scheduled_at == scheduled_at)
            .values(telegram_message_id=str(message_id))
        )
        await s.commit()


async def advance_next_reminder(
    task_id: str, scheduled_at: datetime, remind_every_minutes: int | None
) -> bool:
    """Move ``next_reminder_at`` past the delivered occurrence.

    Recurring tasks move forward by their interval, one-shot tasks are set to
    NULL. Compare-and-set on ``scheduled_at`` so an occurrence advances once.
    """
    if remind_every_minutes:
        next_value = scheduled_at + timedelta(minutes=remind_every_minutes)
    else:
        next_value = None
    async with get_session() as s:
        res = await s.execute(
            update(Task)
            .where(Task.id == task_id, Task.next_reminder_at == scheduled_at)
            .values(next_reminder_at=next_value)
        )
        await s.commit()
        return res.rowcount == 1


async def advance_stale_claim(
    task_id: str,
    scheduled_at: datetime,
    remind_every_minutes: int | None,
    stale_before: datetime,
) -> bool:
    """Unstick a task whose claim was recorded but never advanced.

    Happens when a process dies between claim and advance: the ledger row
    blocks every later claim for that instant, so the task would stay parked
    on it forever. The occurrence counts as delivered (or missed).
    """
    async with get_session() as s:
        res = await s.execute(
            select(SentReminder.created_at).where(
                SentReminder.task_id == task_id,
                SentReminder.scheduled_at == scheduled_at,
            )
        )
        claimed_at = res.scalar_one_or_none()
    if claimed_at is None or claimed_at >= stale_before:
        return False
    return await advance_next_reminder(task_id, scheduled_at, remind_every_minutes)


async def count_sent_reminders(task_id: str) -> int:
    async with get_session() as s:
        res = await s.execute(
            select(func.count()).select_from(SentReminder).where(SentReminder.task_id == task_id)
        )
        return int(res.scalar_one())


# ──────────────────────────────────────────────────────────────────────
# 5. Guarded status transitions
# ──────────────────────────────────────────────────────────────────────

class Transition(str, Enum):
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    ALREADY_ACTIVE = "already_active"
    ALREADY_BOXED = "already_boxed"
    ALREADY_COMPLETED = "already_completed"
    ALREADY_CANCELED = "already_canceled"
    NEEDS_DUE_DATE = "needs_due_date"


_ALREADY = {
    "active": Transition.ALREADY_ACTIVE,
    "boxed": Transition.ALREADY_BOXED,
    "completed": Transition.ALREADY_COMPLETED,
    "canceled": Transition.ALREADY_CANCELED,
}


async def _transition(
    chat_id: str, task_id: str, allowed_from: Sequence[str], values: dict
) -> Transition:
    async with get_session() as s:
        res = await s.execute(
            update(Task)
            .where(
                Task.id == task_id,
                Task.chat_id == chat_id,
                Task.status.in_(allowed_from),
            )
            .values(**values)
        )
        if res.rowcount == 1:
            await s.commit()
            return Transition.APPLIED
        await s.rollback()
    task = await get_task(chat_id, task_id)
    if task is None:
        return Transition.NOT_FOUND
    return _ALREADY[task.status]


async def mark_done(chat_id: str, task_id: str, now: datetime | None = None) -> Transition:
    return await _transition(
        chat_id,
        task_id,
        ("active", "boxed"),
        {"status": "completed", "completed_at": now or _utcnow(), "next_reminder_at": None},
    )


async def mark_canceled(chat_id: str, task_id: str, now: datetime | None = None) -> Transition:
    return await _transition(
        chat_id,
        task_id,
        ("active", "boxed"),
        {"status": "canceled", "canceled_at": now or _utcnow(), "next_reminder_at": None},
    )


async def mark_boxed(chat_id: str, task_id: str, now: datetime | None = None) -> Transition:
    return await _transition(
        chat_id, task_id, ("active",), {"status": "boxed", "next_reminder_at": None}
    )


def next_occurrence(
    due_at: datetime, remind_every_minutes: int | None, now: datetime
) -> datetime | None:
    """First occurrence of the task strictly after ``now`` (None if none left)."""
    if due_at > now:
        return due_at
    if not remind_every_minutes:
        return None
    step = timedelta(minutes=remind_every_minutes)
    periods = math.floor((now - due_at) / step) + 1
    return due_at + periods * step


async def mark_active(chat_id: str, task_id: str, now: datetime | None = None) -> Transition:
    now = now or _utcnow()
    task = await get_task(chat_id, task_id)
    if task is None:
        return Transition.NOT_FOUND
    if task.status != "boxed":
        return _ALREADY[task.status]
    if task.due_at is None:
        return Transition.NEEDS_DUE_DATE
    return await _transition(
        chat_id,
        task_id,
        ("boxed",),
        {
            "status": "active",
            "next_reminder_at": next_occurrence(task.due_at, task.remind_every_minutes, now),
        },
    )


# ──────────────────────────────────────────────────────────────────────
# 6. Retention
# ──────────────────────────────────────────────────────────────────────

async def cleanup_completed_overflow(cap_per_chat: int = 15) -> int:
    """Keep only the newest ``cap_per_chat`` completed (and canceled) tasks per chat."""
    deleted = 0
    for status, stamp in (("completed", Task.completed_at), ("canceled", Task.canceled_at)):
        async with get_session() as s:
            res = await s.execute(select(Task.chat_id).where(Task.status == status).distinct())
            chats = list(res.scalars().all())
        for chat_id in chats:
            async with get_session() as s:
                res = await s.execute(
                    select(Task.id)
                    .where(Task.chat_id == chat_id, Task.status == status)
                    .order_by(stamp.desc(), Task.created_at.desc())
                    .offset(cap_per_chat)
                )
                overflow = list(res.scalars().all())
                if not overflow:
                    continue
                await s.execute(delete(SentReminder).where(SentReminder.task_id.in_(overflow)))
                await s.execute(delete(Task).where(Task.id.in_(overflow)))
                await s.commit()
                deleted += len(overflow)
    return deleted
