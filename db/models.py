"""
ORM models for the reminder backend.

The uniqueness constraints on ``processed_updates`` and ``sent_reminders``
are the idempotency contract: webhook deduplication and at-most-once
reminder delivery both rely on an INSERT failing with a unique violation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

TASK_STATUSES = ("active", "boxed", "completed", "canceled")


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as aware UTC.

    Naive datetimes are rejected on the way in; SQLite (which has no
    TIMESTAMPTZ) gets naive UTC and the value is re-tagged on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("datetime values must be timezone-aware")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class Task(Base):
    __tablename__ = "tasks"

    id:                   Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    chat_id:              Mapped[str] = mapped_column(String(64))
    text:                 Mapped[str] = mapped_column(Text)
    important:            Mapped[bool] = mapped_column(default=False)
    status:               Mapped[str] = mapped_column(String(16), default="active")
    due_at:               Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    remind_every_minutes: Mapped[Optional[int]]
    next_reminder_at:     Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    created_at:           Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
    updated_at:           Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow, onupdate=_utcnow)
    completed_at:         Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    canceled_at:          Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (
        CheckConstraint(
            "remind_every_minutes IS NULL OR remind_every_minutes > 0",
            name="ck_tasks_remind_every_positive",
        ),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in TASK_STATUSES) + ")",
            name="ck_tasks_status",
        ),
        Index("ix_tasks_chat_id_status", "chat_id", "status"),
        Index("ix_tasks_status_next_reminder_at", "status", "next_reminder_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chatId": self.chat_id,
            "text": self.text,
            "important": self.important,
            "status": self.status,
            "dueAt": _iso(self.due_at),
            "remindEveryMinutes": self.remind_every_minutes,
            "nextReminderAt": _iso(self.next_reminder_at),
            "createdAt": _iso(self.created_at),
            "completedAt": _iso(self.completed_at),
            "canceledAt": _iso(self.canceled_at),
        }


class ProcessedUpdate(Base):
    __tablename__ = "processed_updates"

    id:         Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    # "" when the update carried no chat, so the unique key still applies
    chat_id:    Mapped[str] = mapped_column(String(64), default="")
    update_id:  Mapped[int] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("chat_id", "update_id", name="uq_processed_updates_chat_update"),
        Index("ix_processed_updates_created_at", "created_at"),
    )


class SentReminder(Base):
    __tablename__ = "sent_reminders"

    id:                  Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    task_id:             Mapped[str] = mapped_column(
        String(36), ForeignKey("tasks.id", ondelete="CASCADE")
    )
    scheduled_at:        Mapped[datetime] = mapped_column(UTCDateTime)
    telegram_message_id: Mapped[Optional[str]] = mapped_column(String(32))
    created_at:          Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("task_id", "scheduled_at", name="uq_sent_reminders_task_scheduled"),
        Index("ix_sent_reminders_scheduled_at", "scheduled_at"),
    )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
