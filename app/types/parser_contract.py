"""Pydantic models that define the contract between the command parser and the
rest of the backend.

These classes are intentionally framework-agnostic so they can be reused by
the webhook ingress, the store and tests without pulling in FastAPI or
database layers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

FailureReason = Literal[
    "missing_date",
    "invalid_time",
    "empty_text",
    "time_in_past",
    "invalid_format",
]


class ParsedTask(BaseModel):
    """Everything the store needs to create a task.

    ``due_at`` is ``None`` for backlog items that go straight to the box.
    """

    text: str
    important: bool = False
    due_at: Optional[datetime] = None
    remind_every_minutes: Optional[int] = Field(default=None, gt=0)

    @field_validator("due_at")
    def _aware(cls, v: Optional[datetime]):  # noqa: N805
        if v is not None and v.tzinfo is None:
            raise ValueError("due_at must be timezone-aware")
        return v

    @field_validator("text")
    def _non_empty(cls, v: str):  # noqa: N805
        if not v.strip():
            raise ValueError("text must be non-empty")
        return v


class ParsedReminder(ParsedTask):
    """Successful parse of a reminder command: the due instant is mandatory."""

    ok: Literal[True] = True
    due_at: datetime
    date_label: str
    time_label: str


class ParseFailure(BaseModel):
    ok: Literal[False] = False
    reason: FailureReason


ParseResult = Union[ParsedReminder, ParseFailure]
