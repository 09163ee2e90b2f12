"""
Template-based parser for Russian reminder commands.

Turns ``"напомни завтра в 09:30 позвонить маме"`` into a `ParsedReminder`
(cleaned text + absolute due instant + optional recurrence) or a
`ParseFailure` with one of a closed set of reasons.

This is deliberately NOT a general date grammar: a small ordered list of
anchored templates is tried and the first match decides the due instant.

Supported phrases
-----------------
* ``сегодня|завтра [в] HH:MM``
* ``сегодня`` / ``завтра`` without time (defaults below)
* ``DD.MM`` / ``DD.MM.YYYY`` optionally with ``[в] HH:MM``
* weekday names (``в пятницу``, ``во вторник`` ...) optionally with a time
* ``каждые N минут|часов|дней`` / ``каждый час`` recurrence
* ``!`` prefix or ``важно`` / ``срочно`` importance markers

Defaults: ``завтра``, dates and weekdays without a time use 10:00;
``сегодня`` without a time uses 10:00 before 10 o'clock, otherwise the next
whole hour, and 23:59 once that would roll past midnight.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from app.types.parser_contract import (
    FailureReason,
    ParsedReminder,
    ParsedTask,
    ParseFailure,
    ParseResult,
)
from app.utils.civil_time import (
    add_civil_days,
    civil_now,
    format_date,
    format_time,
    to_absolute,
    utc_now,
)

DEFAULT_HOUR = 10

# ──────────────────────────────────────────────────────────────────────────
# Patterns
# ──────────────────────────────────────────────────────────────────────────

_COMMAND_RE = re.compile(
    r"^[\s!]*(?:/remind(?:@\w+)?|напомни(?:ть)?|напоминай)\b[\s,:]*",
    re.IGNORECASE,
)

_EVERY_N_RE = re.compile(
    r"(?:\bнапоминай\s+)?\bкажд(?:ые|ый|ую)\s+(?P<n>\d+)\s*"
    r"(?P<unit>минут[уы]?|мин|час(?:а|ов)?|д(?:ень|ня|ней))\b",
    re.IGNORECASE,
)
_EVERY_ONE_RE = re.compile(
    r"(?:\bнапоминай\s+)?\bкажд(?:ую|ый)\s+(?P<unit>минуту|час|день)\b",
    re.IGNORECASE,
)

_IMPORTANT_RE = re.compile(r"\b(?:важное|срочное|важно|срочно)\b[!,:]*", re.IGNORECASE)

_TIME_RE = re.compile(r"(?:\bв\s+)?\b(?P<hour>\d{1,2}):(?P<minute>\d{2})\b", re.IGNORECASE)

_DAY_AT_RE = re.compile(
    r"\b(?P<day>сегодня|завтра)(?:\s+в)?\s+(?P<hour>\d{1,2}):(?P<minute>\d{2})\b",
    re.IGNORECASE,
)
_DAY_RE = re.compile(r"\b(?P<day>сегодня|завтра)\b", re.IGNORECASE)
# two-digit month and a standalone token, so "1.5 литра" or "2.50" stay in the text
_DATE_RE = re.compile(
    r"(?<![\w.,])(?P<day>0?[1-9]|[12]\d|3[01])\.(?P<month>0[1-9]|1[0-2])"
    r"(?:\.(?P<year>\d{4}))?(?![\w]|[.,]\d)"
)
_WEEKDAY_RE = re.compile(
    r"(?:\bво?\s+)?\b(?P<weekday>понедельник|вторник|сред[ау]|четверг|"
    r"пятниц[ау]|суббот[ау]|воскресенье)\b",
    re.IGNORECASE,
)

# Monday == 0, keyed by a prefix that is unique across case forms
_WEEKDAYS = {"пон": 0, "вто": 1, "сре": 2, "чет": 3, "пят": 4, "суб": 5, "вос": 6}

_EDGE_PUNCT_RE = re.compile(r"^[\s,;:.\-–—]+|[\s,;:.\-–—]+$")


# ──────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "")).strip()


def _cut(text: str, match: re.Match) -> str:
    return f"{text[:match.start()]} {text[match.end():]}"


def _clean_text(text: str) -> str:
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"\s+([,.;:!?])", r"\1", text)
    return _EDGE_PUNCT_RE.sub("", text).strip()


def _unit_minutes(unit: str) -> int:
    unit = unit.lower()
    if unit.startswith("мин"):
        return 1
    if unit.startswith("час"):
        return 60
    return 24 * 60


def _extract_recurrence(text: str) -> tuple[Optional[int], bool, str]:
    """Return ``(minutes, valid, text_without_phrase)``."""
    m = _EVERY_N_RE.search(text)
    if m:
        n = int(m.group("n"))
        return n * _unit_minutes(m.group("unit")), n > 0, _cut(text, m)
    m = _EVERY_ONE_RE.search(text)
    if m:
        return _unit_minutes(m.group("unit")), True, _cut(text, m)
    return None, True, text


def _extract_importance(text: str) -> tuple[bool, str]:
    important = False
    stripped = text.lstrip()
    if stripped.startswith("!"):
        important = True
        text = stripped.lstrip("! ")
    if _IMPORTANT_RE.search(text):
        important = True
        text = _IMPORTANT_RE.sub(" ", text)
    return important, text


def _default_today_time(now_hour: int) -> tuple[int, int]:
    if now_hour < DEFAULT_HOUR:
        return DEFAULT_HOUR, 0
    if now_hour + 1 > 23:
        return 23, 59
    return now_hour + 1, 0


@dataclass
class _Analysis:
    source: str
    text: str
    important: bool
    every_minutes: Optional[int]
    due_at: Optional[datetime] = None
    failure: Optional[FailureReason] = None


def _analyse(raw: str, now: datetime) -> _Analysis:
    source = _normalize(raw)
    important, body = _extract_importance(source)
    body = _COMMAND_RE.sub("", body, count=1)
    every, every_ok, body = _extract_recurrence(body)
    result = _Analysis(source=source, text="", important=important, every_minutes=every)

    today = civil_now(now)
    bare_today = False

    # 1. "сегодня|завтра [в] HH:MM"
    m = _DAY_AT_RE.search(body)
    if m:
        offset = 0 if m.group("day").lower() == "сегодня" else 1
        day = add_civil_days(today.date, offset)
        hour, minute = int(m.group("hour")), int(m.group("minute"))
        body = _cut(body, m)
    else:
        # a day word wins; dates and weekdays after it belong to the task text
        day_match = _DAY_RE.search(body)
        date_match = None if day_match else _DATE_RE.search(body)
        weekday_match = None if day_match or date_match else _WEEKDAY_RE.search(body)
        if day_match:
            # 2./3. bare "завтра" / "сегодня"
            body = _cut(body, day_match)
            bare_today = day_match.group("day").lower() == "сегодня"
            day = add_civil_days(today.date, 0 if bare_today else 1)
        elif date_match:
            # 4. "DD.MM[.YYYY]"
            body = _cut(body, date_match)
            d, mo = int(date_match.group("day")), int(date_match.group("month"))
            explicit_year = date_match.group("year")
            year = int(explicit_year) if explicit_year else today.year
            try:
                day = date(year, mo, d)
            except ValueError:
                result.failure = "invalid_format"
                result.text = _clean_text(body)
                return result
            if not explicit_year and day < today.date:
                try:
                    day = date(year + 1, mo, d)
                except ValueError:  # 29.02 without a leap year ahead
                    pass
        elif weekday_match:
            # 5. weekday name, next occurrence strictly after today
            body = _cut(body, weekday_match)
            target = _WEEKDAYS[weekday_match.group("weekday").lower()[:3]]
            delta = (target - today.weekday) % 7 or 7
            day = add_civil_days(today.date, delta)
        else:
            result.failure = "missing_date"
            result.text = _clean_text(body)
            return result

        time_match = _TIME_RE.search(body)
        if time_match:
            hour, minute = int(time_match.group("hour")), int(time_match.group("minute"))
            body = _cut(body, time_match)
        elif bare_today:
            hour, minute = _default_today_time(today.hour)
        else:
            hour, minute = DEFAULT_HOUR, 0

    result.text = _clean_text(body)

    if not every_ok:
        result.failure = "invalid_format"
        return result
    if hour > 23 or minute > 59:
        result.failure = "invalid_time"
        return result
    if not result.text:
        result.failure = "empty_text"
        return result

    due_at = to_absolute(day.year, day.month, day.day, hour, minute)
    if due_at <= now:
        result.failure = "time_in_past"
        return result
    result.due_at = due_at
    return result


# ──────────────────────────────────────────────────────────────────────────
# Public entry-points
# ──────────────────────────────────────────────────────────────────────────


def parse_command(text: str, now: Optional[datetime] = None) -> ParseResult:
    """Parse a reminder command into a `ParsedReminder` or a `ParseFailure`."""
    analysis = _analyse(text, now or utc_now())
    if analysis.failure is not None:
        return ParseFailure(reason=analysis.failure)
    return ParsedReminder(
        text=analysis.text,
        important=analysis.important,
        due_at=analysis.due_at,
        remind_every_minutes=analysis.every_minutes,
        date_label=format_date(analysis.due_at),
        time_label=format_time(analysis.due_at),
    )


def parse_task_spec(text: str, now: Optional[datetime] = None) -> ParsedTask:
    """Lenient variant used for backlog items.

    Never fails: an unparsable date just leaves ``due_at`` empty, and if the
    cleanup removed every word the original trimmed input is kept.
    """
    analysis = _analyse(text, now or utc_now())
    every = analysis.every_minutes if analysis.every_minutes and analysis.every_minutes > 0 else None
    return ParsedTask(
        text=analysis.text or analysis.source,
        important=analysis.important,
        due_at=analysis.due_at,
        remind_every_minutes=every,
    )


def is_reminder_request(text: str) -> bool:
    """True when the user explicitly asked for a reminder or a recurrence."""
    source = _normalize(text)
    return bool(
        _COMMAND_RE.match(source)
        or _EVERY_N_RE.search(source)
        or _EVERY_ONE_RE.search(source)
    )


def has_recurrence(text: str) -> bool:
    source = _normalize(text)
    return bool(_EVERY_N_RE.search(source) or _EVERY_ONE_RE.search(source))
