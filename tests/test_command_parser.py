from datetime import timedelta

import pytest

from app.services.command_parser import (
    has_recurrence,
    is_reminder_request,
    parse_command,
    parse_task_spec,
)
from app.utils.civil_time import to_absolute

# Monday 2026-02-23, 12:00 in Moscow
NOON = to_absolute(2026, 2, 23, 12, 0)


def test_tomorrow_with_time():
    result = parse_command("напомни завтра в 09:30 позвонить маме", NOON)
    assert result.ok
    assert result.due_at == to_absolute(2026, 2, 24, 9, 30)
    assert result.text == "позвонить маме"
    assert result.date_label == "24.02"
    assert result.time_label == "09:30"
    assert result.remind_every_minutes is None


def test_today_time_already_passed():
    late = to_absolute(2026, 2, 23, 22, 0)
    result = parse_command("напомни сегодня в 21:30 выключить плиту", late)
    assert not result.ok
    assert result.reason == "time_in_past"


def test_today_later():
    result = parse_command("напомни сегодня в 21:30 выключить плиту", NOON)
    assert result.ok
    assert result.due_at == to_absolute(2026, 2, 23, 21, 30)
    assert result.text == "выключить плиту"


def test_tomorrow_without_time_defaults_to_ten():
    result = parse_command("завтра полить цветок", NOON)
    assert result.ok
    assert result.due_at == to_absolute(2026, 2, 24, 10, 0)
    assert result.text == "полить цветок"


@pytest.mark.parametrize(
    "hour, expected",
    [
        (8, (10, 0)),
        (12, (13, 0)),
        (23, (23, 59)),
    ],
)
def test_today_without_time_defaults(hour, expected):
    now = to_absolute(2026, 2, 23, hour, 20)
    result = parse_command("сегодня купить хлеб", now)
    assert result.ok
    assert result.due_at == to_absolute(2026, 2, 23, *expected)


def test_time_without_day_is_missing_date():
    result = parse_command("в 09:30 позвонить маме", NOON)
    assert not result.ok
    assert result.reason == "missing_date"


def test_no_date_at_all():
    assert parse_command("купить молоко", NOON).reason == "missing_date"


@pytest.mark.parametrize("text", ["завтра в 25:00 встать", "завтра в 10:61 встать"])
def test_invalid_time(text):
    assert parse_command(text, NOON).reason == "invalid_time"


def test_empty_text_after_date():
    assert parse_command("напомни завтра в 10:00", NOON).reason == "empty_text"


def test_explicit_date():
    result = parse_command("05.03 в 18:00 оплатить интернет", NOON)
    assert result.ok
    assert result.due_at == to_absolute(2026, 3, 5, 18, 0)
    assert result.text == "оплатить интернет"


def test_explicit_date_with_year():
    result = parse_command("01.01.2027 поздравить всех", NOON)
    assert result.due_at == to_absolute(2027, 1, 1, 10, 0)


def test_date_without_year_in_the_past_rolls_over():
    result = parse_command("10.01 продлить страховку", NOON)
    assert result.ok
    assert result.due_at == to_absolute(2027, 1, 10, 10, 0)


def test_impossible_date():
    assert parse_command("31.02 что-то сделать", NOON).reason == "invalid_format"


def test_weekday_is_next_occurrence():
    result = parse_command("сделать отчёт в пятницу в 15:00", NOON)
    assert result.ok
    assert result.due_at == to_absolute(2026, 2, 27, 15, 0)
    assert result.text == "сделать отчёт"


def test_same_weekday_means_next_week():
    result = parse_command("в понедельник планёрка", NOON)
    assert result.due_at == to_absolute(2026, 3, 2, 10, 0)


def test_recurrence_hours():
    result = parse_command(
        "сделать отчёт в пятницу в 15:00, напоминай каждые 3 часа", NOON
    )
    assert result.ok
    assert result.remind_every_minutes == 180
    assert result.text == "сделать отчёт"


@pytest.mark.parametrize(
    "phrase, minutes",
    [
        ("каждые 15 минут", 15),
        ("каждый час", 60),
        ("каждые 2 дня", 2 * 24 * 60),
        ("каждый день", 24 * 60),
    ],
)
def test_recurrence_units(phrase, minutes):
    result = parse_command(f"завтра в 08:00 пить воду {phrase}", NOON)
    assert result.remind_every_minutes == minutes
    assert result.text == "пить воду"


def test_zero_interval_rejected():
    assert parse_command("завтра в 08:00 пить воду каждые 0 минут", NOON).reason == "invalid_format"


def test_importance_markers():
    result = parse_command("! завтра в 09:00 сдать налоги", NOON)
    assert result.important
    assert result.text == "сдать налоги"

    result = parse_command("завтра срочно позвонить врачу", NOON)
    assert result.important
    assert result.text == "позвонить врачу"


def test_remind_command_prefix():
    result = parse_command("/remind завтра в 07:15 зарядка", NOON)
    assert result.ok
    assert result.text == "зарядка"


def test_due_is_strictly_in_future():
    result = parse_command("сегодня в 12:00 обед", NOON)
    assert result.reason == "time_in_past"
    result = parse_command("сегодня в 12:01 обед", NOON)
    assert result.due_at - NOON == timedelta(minutes=1)


def test_task_spec_without_date_keeps_text():
    spec = parse_task_spec("купить молоко", NOON)
    assert spec.due_at is None
    assert spec.text == "купить молоко"


def test_task_spec_falls_back_to_source_text():
    spec = parse_task_spec("завтра", NOON)
    assert spec.text == "завтра"


def test_reminder_request_detection():
    assert is_reminder_request("напомни купить молоко")
    assert is_reminder_request("пить воду каждые 2 часа")
    assert not is_reminder_request("купить молоко")
    assert has_recurrence("напоминай каждый день")
    assert not has_recurrence("напомни завтра")


def test_decimal_in_text_does_not_override_tomorrow():
    result = parse_command("завтра купить 1.5 литра молока", NOON)
    assert result.ok
    assert result.due_at == to_absolute(2026, 2, 24, 10, 0)
    assert result.text == "купить 1.5 литра молока"


def test_weekday_in_text_does_not_override_tomorrow():
    result = parse_command("завтра обсудить планы на понедельник", NOON)
    assert result.ok
    assert result.due_at == to_absolute(2026, 2, 24, 10, 0)
    assert result.text == "обсудить планы на понедельник"


@pytest.mark.parametrize("text", ["купить 1.5 литра молока", "отдать 2.50 за кофе"])
def test_decimal_numbers_are_not_dates(text):
    assert parse_command(text, NOON).reason == "missing_date"


def test_importance_before_command_word():
    result = parse_command("!напомни завтра в 09:00 сдать налоги", NOON)
    assert result.ok
    assert result.important
    assert result.text == "сдать налоги"
    assert is_reminder_request("!напомни купить молоко")
