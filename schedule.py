"""
schedule.py

Calendar arithmetic for programs and their generated workout schedules.

All schedule values are calendar dates (YYYY-MM-DD). Nothing in here converts
a date to an instant, so there is no timezone to shift a workout onto the
wrong day.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Union

from errors import ValidationError

MIN_WEEKS, MAX_WEEKS = 1, 52
MIN_DAYS, MAX_DAYS = 1, 7
RECENT_ACTIVITY_HOURS = 48

DateLike = Union[date, str]


def to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    # an ISO timestamp keeps only its date part
    if "T" in text:
        text = text.split("T", 1)[0]
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid date {value!r}; expected YYYY-MM-DD.") from exc


def to_timestamp(value: Union[datetime, str]) -> datetime:
    ts = value if isinstance(value, datetime) else datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def validate_program_shape(duration_weeks: int, days_per_week: int) -> None:
    if not MIN_WEEKS <= int(duration_weeks) <= MAX_WEEKS:
        raise ValidationError(f"Duration must be {MIN_WEEKS}-{MAX_WEEKS} weeks.")
    if not MIN_DAYS <= int(days_per_week) <= MAX_DAYS:
        raise ValidationError(f"Days per week must be {MIN_DAYS}-{MAX_DAYS}.")


def default_slot_name(week_number: int, day_number: int) -> str:
    return f"Week {week_number} Day {day_number}"


def slot_grid(duration_weeks: int, days_per_week: int) -> list[tuple[int, int, str]]:
    """
    Full (week, day, name) grid for a program, week-major:
      (1, 1), (1, 2), ... (1, D), (2, 1), ... (W, D)
    """
    validate_program_shape(duration_weeks, days_per_week)
    return [
        (wk, day, default_slot_name(wk, day))
        for wk in range(1, int(duration_weeks) + 1)
        for day in range(1, int(days_per_week) + 1)
    ]


def scheduled_date(start_date: DateLike, week_number: int, day_number: int) -> date:
    """Week 1 day 1 lands on start_date; each day and week after it offsets linearly."""
    offset = (int(week_number) - 1) * 7 + (int(day_number) - 1)
    return to_date(start_date) + timedelta(days=offset)


def expand_schedule(start_date: DateLike, slots: Iterable[tuple[int, int, int]]) -> list[tuple[int, str]]:
    """
    slots: (slot_id, week_number, day_number)
    returns: (slot_id, scheduled_date ISO) in (week, day) order
    """
    ordered = sorted(slots, key=lambda s: (int(s[1]), int(s[2])))
    return [(slot_id, scheduled_date(start_date, wk, day).isoformat()) for slot_id, wk, day in ordered]


def current_week(start_date: DateLike, duration_weeks: int, today: DateLike) -> int:
    days = (to_date(today) - to_date(start_date)).days
    week = days // 7 + 1
    return min(max(1, int(duration_weeks)), max(1, week))


def partition_by_date(
    logs: Iterable[dict[str, Any]],
    today: DateLike,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """
    Split workout logs around today:
      upcoming: scheduled_date >= today, earliest first
      past:     scheduled_date <  today, most recent first
    """
    t = to_date(today)
    rows = sorted(logs, key=lambda r: to_date(r["scheduled_date"]))
    upcoming = [r for r in rows if to_date(r["scheduled_date"]) >= t]
    past = [r for r in rows if to_date(r["scheduled_date"]) < t]
    past.reverse()
    return upcoming, past


def first_upcoming(logs: Iterable[dict[str, Any]], today: DateLike) -> Optional[dict[str, Any]]:
    upcoming, _ = partition_by_date(logs, today)
    return upcoming[0] if upcoming else None


def week_start_sunday(today: DateLike) -> date:
    d = to_date(today)
    return d - timedelta(days=(d.weekday() + 1) % 7)


def is_recent(completed_at: Optional[Union[datetime, str]], now: datetime) -> bool:
    if not completed_at:
        return False
    return to_timestamp(now) - to_timestamp(completed_at) < timedelta(hours=RECENT_ACTIVITY_HOURS)
