"""Candidate school-day extraction from annual schedule rows."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from .calendar_utils import DEFAULT_WEEKDAYS_ENABLED, SCHOOL_WEEKDAYS
from .constants import GRADES, is_valid_grade


@dataclass(frozen=True)
class ScheduleRow:
    """One row of the annual schedule: a date, a grade and its attendance cells."""

    date: date | None
    grade: Any
    markers: tuple[Any, ...] = ()


@dataclass(frozen=True, order=True)
class SchoolDay:
    date: date
    grade: int


def is_non_empty_cell(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def resolve_enabled_weekdays(enabled_weekdays: Iterable[int] | None) -> frozenset[int]:
    """Valid weekday codes (1-5) from ``enabled_weekdays``, or the Mon/Wed/Fri default."""
    allowed = {int(d) for d in SCHOOL_WEEKDAYS}
    chosen = {int(d) for d in (enabled_weekdays or ()) if int(d) in allowed}
    if not chosen:
        return frozenset(int(d) for d in DEFAULT_WEEKDAYS_ENABLED)
    return frozenset(chosen)


def coerce_schedule_grade(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    return value if is_valid_grade(value) else None


def extract_school_days(
    rows: Iterable[ScheduleRow],
    start_date: date,
    end_date: date,
    enabled_weekdays: Iterable[int] | None = None,
) -> list[SchoolDay]:
    """Return the school days in ``[start_date, end_date]`` in row order.

    A row qualifies when its weekday is enabled, its grade is 1..6 and at
    least one attendance cell is non-empty.
    """
    if start_date > end_date:
        raise ValueError("start date is after end date")
    weekdays = resolve_enabled_weekdays(enabled_weekdays)

    days: list[SchoolDay] = []
    for row in rows:
        d = row.date
        if d is None or d < start_date or d > end_date:
            continue
        if d.isoweekday() not in weekdays:
            continue
        grade = coerce_schedule_grade(row.grade)
        if grade is None:
            continue
        if not any(is_non_empty_cell(v) for v in row.markers):
            continue
        days.append(SchoolDay(date=d, grade=grade))
    return days


def build_school_day_map(days: Sequence[SchoolDay]) -> dict[int, list[date]]:
    """Unique, ascending candidate dates per grade (every grade key present)."""
    by_grade: dict[int, set[date]] = {grade: set() for grade in GRADES}
    for day in days:
        by_grade[day.grade].add(day.date)
    return {grade: sorted(dates) for grade, dates in by_grade.items()}
