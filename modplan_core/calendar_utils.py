"""Shared calendar utilities used by planning and reporting logic."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from enum import IntEnum

FISCAL_YEAR_START_MONTH = 4

# Fiscal months in calendar order April..March.
FISCAL_MONTHS = (4, 5, 6, 7, 8, 9, 10, 11, 12, 1, 2, 3)


class Weekday(IntEnum):
    """ISO weekday numbers (date.isoweekday())."""

    MON = 1
    TUE = 2
    WED = 3
    THU = 4
    FRI = 5
    SAT = 6
    SUN = 7


SCHOOL_WEEKDAYS = (Weekday.MON, Weekday.TUE, Weekday.WED, Weekday.THU, Weekday.FRI)
DEFAULT_WEEKDAYS_ENABLED = (Weekday.MON, Weekday.WED, Weekday.FRI)

WEEKDAY_PRIORITY: dict[Weekday, int] = {
    Weekday.MON: 0,
    Weekday.WED: 1,
    Weekday.FRI: 2,
    Weekday.TUE: 3,
    Weekday.THU: 4,
}
UNRANKED_PRIORITY = 99

WEEKDAY_LABELS: dict[Weekday, str] = {
    Weekday.MON: "月",
    Weekday.TUE: "火",
    Weekday.WED: "水",
    Weekday.THU: "木",
    Weekday.FRI: "金",
    Weekday.SAT: "土",
    Weekday.SUN: "日",
}


def normalize_to_date(value) -> date | None:
    """Coerce a cell value (date, datetime, ISO or slash string) to a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%Y-%m-%dT%H:%M:%S"):
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return None
    return None


def format_input_date(d: date) -> str:
    return d.isoformat()


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def week_start_monday(d: date) -> date:
    """Monday on or before ``d``; a Sunday belongs to the week that began six days earlier."""
    return d - timedelta(days=d.weekday())


def week_key(d: date) -> str:
    return week_start_monday(d).isoformat()


def fiscal_year_of(d: date, start_month: int = FISCAL_YEAR_START_MONTH) -> int:
    return d.year if d.month >= start_month else d.year - 1


def fiscal_year_range(fiscal_year: int) -> tuple[date, date]:
    """Inclusive (April 1, March 31) range of a fiscal year."""
    start = date(fiscal_year, FISCAL_YEAR_START_MONTH, 1)
    end = date(fiscal_year + 1, FISCAL_YEAR_START_MONTH, 1) - timedelta(days=1)
    return start, end


def collect_fiscal_years(start: date, end: date) -> list[int]:
    if start > end:
        raise ValueError("start date is after end date")
    years = {fiscal_year_of(start), fiscal_year_of(end)}
    cursor = date(start.year, start.month, 1)
    while cursor <= end:
        years.add(fiscal_year_of(cursor))
        cursor = date(cursor.year + (cursor.month // 12), cursor.month % 12 + 1, 1)
    return sorted(years)


def list_month_keys(start: date, end: date) -> list[str]:
    keys: list[str] = []
    cursor = date(start.year, start.month, 1)
    last = date(end.year, end.month, 1)
    while cursor <= last:
        keys.append(month_key(cursor))
        cursor = date(cursor.year + (cursor.month // 12), cursor.month % 12 + 1, 1)
    return keys


def current_or_next_saturday(today: date | None = None) -> date:
    """Saturday of the current week; today itself when today is a Saturday."""
    today = today or date.today()
    return today + timedelta(days=(Weekday.SAT - today.isoweekday()) % 7)


def weekday_priority(d: date) -> int:
    try:
        return WEEKDAY_PRIORITY.get(Weekday(d.isoweekday()), UNRANKED_PRIORITY)
    except ValueError:
        return UNRANKED_PRIORITY


def weekday_label(d: date) -> str:
    return WEEKDAY_LABELS[Weekday(d.isoweekday())]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
