"""Adapter to the older ``byMonth[month_key][grade]`` aggregate shape."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from typing import Any

from .allocator import DailyPlanEntry
from .calendar_utils import list_month_keys, month_key
from .constants import GRADES
from .ledger import ExceptionRow
from .units import sessions_to_units


def _empty_entry() -> dict[str, Any]:
    return {
        "planned_sessions": 0,
        "planned_units": 0.0,
        "school_days_count": 0,
        "delta_units": 0.0,
        "actual_units": 0.0,
        "diff_units": 0.0,
    }


def build_monthly_plan_map(
    entries: Iterable[DailyPlanEntry],
    start_date: date,
    end_date: date,
    exceptions: Iterable[ExceptionRow] = (),
    base_date: date | None = None,
) -> dict[str, dict[str, dict[int, dict[str, Any]]]]:
    """Aggregate daily entries into ``{"byMonth": {YYYY-MM: {grade: {...}}}}``.

    Exceptions dated after ``base_date`` (when given) or outside the range's
    months are ignored. Actual units floor at zero.
    """
    if start_date > end_date:
        raise ValueError("start date is after end date")

    by_month = {key: {grade: _empty_entry() for grade in GRADES} for key in list_month_keys(start_date, end_date)}
    counted: set[tuple[int, date]] = set()

    for entry in entries:
        if entry.date < start_date or entry.date > end_date:
            continue
        slot = by_month.get(month_key(entry.date), {}).get(entry.grade)
        if slot is None:
            continue
        slot["planned_sessions"] += entry.sessions
        if (entry.grade, entry.date) not in counted:
            counted.add((entry.grade, entry.date))
            slot["school_days_count"] += 1

    for row in exceptions:
        if base_date is not None and row.date > base_date:
            continue
        slot = by_month.get(month_key(row.date), {}).get(row.grade)
        if slot is None:
            continue
        slot["delta_units"] += sessions_to_units(row.delta_sessions)

    for grades in by_month.values():
        for slot in grades.values():
            slot["planned_units"] = sessions_to_units(slot["planned_sessions"])
            slot["delta_units"] = round(slot["delta_units"], 6)
            slot["actual_units"] = max(round(slot["planned_units"] + slot["delta_units"], 6), 0.0)
            slot["diff_units"] = round(slot["actual_units"] - slot["planned_units"], 6)

    return {"byMonth": by_month}
