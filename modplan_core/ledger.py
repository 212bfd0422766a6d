"""Exception ledger: signed per-day corrections folded into per-grade totals."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .calendar_utils import fiscal_year_of, normalize_to_date, round_half_up, week_start_monday
from .constants import GRADES, is_valid_grade

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExceptionRow:
    date: date
    grade: int
    delta_sessions: int
    reason: str = ""
    note: str = ""
    row_number: int | None = None


@dataclass
class ExceptionTotals:
    by_grade: dict[int, int] = field(default_factory=lambda: {g: 0 for g in GRADES})
    this_week_by_grade: dict[int, int] = field(default_factory=lambda: {g: 0 for g in GRADES})


def coerce_delta(value: Any) -> int | None:
    """Signed integer delta from a cell value, rounded half-up; None when not finite."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return round_half_up(number)


def coerce_grade(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not number.is_integer():
        return None
    grade = int(number)
    return grade if is_valid_grade(grade) else None


def parse_exception_row(raw: dict[str, Any]) -> ExceptionRow | None:
    """Validate one raw ledger row, or return None with a warning."""
    row_number = raw.get("row_number")
    d = normalize_to_date(raw.get("date"))
    if d is None:
        logger.warning("Skipping exception row %s: invalid date %r", row_number, raw.get("date"))
        return None
    grade = coerce_grade(raw.get("grade"))
    if grade is None:
        logger.warning("Skipping exception row %s: invalid grade %r", row_number, raw.get("grade"))
        return None
    delta = coerce_delta(raw.get("delta_sessions"))
    if delta is None:
        logger.warning(
            "Skipping exception row %s: invalid delta %r", row_number, raw.get("delta_sessions")
        )
        return None
    return ExceptionRow(
        date=d,
        grade=grade,
        delta_sessions=delta,
        reason=str(raw.get("reason") or ""),
        note=str(raw.get("note") or ""),
        row_number=row_number,
    )


def reduce_exceptions(
    rows: Iterable[dict[str, Any] | ExceptionRow],
    fiscal_year: int,
    base_date: date,
) -> ExceptionTotals:
    """Sum deltas per grade for rows dated on or before ``base_date`` in ``fiscal_year``.

    Rows inside the Monday-start week containing ``base_date`` also count
    toward ``this_week_by_grade``. Malformed rows are skipped.
    """
    totals = ExceptionTotals()
    week_start = week_start_monday(base_date)

    for raw in rows:
        row = raw if isinstance(raw, ExceptionRow) else parse_exception_row(raw)
        if row is None:
            continue
        if row.date > base_date:
            continue
        if fiscal_year_of(row.date) != fiscal_year:
            continue
        totals.by_grade[row.grade] += row.delta_sessions
        if row.date >= week_start:
            totals.this_week_by_grade[row.grade] += row.delta_sessions
    return totals


def recent_exceptions(
    rows: Iterable[dict[str, Any] | ExceptionRow],
    fiscal_year: int,
    limit: int = 10,
) -> list[ExceptionRow]:
    """Newest valid rows of ``fiscal_year`` (by date, then by sheet row)."""
    valid = []
    for raw in rows:
        row = raw if isinstance(raw, ExceptionRow) else parse_exception_row(raw)
        if row is None or fiscal_year_of(row.date) != fiscal_year:
            continue
        valid.append(row)
    valid.sort(key=lambda r: (r.date, r.row_number or 0), reverse=True)
    return valid[:limit]
