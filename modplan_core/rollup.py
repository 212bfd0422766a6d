from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from .allocator import DailyTotals
from .constants import DEFICIT_LABEL, GRADES, RESERVE_LABEL, WEEKLY_LABEL
from .ledger import ExceptionTotals
from .units import (
    format_sessions_as_mixed_fraction,
    format_signed_sessions_as_mixed_fraction,
    sessions_to_units,
)

logger = logging.getLogger(__name__)


class PlanLifecycle(str, enum.Enum):
    """Per-fiscal-year plan state. Recompute is always safe to repeat."""

    UNINITIALIZED = "uninitialized"
    DEFAULT_TARGET_CREATED = "default_target_created"
    PLANNED = "planned"
    RECOMPUTED = "recomputed"


@dataclass(frozen=True)
class GradeTotals:
    grade: int
    planned_sessions: int = 0
    elapsed_planned_sessions: int = 0
    delta_sessions: int = 0
    actual_sessions: int = 0
    diff_sessions: int = 0
    this_week_sessions: int = 0

    @property
    def elapsed_planned_units(self) -> float:
        return sessions_to_units(self.elapsed_planned_sessions)

    @property
    def actual_units(self) -> float:
        return sessions_to_units(self.actual_sessions)

    @property
    def diff_units(self) -> float:
        return sessions_to_units(self.diff_sessions)

    def to_dict(self) -> dict:
        return {
            "grade": self.grade,
            "planned_sessions": self.planned_sessions,
            "elapsed_planned_sessions": self.elapsed_planned_sessions,
            "delta_sessions": self.delta_sessions,
            "actual_sessions": self.actual_sessions,
            "diff_sessions": self.diff_sessions,
            "this_week_sessions": self.this_week_sessions,
            "display": build_display_value(self),
        }


def build_grade_totals(
    daily_totals: Mapping[int, DailyTotals],
    exception_totals: ExceptionTotals,
) -> dict[int, GradeTotals]:
    """Merge planned, elapsed and exception deltas per grade.

    Only ``actual`` floors at zero. ``delta_sessions`` keeps the full
    exception sum, including any over-correction below zero.
    """
    result: dict[int, GradeTotals] = {}
    for grade in GRADES:
        daily = daily_totals.get(grade) or DailyTotals()
        delta = int(exception_totals.by_grade.get(grade, 0))
        weekly_delta = int(exception_totals.this_week_by_grade.get(grade, 0))
        raw_actual = daily.elapsed_sessions + delta
        actual = max(raw_actual, 0)
        if raw_actual < 0:
            logger.warning(
                "Grade %d exceptions exceed elapsed plan (elapsed=%d, delta=%d); actual clamped to 0",
                grade, daily.elapsed_sessions, delta,
            )
        diff = actual - daily.elapsed_sessions
        if diff < 0:
            logger.warning("Grade %d behind plan by %d sessions", grade, -diff)
        result[grade] = GradeTotals(
            grade=grade,
            planned_sessions=daily.planned_sessions,
            elapsed_planned_sessions=daily.elapsed_sessions,
            delta_sessions=delta,
            actual_sessions=actual,
            diff_sessions=diff,
            this_week_sessions=daily.this_week_sessions + weekly_delta,
        )
    return result


def build_display_value(total: GradeTotals) -> str:
    """e.g. ``6 2/3（今週 +1）``."""
    return (
        format_sessions_as_mixed_fraction(total.actual_sessions)
        + f"（{WEEKLY_LABEL} "
        + format_signed_sessions_as_mixed_fraction(total.this_week_sessions)
        + "）"
    )


def format_reserve(reserve_sessions: int) -> str:
    if reserve_sessions > 0:
        return f"{RESERVE_LABEL} {format_sessions_as_mixed_fraction(reserve_sessions)}コマ"
    if reserve_sessions < 0:
        return f"{DEFICIT_LABEL} {format_sessions_as_mixed_fraction(-reserve_sessions)}コマ"
    return "-"
