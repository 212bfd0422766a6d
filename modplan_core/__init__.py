"""Module-hours planning core: school-day extraction, session allocation and rollup."""

from .allocator import AnnualTarget, DailyPlanEntry, PlanBuild, allocate_monthly, allocate_sessions, build_daily_plan
from .calendar_utils import current_or_next_saturday, fiscal_year_of, week_key, week_start_monday
from .ledger import ExceptionRow, ExceptionTotals, reduce_exceptions
from .legacy import build_monthly_plan_map
from .rollup import GradeTotals, PlanLifecycle, build_display_value, build_grade_totals
from .school_days import ScheduleRow, SchoolDay, build_school_day_map, extract_school_days
from .units import (
    format_sessions_as_mixed_fraction,
    format_signed_sessions_as_mixed_fraction,
    sessions_to_units,
    units_to_sessions,
)
from .weeks import WeekBucket, build_week_buckets, group_by_week, sort_week_dates_by_priority

__all__ = [
    "AnnualTarget",
    "DailyPlanEntry",
    "ExceptionRow",
    "ExceptionTotals",
    "GradeTotals",
    "PlanBuild",
    "PlanLifecycle",
    "ScheduleRow",
    "SchoolDay",
    "WeekBucket",
    "allocate_monthly",
    "allocate_sessions",
    "build_daily_plan",
    "build_display_value",
    "build_grade_totals",
    "build_monthly_plan_map",
    "build_school_day_map",
    "build_week_buckets",
    "current_or_next_saturday",
    "extract_school_days",
    "fiscal_year_of",
    "format_sessions_as_mixed_fraction",
    "format_signed_sessions_as_mixed_fraction",
    "group_by_week",
    "reduce_exceptions",
    "sessions_to_units",
    "sort_week_dates_by_priority",
    "units_to_sessions",
    "week_key",
    "week_start_monday",
]
