from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from .calendar_utils import (
    FISCAL_MONTHS,
    fiscal_year_range,
    format_input_date,
    round_half_up,
    week_key,
    week_start_monday,
)
from .constants import (
    ANNUAL_CYCLE_LABEL,
    DEFAULT_ANNUAL_KOMA,
    GRADES,
    PLAN_MODE_ANNUAL,
    PLAN_MODE_MONTHLY,
)
from .units import units_to_sessions
from .weeks import WeekBucket, build_week_buckets

logger = logging.getLogger(__name__)


@dataclass
class AnnualTarget:
    fiscal_year: int
    grade: int
    mode: str = PLAN_MODE_ANNUAL
    annual_units: float = 0.0
    monthly_units: dict[int, float] | None = None
    note: str = ""

    def __post_init__(self) -> None:
        if self.mode not in (PLAN_MODE_ANNUAL, PLAN_MODE_MONTHLY):
            raise ValueError(f"Unknown plan mode: {self.mode!r}")
        if self.mode == PLAN_MODE_MONTHLY:
            months = {m: float(self.monthly_units.get(m, 0) or 0) for m in FISCAL_MONTHS} if self.monthly_units else {}
            if any(v < 0 for v in months.values()):
                raise ValueError(f"monthly units must be >= 0 (grade {self.grade})")
            total = sum(months.values())
            if total <= 0:
                raise ValueError(f"monthly units must sum to more than 0 (grade {self.grade})")
            self.monthly_units = months
            self.annual_units = round(total, 6)
        elif self.annual_units < 0:
            raise ValueError(f"annual units must be >= 0 (grade {self.grade})")

    @property
    def target_sessions(self) -> int:
        if self.mode == PLAN_MODE_MONTHLY:
            return sum(self.monthly_sessions().values())
        return units_to_sessions(self.annual_units)

    def monthly_sessions(self) -> dict[int, int]:
        if self.mode != PLAN_MODE_MONTHLY or not self.monthly_units:
            return {}
        return {m: units_to_sessions(self.monthly_units.get(m, 0)) for m in FISCAL_MONTHS}

    @classmethod
    def default(cls, fiscal_year: int, grade: int) -> "AnnualTarget":
        return cls(
            fiscal_year=fiscal_year,
            grade=grade,
            mode=PLAN_MODE_ANNUAL,
            annual_units=float(DEFAULT_ANNUAL_KOMA),
            note="default",
        )


@dataclass(frozen=True)
class DailyPlanEntry:
    date: date
    fiscal_year: int
    week_key: str
    grade: int
    sessions: int
    elapsed: bool
    cycle_label: str = ANNUAL_CYCLE_LABEL


@dataclass
class DailyTotals:
    planned_sessions: int = 0
    elapsed_sessions: int = 0
    this_week_sessions: int = 0


@dataclass
class PlanBuild:
    fiscal_year: int
    base_date: date
    start_date: date
    end_date: date
    generated_at: datetime | None
    entries: list[DailyPlanEntry] = field(default_factory=list)
    totals_by_grade: dict[int, DailyTotals] = field(default_factory=dict)
    target_sessions_by_grade: dict[int, int] = field(default_factory=dict)
    reserve_by_grade: dict[int, int] = field(default_factory=dict)
    skipped_months: list[dict[str, Any]] = field(default_factory=list)

    @property
    def daily_plan_count(self) -> int:
        return len(self.entries)


def _even_week_targets(assignable: int, week_count: int) -> list[int]:
    """Largest-remainder split: week i gets base plus floor((i+1)r/n) - floor(ir/n)."""
    base, rem = divmod(assignable, week_count)
    return [
        base + ((i + 1) * rem) // week_count - (i * rem) // week_count
        for i in range(week_count)
    ]


def allocate_sessions(total_sessions: float, weeks: Sequence[WeekBucket]) -> dict[str, int]:
    """Spread sessions over school weeks, then over days by weekday priority.

    Returns ``{date_iso: 1}`` for every date that receives a session; a date
    never receives more than one. Each bucket's ``allocated`` is updated.
    """
    buckets = sorted(weeks, key=lambda w: w.week_start)
    for bucket in buckets:
        bucket.allocated = 0

    requested = max(0, round_half_up(float(total_sessions or 0)))
    if requested == 0 or not buckets:
        return {}

    capacities = [bucket.capacity for bucket in buckets]
    total_capacity = sum(capacities)
    assignable = min(requested, total_capacity)
    if requested > total_capacity:
        logger.info(
            "Dropping %d sessions beyond day capacity (requested=%d, capacity=%d)",
            requested - total_capacity, requested, total_capacity,
        )

    targets = _even_week_targets(assignable, len(buckets))
    allocated = [min(t, c) for t, c in zip(targets, capacities)]
    deficit = sum(t - a for t, a in zip(targets, allocated))

    # Sweep until the deficit is placed or no week has room left.
    while deficit > 0:
        absorbed = False
        for i, capacity in enumerate(capacities):
            if deficit == 0:
                break
            if allocated[i] < capacity:
                allocated[i] += 1
                deficit -= 1
                absorbed = True
        if not absorbed:
            break

    allocations: dict[str, int] = {}
    for bucket, count in zip(buckets, allocated):
        bucket.allocated = count
        for d in bucket.dates[:count]:
            allocations[format_input_date(d)] = 1
    return allocations


def allocate_monthly(
    monthly_sessions: Mapping[int, int],
    dates: Iterable[date],
    *,
    grade: int | None = None,
    fiscal_year: int | None = None,
    skipped: list[dict[str, Any]] | None = None,
) -> dict[str, int]:
    """Allocate each calendar month independently and merge the results.

    A month with a positive target but no candidate days is skipped with a
    warning; its target is not moved to other months.
    """
    by_month: dict[int, list[date]] = defaultdict(list)
    for d in dates:
        by_month[d.month].append(d)

    merged: dict[str, int] = {}
    for month in FISCAL_MONTHS:
        sessions = int(monthly_sessions.get(month, 0) or 0)
        if sessions <= 0:
            continue
        month_dates = by_month.get(month, [])
        if not month_dates:
            logger.warning(
                "No school days for month target, skipping: FY%s grade=%s month=%d sessions=%d",
                fiscal_year, grade, month, sessions,
            )
            if skipped is not None:
                skipped.append({"grade": grade, "month": month, "sessions": sessions})
            continue
        result = allocate_sessions(sessions, build_week_buckets(month_dates, grade=grade))
        for key, value in result.items():
            merged[key] = merged.get(key, 0) + value
    return merged


def _cycle_label(target: AnnualTarget, d: date) -> str:
    if target.mode == PLAN_MODE_MONTHLY:
        return f"{d.month}月"
    return ANNUAL_CYCLE_LABEL


def build_daily_plan(
    fiscal_year: int,
    base_date: date,
    targets: Mapping[int, AnnualTarget],
    school_day_map: Mapping[int, Sequence[date]],
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    generated_at: datetime | None = None,
) -> PlanBuild:
    """Build the per-day, per-grade plan for one fiscal year (nothing is persisted)."""
    fy_start, fy_end = fiscal_year_range(fiscal_year)
    range_start = max(start_date or fy_start, fy_start)
    range_end = min(end_date or fy_end, fy_end)
    week_start = week_start_monday(base_date)

    build = PlanBuild(
        fiscal_year=fiscal_year,
        base_date=base_date,
        start_date=range_start,
        end_date=range_end,
        generated_at=generated_at,
        totals_by_grade={grade: DailyTotals() for grade in GRADES},
    )

    for grade in GRADES:
        target = targets.get(grade) or AnnualTarget.default(fiscal_year, grade)
        candidates = sorted(
            {d for d in school_day_map.get(grade, ()) if range_start <= d <= range_end}
        )

        if target.mode == PLAN_MODE_MONTHLY:
            allocations = allocate_monthly(
                target.monthly_sessions(),
                candidates,
                grade=grade,
                fiscal_year=fiscal_year,
                skipped=build.skipped_months,
            )
        else:
            allocations = allocate_sessions(
                target.target_sessions, build_week_buckets(candidates, grade=grade)
            )
            if target.target_sessions > 0 and not allocations:
                logger.warning(
                    "No school weeks available, allocation skipped: FY%d grade=%d", fiscal_year, grade
                )

        totals = build.totals_by_grade[grade]
        for key in sorted(allocations):
            d = date.fromisoformat(key)
            sessions = allocations[key]
            elapsed = d <= base_date
            build.entries.append(
                DailyPlanEntry(
                    date=d,
                    fiscal_year=fiscal_year,
                    week_key=week_key(d),
                    grade=grade,
                    sessions=sessions,
                    elapsed=elapsed,
                    cycle_label=_cycle_label(target, d),
                )
            )
            totals.planned_sessions += sessions
            if elapsed:
                totals.elapsed_sessions += sessions
                if d >= week_start:
                    totals.this_week_sessions += sessions

        build.target_sessions_by_grade[grade] = target.target_sessions
        build.reserve_by_grade[grade] = totals.planned_sessions - target.target_sessions

    build.entries.sort(key=lambda e: (e.date, e.grade))
    return build
