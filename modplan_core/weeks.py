"""Week grouping and in-week weekday priority ordering."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from .calendar_utils import weekday_priority, week_start_monday


def sort_week_dates_by_priority(dates: Iterable[date]) -> list[date]:
    """Order by Mon, Wed, Fri, Tue, Thu (other weekdays last), then by date."""
    return sorted(dates, key=lambda d: (weekday_priority(d), d))


def group_by_week(dates: Iterable[date]) -> dict[date, list[date]]:
    """Group dates by the Monday starting their week, keys ascending."""
    grouped: dict[date, list[date]] = defaultdict(list)
    for d in dates:
        grouped[week_start_monday(d)].append(d)
    return {key: grouped[key] for key in sorted(grouped)}


@dataclass
class WeekBucket:
    week_start: date
    dates: list[date] = field(default_factory=list)
    grade: int | None = None
    allocated: int = 0

    def __post_init__(self) -> None:
        if self.week_start.weekday() != 0:
            raise ValueError(f"week start must be a Monday: {self.week_start.isoformat()}")
        for d in self.dates:
            if week_start_monday(d) != self.week_start:
                raise ValueError(f"{d.isoformat()} is outside the week of {self.week_start.isoformat()}")
        self.dates = sort_week_dates_by_priority(set(self.dates))

    @property
    def key(self) -> str:
        return self.week_start.isoformat()

    @property
    def capacity(self) -> int:
        return len(self.dates)


def build_week_buckets(dates: Iterable[date], grade: int | None = None) -> list[WeekBucket]:
    return [
        WeekBucket(week_start=monday, dates=week_dates, grade=grade)
        for monday, week_dates in group_by_week(dates).items()
    ]
