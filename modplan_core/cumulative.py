"""Cumulative lesson/event hour counting from the annual schedule."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from datetime import date

from .constants import GRADES
from .school_days import ScheduleRow, coerce_schedule_grade

LESSON_MARK = "○"


class Category(enum.Enum):
    """Counted categories: (report column, cell abbreviation)."""

    LESSON = ("授業時数", 3, LESSON_MARK)
    CEREMONY = ("儀式", 4, "儀式")
    CULTURE = ("文化", 5, "文化")
    HEALTH = ("保健", 6, "保健")
    EXCURSION = ("遠足", 7, "遠足")
    SERVICE = ("勤労", 8, "勤労")
    ABSENCE = ("欠時数", 9, "欠時")
    STUDENT_COUNCIL = ("児童会", 10, "児童")
    CLUB = ("クラブ", 11, "クラ")
    COMMITTEE = ("委員会活動", 12, "委員")

    def __init__(self, label: str, column: int, abbreviation: str) -> None:
        self.label = label
        self.column = column
        self.abbreviation = abbreviation


_BY_ABBREVIATION = {c.abbreviation: c for c in Category}


def empty_counts() -> dict[Category, int]:
    return {c: 0 for c in Category}


def count_categories(
    rows: Iterable[ScheduleRow], end_date: date
) -> dict[int, dict[Category, int]]:
    """Per-grade category counts for rows dated on or before ``end_date``.

    A ``○`` cell is one regular lesson hour; a cell equal to a category
    abbreviation counts toward that category. Other cells are ignored.
    """
    counts = {grade: empty_counts() for grade in GRADES}
    for row in rows:
        if row.date is None or row.date > end_date:
            continue
        grade = coerce_schedule_grade(row.grade)
        if grade is None:
            continue
        for value in row.markers:
            if not isinstance(value, str):
                continue
            category = _BY_ABBREVIATION.get(value.strip())
            if category is not None:
                counts[grade][category] += 1
    return counts


def format_cumulative_title(end_date: date) -> str:
    return f"{end_date.month}月{end_date.day}日までの累計時数"
