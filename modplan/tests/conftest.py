"""Shared fixtures: a small school workbook on disk."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from openpyxl import Workbook

from modplan.context import PlanContext
from modplan_core.constants import GRADES
from modplan_core.io.schemas import ANNUAL_SCHEDULE_SHEET, CUMULATIVE_SHEET

TERM_START = date(2024, 4, 1)
TERM_END = date(2024, 7, 19)


def schedule_row(d, grade, marker="○"):
    values = [None] * 26
    values[0] = d
    values[19] = grade
    values[20] = marker
    return values


def build_workbook(start=TERM_START, end=TERM_END):
    """Weekday lessons for every grade between ``start`` and ``end``."""
    wb = Workbook()
    schedule = wb.active
    schedule.title = ANNUAL_SCHEDULE_SHEET
    schedule.append(["日付"])
    d = start
    while d <= end:
        if d.isoweekday() <= 5:
            for grade in GRADES:
                schedule.append(schedule_row(d, grade))
        d += timedelta(days=1)

    report = wb.create_sheet(CUMULATIVE_SHEET)
    report["A2"] = "学年"
    for index, grade in enumerate(GRADES):
        report.cell(row=3 + index, column=1, value=f"{grade}年")
    return wb


@pytest.fixture
def make_workbook():
    return build_workbook


@pytest.fixture
def workbook_path(tmp_path):
    path = tmp_path / "school.xlsx"
    build_workbook().save(path)
    return path


@pytest.fixture
def ctx(workbook_path):
    return PlanContext.open(workbook_path)
