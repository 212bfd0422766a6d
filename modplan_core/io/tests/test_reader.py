"""Tests for the annual schedule reader."""

from __future__ import annotations

from datetime import date, datetime

import pytest
from openpyxl import Workbook

from modplan_core.errors import SheetNotFoundError
from modplan_core.io.reader import get_sheet, load_schedule_rows, parse_schedule_values
from modplan_core.io.schemas import ANNUAL_SCHEDULE_SHEET


def schedule_values(d, grade, *markers):
    values = [None] * 26
    values[0] = d
    values[19] = grade
    for i, marker in enumerate(markers):
        values[20 + i] = marker
    return values


class TestParseScheduleValues:
    def test_reads_date_grade_and_markers(self):
        rows = parse_schedule_values([tuple(schedule_values(datetime(2024, 4, 8), 1, "○", None, "儀式"))])
        assert len(rows) == 1
        assert rows[0].date == date(2024, 4, 8)
        assert rows[0].grade == 1
        assert rows[0].markers == ("○", None, "儀式", None, None, None)

    def test_drops_rows_without_date(self):
        rows = parse_schedule_values([
            ("日付", None),
            (),
            tuple(schedule_values("2024/04/10", 2, "○")),
        ])
        assert [r.date for r in rows] == [date(2024, 4, 10)]

    def test_short_rows_pad_with_none(self):
        rows = parse_schedule_values([(date(2024, 4, 8),)])
        assert rows[0].grade is None
        assert rows[0].markers == (None,) * 6


class TestLoadScheduleRows:
    def test_bulk_read(self):
        wb = Workbook()
        ws = wb.active
        ws.title = ANNUAL_SCHEDULE_SHEET
        ws.append(["日付"])
        ws.append(schedule_values(date(2024, 4, 8), 1, "○"))
        ws.append(schedule_values(date(2024, 4, 8), 2, "○"))

        rows = load_schedule_rows(wb)
        assert [(r.date, r.grade) for r in rows] == [(date(2024, 4, 8), 1), (date(2024, 4, 8), 2)]

    def test_missing_sheet_raises(self):
        wb = Workbook()
        with pytest.raises(SheetNotFoundError) as excinfo:
            load_schedule_rows(wb)
        assert excinfo.value.sheet_name == ANNUAL_SCHEDULE_SHEET

    def test_get_sheet(self):
        wb = Workbook()
        wb.active.title = "x"
        assert get_sheet(wb, "x") is wb["x"]
        with pytest.raises(LookupError):
            get_sheet(wb, "y")
