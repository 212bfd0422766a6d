"""Tests for grade totals and display formatting."""

from __future__ import annotations

import logging

from modplan_core.allocator import DailyTotals
from modplan_core.ledger import ExceptionTotals
from modplan_core.rollup import GradeTotals, build_display_value, build_grade_totals, format_reserve


def exceptions(by_grade=None, this_week=None):
    totals = ExceptionTotals()
    totals.by_grade.update(by_grade or {})
    totals.this_week_by_grade.update(this_week or {})
    return totals


class TestBuildGradeTotals:
    def test_actual_is_elapsed_plus_delta(self):
        daily = {1: DailyTotals(planned_sessions=30, elapsed_sessions=12, this_week_sessions=3)}
        totals = build_grade_totals(daily, exceptions({1: 2}, {1: 1}))[1]

        assert totals.actual_sessions == 14
        assert totals.diff_sessions == 2
        assert totals.this_week_sessions == 4
        assert totals.actual_units == 4.666667

    def test_negative_actual_floors_at_zero(self, caplog):
        daily = {1: DailyTotals(planned_sessions=10, elapsed_sessions=3)}
        with caplog.at_level(logging.WARNING, logger="modplan_core.rollup"):
            totals = build_grade_totals(daily, exceptions({1: -5}))[1]

        assert totals.actual_sessions == 0
        assert totals.diff_sessions == -3
        assert totals.delta_sessions == -5
        assert "clamped to 0" in caplog.text
        assert "behind plan by 3" in caplog.text

    def test_missing_grades_are_zero(self):
        totals = build_grade_totals({}, exceptions())
        assert sorted(totals) == [1, 2, 3, 4, 5, 6]
        assert totals[6] == GradeTotals(grade=6)


class TestDisplay:
    def test_display_value(self):
        total = GradeTotals(grade=1, actual_sessions=20, this_week_sessions=1)
        assert build_display_value(total) == "6 2/3（今週 +1/3）"

    def test_display_value_zero_week(self):
        total = GradeTotals(grade=1, actual_sessions=18)
        assert build_display_value(total) == "6（今週 0）"

    def test_to_dict_carries_display(self):
        total = GradeTotals(grade=2, actual_sessions=3, this_week_sessions=-1)
        assert total.to_dict()["display"] == "1（今週 -1/3）"

    def test_format_reserve(self):
        assert format_reserve(4) == "予備 1 1/3コマ"
        assert format_reserve(-3) == "不足 1コマ"
        assert format_reserve(0) == "-"
