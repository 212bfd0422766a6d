"""Tests for session allocation and daily plan building."""

from __future__ import annotations

import logging
from datetime import date, timedelta

import pytest

from modplan_core.allocator import (
    AnnualTarget,
    _even_week_targets,
    allocate_monthly,
    allocate_sessions,
    build_daily_plan,
)
from modplan_core.constants import GRADES, PLAN_MODE_MONTHLY
from modplan_core.weeks import build_week_buckets

FIRST_MONDAY = date(2024, 4, 8)


def weeks_of(weekday_offsets, count, start=FIRST_MONDAY):
    """Dates for ``count`` consecutive weeks using the given offsets from Monday."""
    return [
        start + timedelta(weeks=w, days=offset)
        for w in range(count)
        for offset in weekday_offsets
    ]


MWF = (0, 2, 4)
MON_TO_FRI = (0, 1, 2, 3, 4)


class TestEvenWeekTargets:
    def test_remainder_sums_exactly(self):
        targets = _even_week_targets(10, 4)
        assert targets == [2, 3, 2, 3]
        assert sum(targets) == 10

    def test_no_remainder(self):
        assert _even_week_targets(12, 4) == [3, 3, 3, 3]

    def test_fewer_sessions_than_weeks(self):
        targets = _even_week_targets(2, 5)
        assert sum(targets) == 2
        assert max(targets) - min(targets) <= 1


class TestAllocateSessions:
    def test_six_mwf_weeks_get_three_each(self):
        buckets = build_week_buckets(weeks_of(MWF, 6))
        result = allocate_sessions(18, buckets)

        assert len(result) == 18
        assert set(result.values()) == {1}
        assert [b.allocated for b in buckets] == [3] * 6
        for key in result:
            assert date.fromisoformat(key).isoweekday() in (1, 3, 5)

    def test_short_week_deficit_is_redistributed(self):
        dates = weeks_of(MON_TO_FRI, 6)
        holiday_week = FIRST_MONDAY + timedelta(weeks=2)
        dates = [
            d for d in dates
            if not (holiday_week <= d < holiday_week + timedelta(days=7)) or d == holiday_week
        ]
        buckets = build_week_buckets(dates)
        result = allocate_sessions(18, buckets)

        assert len(result) == 18
        assert buckets[2].allocated == 1
        assert sum(b.allocated for b in buckets) == 18

    def test_over_capacity_is_dropped_with_info_log(self, caplog):
        buckets = build_week_buckets(weeks_of(MON_TO_FRI, 8))
        with caplog.at_level(logging.INFO, logger="modplan_core.allocator"):
            result = allocate_sessions(100, buckets)

        assert len(result) == 40
        assert all(b.allocated == b.capacity for b in buckets)
        assert "Dropping 60 sessions" in caplog.text

    def test_zero_sessions_is_empty(self):
        buckets = build_week_buckets(weeks_of(MWF, 2))
        assert allocate_sessions(0, buckets) == {}
        assert all(b.allocated == 0 for b in buckets)

    def test_no_weeks_is_empty(self):
        assert allocate_sessions(12, []) == {}

    def test_fractional_total_rounds_half_up(self):
        buckets = build_week_buckets(weeks_of(MWF, 2))
        assert len(allocate_sessions(2.5, buckets)) == 3

    def test_weekday_priority_within_week(self):
        # Tue, Thu, Fri of one week: Fri outranks Tue and Thu.
        buckets = build_week_buckets([date(2024, 4, 9), date(2024, 4, 11), date(2024, 4, 12)])
        assert allocate_sessions(1, buckets) == {"2024-04-12": 1}

    def test_mon_wed_fri_chosen_before_tue_thu(self):
        buckets = build_week_buckets(weeks_of(MON_TO_FRI, 1))
        result = allocate_sessions(3, buckets)
        assert sorted(result) == ["2024-04-08", "2024-04-10", "2024-04-12"]

    def test_duplicate_dates_count_once(self):
        dates = weeks_of(MWF, 1) * 2
        buckets = build_week_buckets(dates)
        assert buckets[0].capacity == 3
        assert len(allocate_sessions(6, buckets)) == 3

    @pytest.mark.parametrize("total", [0, 1, 7, 13, 29, 45, 60])
    def test_total_matches_min_of_request_and_capacity(self, total):
        dates = weeks_of(MWF, 5) + weeks_of((1,), 3, start=FIRST_MONDAY + timedelta(weeks=5))
        buckets = build_week_buckets(dates)
        capacity = sum(b.capacity for b in buckets)
        result = allocate_sessions(total, buckets)

        assert len(result) == min(total, capacity)
        assert sum(b.allocated for b in buckets) == min(total, capacity)

    @pytest.mark.parametrize("total", [4, 7, 11, 16])
    def test_equal_capacity_weeks_differ_by_at_most_one(self, total):
        buckets = build_week_buckets(weeks_of(MON_TO_FRI, 6))
        allocate_sessions(total, buckets)
        counts = [b.allocated for b in buckets]
        assert max(counts) - min(counts) <= 1


class TestAllocateMonthly:
    def test_month_without_days_is_skipped(self, caplog):
        july = [date(2024, 7, 1), date(2024, 7, 3), date(2024, 7, 5)]
        skipped = []
        with caplog.at_level(logging.WARNING, logger="modplan_core.allocator"):
            result = allocate_monthly({7: 0, 8: 6}, july, grade=1, fiscal_year=2024, skipped=skipped)

        assert result == {}
        assert skipped == [{"grade": 1, "month": 8, "sessions": 6}]
        assert "No school days for month target" in caplog.text

    def test_months_allocated_independently(self):
        days = weeks_of(MWF, 4, start=date(2024, 4, 1)) + weeks_of(MWF, 4, start=date(2024, 5, 6))
        result = allocate_monthly({4: 3, 5: 6}, days)

        april = [k for k in result if k.startswith("2024-04")]
        may = [k for k in result if k.startswith("2024-05")]
        assert len(april) == 3
        assert len(may) == 6


class TestAnnualTarget:
    def test_annual_target_sessions(self):
        assert AnnualTarget(2024, 1, annual_units=6).target_sessions == 18

    def test_default_is_28_units(self):
        target = AnnualTarget.default(2024, 3)
        assert target.annual_units == 28
        assert target.target_sessions == 84
        assert target.note == "default"

    def test_monthly_derives_annual_units(self):
        target = AnnualTarget(2024, 1, PLAN_MODE_MONTHLY, monthly_units={4: 2, 5: 1.5})
        assert target.annual_units == 3.5
        assert target.monthly_sessions()[4] == 6
        assert target.monthly_sessions()[5] == 5  # 4.5 rounds half-up
        assert target.monthly_sessions()[6] == 0
        assert target.target_sessions == 11

    def test_monthly_requires_positive_sum(self):
        with pytest.raises(ValueError):
            AnnualTarget(2024, 1, PLAN_MODE_MONTHLY, monthly_units={4: 0})

    def test_negative_units_rejected(self):
        with pytest.raises(ValueError):
            AnnualTarget(2024, 1, annual_units=-1)
        with pytest.raises(ValueError):
            AnnualTarget(2024, 1, PLAN_MODE_MONTHLY, monthly_units={4: 3, 5: -1})

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            AnnualTarget(2024, 1, "cycle")


class TestBuildDailyPlan:
    @pytest.fixture
    def school_days(self):
        days = {grade: [] for grade in GRADES}
        days[1] = weeks_of(MWF, 6)
        return days

    def test_entries_and_totals(self, school_days):
        targets = {1: AnnualTarget(2024, 1, annual_units=6)}
        build = build_daily_plan(2024, date(2024, 4, 20), targets, school_days)

        grade_one = [e for e in build.entries if e.grade == 1]
        assert len(grade_one) == 18
        assert all(e.sessions == 1 for e in grade_one)
        totals = build.totals_by_grade[1]
        assert totals.planned_sessions == 18
        assert totals.elapsed_sessions == 6
        assert totals.this_week_sessions == 3
        assert build.reserve_by_grade[1] == 0

    def test_missing_target_uses_default(self, school_days, caplog):
        with caplog.at_level(logging.WARNING, logger="modplan_core.allocator"):
            build = build_daily_plan(2024, date(2024, 4, 20), {}, school_days)

        assert build.target_sessions_by_grade[2] == 84
        assert build.reserve_by_grade[2] == -84
        assert build.totals_by_grade[1].planned_sessions == 18
        assert build.reserve_by_grade[1] == 18 - 84
        assert "allocation skipped" in caplog.text

    def test_entries_sorted_by_date_then_grade(self):
        days = {grade: weeks_of(MWF, 2) for grade in GRADES}
        targets = {g: AnnualTarget(2024, g, annual_units=2) for g in GRADES}
        build = build_daily_plan(2024, date(2024, 4, 20), targets, days)

        keys = [(e.date, e.grade) for e in build.entries]
        assert keys == sorted(keys)
        assert build.daily_plan_count == 36

    def test_range_is_clipped_to_fiscal_year(self, school_days):
        school_days[1] = school_days[1] + [date(2024, 3, 25), date(2025, 4, 7)]
        build = build_daily_plan(
            2024,
            date(2024, 4, 20),
            {1: AnnualTarget(2024, 1, annual_units=20)},
            school_days,
            start_date=date(2024, 1, 1),
            end_date=date(2025, 12, 31),
        )
        assert build.start_date == date(2024, 4, 1)
        assert build.end_date == date(2025, 3, 31)
        assert all(date(2024, 4, 1) <= e.date <= date(2025, 3, 31) for e in build.entries)

    def test_monthly_target_without_days_never_moves(self):
        days = {grade: [] for grade in GRADES}
        days[1] = [date(2024, 7, 1), date(2024, 7, 3), date(2024, 7, 5)]
        targets = {1: AnnualTarget(2024, 1, PLAN_MODE_MONTHLY, monthly_units={7: 0, 8: 2})}
        build = build_daily_plan(2024, date(2024, 7, 6), targets, days)

        assert [e for e in build.entries if e.grade == 1] == []
        assert {"grade": 1, "month": 8, "sessions": 6} in build.skipped_months
        assert build.reserve_by_grade[1] == -6

    def test_monthly_cycle_label(self):
        days = {grade: [] for grade in GRADES}
        days[1] = weeks_of(MWF, 2, start=date(2024, 5, 6))
        targets = {1: AnnualTarget(2024, 1, PLAN_MODE_MONTHLY, monthly_units={5: 1})}
        build = build_daily_plan(2024, date(2024, 5, 11), targets, days)

        labels = {e.cycle_label for e in build.entries if e.grade == 1}
        assert labels == {"5月"}

    def test_same_inputs_same_plan(self, school_days):
        targets = {1: AnnualTarget(2024, 1, annual_units=4)}
        first = build_daily_plan(2024, date(2024, 4, 20), targets, school_days)
        second = build_daily_plan(2024, date(2024, 4, 20), targets, school_days)
        assert first.entries == second.entries
