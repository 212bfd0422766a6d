"""Tests for week grouping and weekday priority."""

from datetime import date

import pytest

from modplan_core.weeks import WeekBucket, build_week_buckets, group_by_week, sort_week_dates_by_priority


class TestPrioritySort:
    def test_mon_wed_fri_tue_thu(self):
        week = [date(2024, 4, d) for d in (8, 9, 10, 11, 12)]
        ordered = sort_week_dates_by_priority(reversed(week))
        assert [d.isoweekday() for d in ordered] == [1, 3, 5, 2, 4]

    def test_weekend_ranks_last(self):
        ordered = sort_week_dates_by_priority([date(2024, 4, 13), date(2024, 4, 11)])
        assert ordered == [date(2024, 4, 11), date(2024, 4, 13)]

    def test_ties_break_by_date(self):
        mondays = [date(2024, 4, 15), date(2024, 4, 8)]
        assert sort_week_dates_by_priority(mondays) == [date(2024, 4, 8), date(2024, 4, 15)]


class TestGroupByWeek:
    def test_sunday_joins_previous_monday(self):
        grouped = group_by_week([date(2024, 4, 14), date(2024, 4, 15)])
        assert list(grouped) == [date(2024, 4, 8), date(2024, 4, 15)]
        assert grouped[date(2024, 4, 8)] == [date(2024, 4, 14)]

    def test_keys_ascending(self):
        grouped = group_by_week([date(2024, 5, 1), date(2024, 4, 10), date(2024, 4, 24)])
        assert list(grouped) == sorted(grouped)


class TestWeekBucket:
    def test_dedupes_and_sorts(self):
        bucket = WeekBucket(date(2024, 4, 8), [date(2024, 4, 9), date(2024, 4, 8), date(2024, 4, 9)])
        assert bucket.dates == [date(2024, 4, 8), date(2024, 4, 9)]
        assert bucket.capacity == 2
        assert bucket.key == "2024-04-08"

    def test_week_start_must_be_monday(self):
        with pytest.raises(ValueError, match="Monday"):
            WeekBucket(date(2024, 4, 9), [])

    def test_dates_must_be_in_week(self):
        with pytest.raises(ValueError):
            WeekBucket(date(2024, 4, 8), [date(2024, 4, 15)])

    def test_build_week_buckets_carries_grade(self):
        buckets = build_week_buckets([date(2024, 4, 8), date(2024, 4, 17)], grade=4)
        assert [b.key for b in buckets] == ["2024-04-08", "2024-04-15"]
        assert all(b.grade == 4 for b in buckets)
