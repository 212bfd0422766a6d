"""Tests for calendar helpers."""

from datetime import date, datetime

import pytest

from modplan_core.calendar_utils import (
    collect_fiscal_years,
    current_or_next_saturday,
    fiscal_year_of,
    fiscal_year_range,
    list_month_keys,
    normalize_to_date,
    round_half_up,
    week_key,
    weekday_label,
)


class TestFiscalYear:
    def test_fiscal_year_of(self):
        assert fiscal_year_of(date(2024, 4, 1)) == 2024
        assert fiscal_year_of(date(2025, 3, 31)) == 2024

    def test_fiscal_year_range(self):
        assert fiscal_year_range(2024) == (date(2024, 4, 1), date(2025, 3, 31))

    def test_collect_fiscal_years(self):
        assert collect_fiscal_years(date(2024, 3, 1), date(2024, 5, 1)) == [2023, 2024]
        assert collect_fiscal_years(date(2024, 4, 1), date(2024, 4, 30)) == [2024]

    def test_collect_fiscal_years_reversed(self):
        with pytest.raises(ValueError):
            collect_fiscal_years(date(2024, 5, 1), date(2024, 4, 1))

    def test_list_month_keys_across_year_end(self):
        assert list_month_keys(date(2024, 11, 15), date(2025, 2, 1)) == [
            "2024-11", "2024-12", "2025-01", "2025-02",
        ]


class TestDates:
    def test_normalize_to_date(self):
        assert normalize_to_date("2024-04-08") == date(2024, 4, 8)
        assert normalize_to_date("2024/04/08") == date(2024, 4, 8)
        assert normalize_to_date(datetime(2024, 4, 8, 9, 30)) == date(2024, 4, 8)
        assert normalize_to_date(date(2024, 4, 8)) == date(2024, 4, 8)
        assert normalize_to_date("") is None
        assert normalize_to_date("not a date") is None
        assert normalize_to_date(45000) is None

    def test_current_or_next_saturday(self):
        assert current_or_next_saturday(date(2024, 4, 15)) == date(2024, 4, 20)
        assert current_or_next_saturday(date(2024, 4, 20)) == date(2024, 4, 20)
        assert current_or_next_saturday(date(2024, 4, 21)) == date(2024, 4, 27)

    def test_week_key_sunday(self):
        assert week_key(date(2024, 4, 14)) == "2024-04-08"
        assert week_key(date(2024, 4, 15)) == "2024-04-15"

    def test_weekday_label(self):
        assert weekday_label(date(2024, 4, 8)) == "月"
        assert weekday_label(date(2024, 4, 14)) == "日"

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.4) == 2
        assert round_half_up(-1.5) == -1
