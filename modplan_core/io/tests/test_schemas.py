"""Tests for io.schemas helpers."""

from modplan_core.io.schemas import (
    EXCEPTION_COLS,
    MONTH_COLS,
    PLAN_COLS,
    cell_text,
    comma_join,
    comma_split,
    to_float,
    to_int_or_none,
)


class TestColumns:
    def test_plan_header_has_17_columns(self):
        assert len(PLAN_COLS) == 17
        assert PLAN_COLS[:3] == ["fiscal_year", "grade", "plan_mode"]
        assert PLAN_COLS[3:15] == MONTH_COLS
        assert MONTH_COLS[0] == "m4"
        assert MONTH_COLS[-1] == "m3"

    def test_exception_header(self):
        assert EXCEPTION_COLS == ["date", "grade", "delta_sessions", "reason", "note"]


class TestCommaHelpers:
    def test_comma_join(self):
        assert comma_join([1, 3, 5]) == "1,3,5"
        assert comma_join([]) == ""

    def test_comma_split(self):
        assert comma_split("1, 3,,5") == ["1", "3", "5"]
        assert comma_split("") == []
        assert comma_split(None) == []


class TestTypeCoercion:
    def test_cell_text(self):
        assert cell_text("  PLAN_TABLE ") == "PLAN_TABLE"
        assert cell_text(None) == ""
        assert cell_text(2024) == "2024"

    def test_to_float(self):
        assert to_float("12.50") == 12.5
        assert to_float("") == 0.0
        assert to_float(None, default=5.0) == 5.0
        assert to_float("abc") == 0.0
        assert to_float(True) == 0.0

    def test_to_int_or_none(self):
        assert to_int_or_none(2024) == 2024
        assert to_int_or_none(2024.0) == 2024
        assert to_int_or_none("3") == 3
        assert to_int_or_none(3.5) is None
        assert to_int_or_none("") is None
        assert to_int_or_none("annual") is None
