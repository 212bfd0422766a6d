"""Sheet names, column constants, and cell coercion helpers for workbook I/O."""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Sheet names
# ---------------------------------------------------------------------------

ANNUAL_SCHEDULE_SHEET = "年間行事予定表"
CONTROL_SHEET = "module_control"
CUMULATIVE_SHEET = "累計時数"
PLAN_SUMMARY_SHEET = "モジュール学習計画"

# ---------------------------------------------------------------------------
# Annual schedule columns (0-based indexes into a row of values)
# ---------------------------------------------------------------------------

SCHEDULE_DATE_INDEX = 0       # A
SCHEDULE_GRADE_INDEX = 19     # T
SCHEDULE_DATA_START = 20      # U
SCHEDULE_DATA_END = 25        # Z

# ---------------------------------------------------------------------------
# Control sheet layout (1-based rows)
# ---------------------------------------------------------------------------

CONTROL_VERSION_KEY = "MODULE_CONTROL_VERSION"
DATA_VERSION = "CONTROL_V4"

PLAN_MARKER = "PLAN_TABLE"
EXCEPTIONS_MARKER = "EXCEPTIONS_TABLE"

DEFAULT_PLAN_MARKER_ROW = 3
DEFAULT_EXCEPTIONS_MARKER_ROW = 40
EXCEPTIONS_MIN_GAP = 20

MONTH_COLS = [f"m{m}" for m in (4, 5, 6, 7, 8, 9, 10, 11, 12, 1, 2, 3)]

PLAN_COLS = [
    "fiscal_year",
    "grade",
    "plan_mode",
    *MONTH_COLS,
    "annual_koma",
    "note",
]

EXCEPTION_COLS = [
    "date",
    "grade",
    "delta_sessions",
    "reason",
    "note",
]

# Pre-V4 plan rows: one row per (fiscal_year, cycle) with a column per grade.
LEGACY_CYCLE_COLS = [
    "fiscal_year",
    "cycle_order",
    "start_month",
    "end_month",
    "g1_koma",
    "g2_koma",
    "g3_koma",
    "g4_koma",
    "g5_koma",
    "g6_koma",
    "note",
]
LEGACY_GRADE_START_INDEX = 4

# ---------------------------------------------------------------------------
# Cumulative report layout (1-based)
# ---------------------------------------------------------------------------

CUMULATIVE_TITLE_CELL = "A1"
CUMULATIVE_HEADER_ROW = 2
CUMULATIVE_GRADE_START_ROW = 3
MODULE_PLAN_COLUMN = 13       # M
MODULE_DIFF_COLUMN = 15       # O
MODULE_DISPLAY_COLUMN = 16    # P
MODULE_HIDDEN_HEADERS = ["MOD計画累計", "MOD実施累計", "MOD差分"]

# ---------------------------------------------------------------------------
# Plan summary sheet
# ---------------------------------------------------------------------------

SUMMARY_TITLE = "モジュール学習 年間実施計画"
SUMMARY_HEADER_ROW = 6
DAILY_SECTION_TITLE = "日別実施計画"
DAILY_COLS = ["日付", "曜日", "区分", *[f"{g}年" for g in range(1, 7)], "状況"]

# ---------------------------------------------------------------------------
# Cell coercion helpers
# ---------------------------------------------------------------------------


def cell_text(value: Any) -> str:
    """Cell value as stripped text. None -> empty string."""
    if value is None:
        return ""
    return str(value).strip()


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce a cell value to float. Empty/None -> default."""
    if value is None or isinstance(value, bool) or str(value).strip() == "":
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def to_int_or_none(value: Any) -> int | None:
    """Integral cell value as int, None for empty, fractional or non-numeric."""
    if value is None or isinstance(value, bool) or str(value).strip() == "":
        return None
    try:
        number = float(value)
    except (ValueError, TypeError):
        return None
    return int(number) if number.is_integer() else None


def comma_join(values) -> str:
    return ",".join(str(v) for v in values)


def comma_split(value: Any) -> list[str]:
    """Split a comma-separated string into a list. Empty/None -> empty list."""
    if value is None or not str(value).strip():
        return []
    return [v.strip() for v in str(value).split(",") if v.strip()]
