"""Domain constants for module-hours planning."""

from __future__ import annotations

GRADE_MIN = 1
GRADE_MAX = 6
GRADES = tuple(range(GRADE_MIN, GRADE_MAX + 1))

# One reporting unit (koma) is 45 minutes; one session is 15 minutes.
SESSIONS_PER_UNIT = 3
SESSION_MINUTES = 15

DEFAULT_ANNUAL_KOMA = 28

PLAN_MODE_ANNUAL = "annual"
PLAN_MODE_MONTHLY = "monthly"

FISCAL_YEAR_MIN = 2000
FISCAL_YEAR_MAX = 2100

DISPLAY_HEADER = "MOD実施累計(表示)"
WEEKLY_LABEL = "今週"
DONE_LABEL = "済"
RESERVE_LABEL = "予備"
DEFICIT_LABEL = "不足"
ANNUAL_CYCLE_LABEL = "年間"
NOT_GENERATED_LABEL = "未生成"


def is_valid_grade(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and GRADE_MIN <= value <= GRADE_MAX
