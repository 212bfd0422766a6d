"""User-facing module-hours operations.

Each operation takes a PlanContext, validates its input completely before
writing anything, and finishes with a full recompute (``sync_module_hours``).
Validation errors are ValueError with a message meant for the end user.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from modplan_core.allocator import AnnualTarget, PlanBuild, build_daily_plan
from modplan_core.calendar_utils import (
    FISCAL_MONTHS,
    SCHOOL_WEEKDAYS,
    collect_fiscal_years,
    current_or_next_saturday,
    fiscal_year_of,
    fiscal_year_range,
    format_input_date,
    normalize_to_date,
)
from modplan_core.constants import (
    FISCAL_YEAR_MAX,
    FISCAL_YEAR_MIN,
    GRADES,
    NOT_GENERATED_LABEL,
    PLAN_MODE_ANNUAL,
    PLAN_MODE_MONTHLY,
    SESSION_MINUTES,
    is_valid_grade,
)
from modplan_core.cumulative import count_categories
from modplan_core.io.control import exception_to_row
from modplan_core.io.xlsx import write_category_counts, write_cumulative_module_columns, write_plan_summary
from modplan_core.ledger import coerce_delta, coerce_grade, recent_exceptions, reduce_exceptions
from modplan_core.rollup import GradeTotals, PlanLifecycle, build_grade_totals
from modplan_core.units import format_signed_sessions_as_mixed_fraction, sessions_to_units

from . import settings as keys
from .context import PlanContext
from .settings import read_date, serialize_weekdays

logger = logging.getLogger(__name__)

RECENT_EXCEPTION_LIMIT = 10


@dataclass
class SyncResult:
    base_date: date
    fiscal_year: int
    start_date: date
    end_date: date
    daily_plan_count: int
    lifecycle: PlanLifecycle
    grade_totals: dict[int, GradeTotals] = field(default_factory=dict)
    reserve_by_grade: dict[int, int] = field(default_factory=dict)
    skipped_months: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_date": format_input_date(self.base_date),
            "fiscal_year": self.fiscal_year,
            "start_date": format_input_date(self.start_date),
            "end_date": format_input_date(self.end_date),
            "daily_plan_count": self.daily_plan_count,
            "lifecycle": self.lifecycle.value,
            "grades": [self.grade_totals[g].to_dict() for g in sorted(self.grade_totals)],
            "reserve_by_grade": {str(g): v for g, v in sorted(self.reserve_by_grade.items())},
            "skipped_months": list(self.skipped_months),
        }


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def _require_date(value: Any, label: str) -> date:
    d = normalize_to_date(value)
    if d is None:
        raise ValueError(f"{label}は yyyy-MM-dd 形式で入力してください。")
    return d


def _validate_range(start: Any, end: Any) -> tuple[date, date]:
    start_date = _require_date(start, "開始日")
    end_date = _require_date(end, "終了日")
    if start_date > end_date:
        raise ValueError("開始日は終了日以前の日付を指定してください。")
    return start_date, end_date


def _validate_fiscal_year(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError("対象年度が不正です。") from None
    if not number.is_integer() or not FISCAL_YEAR_MIN <= int(number) <= FISCAL_YEAR_MAX:
        raise ValueError("対象年度が不正です。")
    return int(number)


def _validate_units(value: Any, grade: int) -> float:
    if value is None or value == "":
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{grade}年のコマ数は数値で入力してください。") from None
    if not math.isfinite(number) or number < 0:
        raise ValueError(f"{grade}年のコマ数は0以上で入力してください。")
    return round(number, 6)


def validate_targets(fiscal_year: int, payload: Iterable[Mapping[str, Any]]) -> dict[int, AnnualTarget]:
    """Parse the six per-grade target entries. Raises ValueError on the first problem."""
    targets: dict[int, AnnualTarget] = {}
    for entry in payload:
        grade = coerce_grade(entry.get("grade"))
        if grade is None:
            raise ValueError("学年は1〜6で入力してください。")
        if grade in targets:
            raise ValueError(f"{grade}年の目標が重複しています。")
        mode = str(entry.get("mode") or PLAN_MODE_ANNUAL).strip().lower()
        note = str(entry.get("note") or "").strip()
        if mode == PLAN_MODE_MONTHLY:
            raw_months = entry.get("monthly_units") or {}
            monthly = {m: _validate_units(raw_months.get(m, raw_months.get(str(m))), grade) for m in FISCAL_MONTHS}
            if sum(monthly.values()) <= 0:
                raise ValueError(f"{grade}年の月別コマ数の合計は0より大きくしてください。")
            targets[grade] = AnnualTarget(fiscal_year, grade, mode, monthly_units=monthly, note=note)
        elif mode == PLAN_MODE_ANNUAL:
            units = _validate_units(entry.get("annual_units"), grade)
            targets[grade] = AnnualTarget(fiscal_year, grade, mode, annual_units=units, note=note)
        else:
            raise ValueError(f"{grade}年の計画方式が不正です: {mode}")

    missing = [g for g in GRADES if g not in targets]
    if missing:
        raise ValueError("全学年（1〜6年）の目標を入力してください。不足: " + ", ".join(f"{g}年" for g in missing))
    return targets


def validate_weekdays(weekdays: Iterable[Any]) -> list[int]:
    allowed = {int(d) for d in SCHOOL_WEEKDAYS}
    chosen: set[int] = set()
    for value in weekdays or ():
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"曜日コードが不正です: {value!r}") from None
        code = int(number) if number.is_integer() else None
        if code not in allowed:
            raise ValueError(f"曜日コードは1（月）〜5（金）で指定してください: {value!r}")
        chosen.add(code)
    if not chosen:
        raise ValueError("実施曜日を1つ以上選択してください。")
    return sorted(chosen)


# ---------------------------------------------------------------------------
# Recompute
# ---------------------------------------------------------------------------


def resolve_planning_range(ctx: PlanContext, base_date: date) -> tuple[date, date]:
    """Stored planning range, or the base date's fiscal year (persisted)."""
    settings = ctx.settings_map()
    start = read_date(settings, keys.PLAN_START_DATE)
    end = read_date(settings, keys.PLAN_END_DATE)
    if start and end and start <= end:
        return start, end
    start, end = fiscal_year_range(fiscal_year_of(base_date))
    ctx.update_settings({keys.PLAN_START_DATE: start, keys.PLAN_END_DATE: end})
    return start, end


def _school_day_map(ctx: PlanContext, fiscal_year: int, start: date, end: date, weekdays: list[int]):
    fy_start, fy_end = fiscal_year_range(fiscal_year)
    clipped_start, clipped_end = max(start, fy_start), min(end, fy_end)
    if clipped_start > clipped_end:
        logger.warning(
            "Planning range %s..%s does not overlap FY%d; no school days selected",
            format_input_date(start), format_input_date(end), fiscal_year,
        )
        return {grade: [] for grade in GRADES}
    return ctx.school_day_map(clipped_start, clipped_end, weekdays)


def sync_module_hours(
    ctx: PlanContext,
    base_date: Any = None,
    planning_range: tuple[Any, Any] | None = None,
    *,
    save: bool = True,
) -> SyncResult:
    """Rebuild the plan from targets and exceptions and rewrite every derived output.

    Safe to repeat: identical inputs produce identical sheet contents.
    """
    base = current_or_next_saturday() if base_date is None else _require_date(base_date, "基準日")
    preserved = _validate_range(*planning_range) if planning_range is not None else None
    fiscal_year = fiscal_year_of(base)

    ctx.prepare()
    control = ctx.control
    previously_generated = bool(ctx.settings_map().get(keys.LAST_GENERATED_AT))
    control.ensure_default_targets(fiscal_year)

    weekdays = ctx.enabled_weekdays()
    range_start, range_end = preserved or resolve_planning_range(ctx, base)

    targets = control.load_targets(fiscal_year)
    school_days = _school_day_map(ctx, fiscal_year, range_start, range_end, weekdays)
    build = build_daily_plan(
        fiscal_year,
        base,
        targets,
        school_days,
        start_date=range_start,
        end_date=range_end,
    )

    exception_totals = reduce_exceptions(control.read_exception_rows(), fiscal_year, base)
    grade_totals = build_grade_totals(build.totals_by_grade, exception_totals)

    write_cumulative_module_columns(ctx.workbook, grade_totals, base)
    _write_summary(ctx, build, targets, weekdays, base)

    ctx.update_settings(
        {
            keys.LAST_GENERATED_AT: datetime.now(),
            keys.LAST_DAILY_PLAN_COUNT: build.daily_plan_count,
            keys.PLAN_START_DATE: range_start,
            keys.PLAN_END_DATE: range_end,
        }
    )
    if save and ctx.workbook_path is not None:
        ctx.save()

    logger.info(
        "Module plan merged into cumulative report (base date %s, FY%d, %d daily entries)",
        format_input_date(base), fiscal_year, build.daily_plan_count,
    )
    return SyncResult(
        base_date=base,
        fiscal_year=fiscal_year,
        start_date=range_start,
        end_date=range_end,
        daily_plan_count=build.daily_plan_count,
        lifecycle=PlanLifecycle.RECOMPUTED if previously_generated else PlanLifecycle.PLANNED,
        grade_totals=grade_totals,
        reserve_by_grade=dict(build.reserve_by_grade),
        skipped_months=list(build.skipped_months),
    )


def _write_summary(ctx: PlanContext, build: PlanBuild, targets, weekdays, base: date) -> None:
    # The summary sheet is presentation only; a failure must not undo the recompute.
    try:
        write_plan_summary(ctx.workbook, build, targets, weekdays, base)
    except Exception:
        logger.exception("Failed to update the plan summary sheet")


def refresh_module_planning(ctx: PlanContext) -> str:
    result = sync_module_hours(ctx)
    return "\n".join(
        [
            "モジュール学習の再集計が完了しました。",
            f"基準日: {format_input_date(result.base_date)}",
            f"対象年度: {result.fiscal_year}年度",
            f"日次計画件数（再集計結果）: {result.daily_plan_count}件",
        ]
    )


# ---------------------------------------------------------------------------
# Editing operations
# ---------------------------------------------------------------------------


def save_annual_targets(
    ctx: PlanContext,
    fiscal_year: Any,
    targets: Iterable[Mapping[str, Any]],
    base_date: Any = None,
) -> str:
    fy = _validate_fiscal_year(fiscal_year)
    parsed = validate_targets(fy, targets)
    base = None if base_date is None else _require_date(base_date, "基準日")

    ctx.prepare()
    ctx.control.save_targets(fy, parsed)
    result = sync_module_hours(ctx, base)

    return "\n".join(
        [
            "年間目標を保存して再集計しました。",
            f"対象年度: {fy}年度",
            "目標: " + " / ".join(
                f"{g}年 {sessions_to_units(parsed[g].target_sessions):g}コマ" for g in GRADES
            ),
            f"基準日: {format_input_date(result.base_date)}",
        ]
    )


def add_module_exception(
    ctx: PlanContext,
    date_value: Any,
    grade: Any,
    delta_sessions: Any,
    reason: str = "",
    note: str = "",
    base_date: Any = None,
) -> str:
    exception_date = _require_date(date_value, "日付")
    grade_number = coerce_grade(grade)
    if grade_number is None or not is_valid_grade(grade_number):
        raise ValueError("学年は1〜6で入力してください。")
    delta = coerce_delta(delta_sessions)
    if delta is None or delta == 0:
        raise ValueError("差分値は0以外の数値を入力してください。")
    base = None if base_date is None else _require_date(base_date, "基準日")

    ctx.prepare()
    ctx.control.append_exceptions(
        [exception_to_row(exception_date, grade_number, delta, str(reason or "").strip(), str(note or "").strip())]
    )
    result = sync_module_hours(ctx, base)

    return "\n".join(
        [
            "実施差分を保存して再集計しました。",
            f"入力: {format_input_date(exception_date)} / {grade_number}年 / "
            f"{format_signed_sessions_as_mixed_fraction(delta)}コマ（{delta * SESSION_MINUTES}分）",
            f"基準日: {format_input_date(result.base_date)}",
        ]
    )


def save_planning_range(ctx: PlanContext, start_date: Any, end_date: Any) -> str:
    start, end = _validate_range(start_date, end_date)
    fiscal_years = collect_fiscal_years(start, end)

    ctx.prepare()
    for fy in fiscal_years:
        ctx.control.ensure_default_targets(fy)
    ctx.update_settings({keys.PLAN_START_DATE: start, keys.PLAN_END_DATE: end})
    result = sync_module_hours(ctx, end, planning_range=(start, end))

    return "\n".join(
        [
            "モジュール学習計画を更新しました。",
            f"対象期間: {format_input_date(start)} ～ {format_input_date(end)}",
            "対象年度: " + ", ".join(str(fy) for fy in fiscal_years),
            f"生成件数: {result.daily_plan_count}件",
        ]
    )


def save_enabled_weekdays(ctx: PlanContext, weekdays: Iterable[Any]) -> str:
    chosen = validate_weekdays(weekdays)

    ctx.update_settings({keys.WEEKDAYS_ENABLED: serialize_weekdays(chosen)})
    ctx.invalidate_school_days()
    result = sync_module_hours(ctx)

    return "\n".join(
        [
            "実施曜日を保存して再集計しました。",
            "実施曜日: " + serialize_weekdays(chosen),
            f"日次計画件数: {result.daily_plan_count}件",
        ]
    )


# ---------------------------------------------------------------------------
# Read-only views
# ---------------------------------------------------------------------------


def _target_view(target: AnnualTarget) -> dict[str, Any]:
    return {
        "grade": target.grade,
        "mode": target.mode,
        "annual_units": target.annual_units,
        "monthly_units": {str(m): v for m, v in (target.monthly_units or {}).items()},
        "target_sessions": target.target_sessions,
        "note": target.note,
    }


def get_planning_state(ctx: PlanContext, base_date: Any = None) -> dict[str, Any]:
    """Everything the planning dialog shows, for the base date's fiscal year."""
    base = current_or_next_saturday() if base_date is None else _require_date(base_date, "基準日")
    fiscal_year = fiscal_year_of(base)
    fy_start, fy_end = fiscal_year_range(fiscal_year)

    ctx.prepare()
    control = ctx.control
    control.ensure_default_targets(fiscal_year)
    start, end = resolve_planning_range(ctx, base)
    settings = ctx.settings_map()

    exception_rows = control.read_exception_rows()
    targets = control.load_targets(fiscal_year)
    last_generated = settings.get(keys.LAST_GENERATED_AT) or ""
    try:
        daily_count = max(int(float(settings.get(keys.LAST_DAILY_PLAN_COUNT) or 0)), 0)
    except (ValueError, OverflowError):
        daily_count = 0

    if not targets:
        lifecycle = PlanLifecycle.UNINITIALIZED
    elif not last_generated:
        lifecycle = PlanLifecycle.DEFAULT_TARGET_CREATED
    else:
        lifecycle = PlanLifecycle.PLANNED

    return {
        "base_date": format_input_date(base),
        "fiscal_year": fiscal_year,
        "fiscal_year_start_date": format_input_date(fy_start),
        "fiscal_year_end_date": format_input_date(fy_end),
        "start_date": format_input_date(start),
        "end_date": format_input_date(end),
        "enabled_weekdays": ctx.enabled_weekdays(),
        "last_generated_at": last_generated or NOT_GENERATED_LABEL,
        "target_record_count": control.count_target_rows(fiscal_year),
        "daily_plan_record_count": daily_count,
        "exception_record_count": control.count_exception_rows(fiscal_year),
        "targets": [_target_view(targets[g]) for g in sorted(targets)],
        "recent_exceptions": [
            {
                "date": format_input_date(row.date),
                "grade": row.grade,
                "delta_sessions": row.delta_sessions,
                "delta_display": format_signed_sessions_as_mixed_fraction(row.delta_sessions),
                "reason": row.reason,
                "note": row.note,
            }
            for row in recent_exceptions(exception_rows, fiscal_year, RECENT_EXCEPTION_LIMIT)
        ],
        "lifecycle": lifecycle.value,
    }


def calculate_cumulative_hours(ctx: PlanContext, end_date: Any = None) -> str:
    """Count lesson/event hours up to the current or next Saturday, then resync module hours."""
    end = current_or_next_saturday() if end_date is None else _require_date(end_date, "基準日")
    counts = count_categories(ctx.schedule_rows(), end)
    title = write_category_counts(ctx.workbook, counts, end)
    sync_module_hours(ctx, end)
    return f"{title}を計算しました。モジュール学習計画も更新済みです。"
