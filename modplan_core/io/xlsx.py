"""Render module totals into the cumulative report and the plan summary sheet."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date, timedelta

from modplan_core.allocator import AnnualTarget, PlanBuild
from modplan_core.calendar_utils import (
    FISCAL_MONTHS,
    Weekday,
    WEEKDAY_LABELS,
    format_input_date,
    week_start_monday,
    weekday_label,
)
from modplan_core.constants import DISPLAY_HEADER, DONE_LABEL, GRADES, WEEKLY_LABEL
from modplan_core.cumulative import Category, format_cumulative_title
from modplan_core.rollup import GradeTotals, build_display_value, format_reserve
from modplan_core.units import format_sessions_as_mixed_fraction, sessions_to_units

from .reader import get_sheet
from .schemas import (
    CUMULATIVE_GRADE_START_ROW,
    CUMULATIVE_HEADER_ROW,
    CUMULATIVE_SHEET,
    CUMULATIVE_TITLE_CELL,
    DAILY_COLS,
    DAILY_SECTION_TITLE,
    MODULE_DIFF_COLUMN,
    MODULE_DISPLAY_COLUMN,
    MODULE_HIDDEN_HEADERS,
    MODULE_PLAN_COLUMN,
    PLAN_SUMMARY_SHEET,
    SUMMARY_HEADER_ROW,
    SUMMARY_TITLE,
    cell_text,
)

logger = logging.getLogger(__name__)

_GRADE_ROWS = len(GRADES)


def _get_openpyxl():
    try:
        from openpyxl.styles import Alignment, Font, PatternFill
        from openpyxl.utils import get_column_letter
        return Alignment, Font, PatternFill, get_column_letter
    except ImportError as exc:
        raise ImportError("openpyxl is required for workbook output: pip install openpyxl") from exc


# ---------------------------------------------------------------------------
# Cumulative report
# ---------------------------------------------------------------------------


def break_merges_in_range(ws, min_row: int, min_col: int, max_row: int, max_col: int) -> int:
    """Unmerge every merged range intersecting the rectangle. Failures are logged."""
    broken = 0
    try:
        for merged in list(ws.merged_cells.ranges):
            if (
                merged.max_row < min_row or merged.min_row > max_row
                or merged.max_col < min_col or merged.min_col > max_col
            ):
                continue
            ws.unmerge_cells(merged.coord)
            broken += 1
    except Exception:
        logger.warning("Failed to unmerge cells on %s", ws.title, exc_info=True)
    return broken


def cleanup_stale_display_columns(ws, display_column: int = MODULE_DISPLAY_COLUMN) -> list[int]:
    """Clear old display columns right of ``display_column``.

    A column is stale when its header is blank or equals the display header and
    at least one grade cell contains the weekly label.
    """
    cleared: list[int] = []
    last_row = CUMULATIVE_GRADE_START_ROW + _GRADE_ROWS - 1
    for col in range(display_column + 1, ws.max_column + 1):
        header = cell_text(ws.cell(row=CUMULATIVE_HEADER_ROW, column=col).value)
        if header not in ("", DISPLAY_HEADER):
            continue
        has_display = any(
            WEEKLY_LABEL in cell_text(ws.cell(row=r, column=col).value)
            for r in range(CUMULATIVE_GRADE_START_ROW, last_row + 1)
        )
        if not has_display:
            continue
        for r in range(CUMULATIVE_HEADER_ROW, last_row + 1):
            ws.cell(row=r, column=col).value = None
        cleared.append(col)
        logger.info("Cleared stale module display column %d on %s", col, ws.title)
    return cleared


def _set_columns_hidden(ws, first: int, last: int, hidden: bool) -> None:
    _, _, _, get_column_letter = _get_openpyxl()
    try:
        for col in range(first, last + 1):
            ws.column_dimensions[get_column_letter(col)].hidden = hidden
    except Exception:
        action = "hide" if hidden else "show"
        logger.warning("Failed to %s columns %d-%d on %s", action, first, last, ws.title, exc_info=True)


def write_cumulative_module_columns(workbook, grade_totals: Mapping[int, GradeTotals], base_date: date) -> None:
    """Write hidden M-O unit columns and the visible P display column.

    Raises SheetNotFoundError if the cumulative sheet is missing.
    """
    ws = get_sheet(workbook, CUMULATIVE_SHEET)
    last_row = CUMULATIVE_GRADE_START_ROW + _GRADE_ROWS - 1

    break_merges_in_range(ws, CUMULATIVE_HEADER_ROW, MODULE_PLAN_COLUMN, last_row, MODULE_DISPLAY_COLUMN)
    cleanup_stale_display_columns(ws)

    for offset, header in enumerate(MODULE_HIDDEN_HEADERS):
        ws.cell(row=CUMULATIVE_HEADER_ROW, column=MODULE_PLAN_COLUMN + offset, value=header)
    ws.cell(row=CUMULATIVE_HEADER_ROW, column=MODULE_DISPLAY_COLUMN, value=DISPLAY_HEADER)

    for index, grade in enumerate(GRADES):
        row = CUMULATIVE_GRADE_START_ROW + index
        total = grade_totals[grade]
        values = [total.elapsed_planned_units, total.actual_units, total.diff_units]
        for offset, value in enumerate(values):
            ws.cell(row=row, column=MODULE_PLAN_COLUMN + offset, value=value)
        ws.cell(row=row, column=MODULE_DISPLAY_COLUMN, value=build_display_value(total))

    _set_columns_hidden(ws, MODULE_PLAN_COLUMN, MODULE_DIFF_COLUMN, True)
    _set_columns_hidden(ws, MODULE_DISPLAY_COLUMN, MODULE_DISPLAY_COLUMN, False)

    logger.info(
        "Updated module display column %d on %s (base date %s)",
        MODULE_DISPLAY_COLUMN, CUMULATIVE_SHEET, format_input_date(base_date),
    )


def write_category_counts(workbook, counts: Mapping[int, Mapping[Category, int]], end_date: date) -> str:
    """Write per-grade category counts (columns C-L) and the title cell. Returns the title."""
    ws = get_sheet(workbook, CUMULATIVE_SHEET)
    title = format_cumulative_title(end_date)
    ws[CUMULATIVE_TITLE_CELL] = title
    for index, grade in enumerate(GRADES):
        row = CUMULATIVE_GRADE_START_ROW + index
        for category in Category:
            ws.cell(row=row, column=category.column, value=counts[grade].get(category, 0))
    return title


# ---------------------------------------------------------------------------
# Plan summary sheet
# ---------------------------------------------------------------------------


def _reset_sheet(workbook, name: str):
    """Drop and recreate ``name`` at the same position so no stale cells or styles remain."""
    if name in workbook.sheetnames:
        existing = workbook[name]
        index = workbook.index(existing)
        workbook.remove(existing)
        return workbook.create_sheet(name, index)
    return workbook.create_sheet(name)


def _month_label(month: int) -> str:
    return f"{month}月"


def _weekday_names(enabled_weekdays: Iterable[int]) -> str:
    return "・".join(WEEKDAY_LABELS[Weekday(d)] for d in sorted(enabled_weekdays))


def schedule_status(d: date, base_date: date) -> str:
    """今週 inside the base date's week, 済 for earlier elapsed dates, blank otherwise."""
    week_start = week_start_monday(base_date)
    if week_start <= d <= week_start + timedelta(days=6):
        return WEEKLY_LABEL
    if d <= base_date:
        return DONE_LABEL
    return ""


def build_summary_rows(build: PlanBuild, targets: Mapping[int, AnnualTarget]) -> list[list]:
    """Grade x fiscal-month table rows in mixed fractions."""
    monthly: dict[int, dict[int, int]] = {grade: defaultdict(int) for grade in GRADES}
    for entry in build.entries:
        monthly[entry.grade][entry.date.month] += entry.sessions

    rows = []
    for grade in GRADES:
        row: list = [f"{grade}年"]
        total = 0
        for month in FISCAL_MONTHS:
            sessions = monthly[grade][month]
            total += sessions
            row.append(format_sessions_as_mixed_fraction(sessions) if sessions > 0 else "")
        row.append(format_sessions_as_mixed_fraction(total))
        target_sessions = build.target_sessions_by_grade.get(grade)
        if target_sessions is None and grade in targets:
            target_sessions = targets[grade].target_sessions
        row.append(sessions_to_units(target_sessions or 0))
        row.append(format_reserve(build.reserve_by_grade.get(grade, 0)))
        rows.append(row)
    return rows


def build_schedule_rows(build: PlanBuild, base_date: date) -> list[list]:
    """One row per planned date: 日付, 曜日, 区分, 1年..6年, 状況."""
    by_date: dict[date, dict[int, int]] = defaultdict(dict)
    labels: dict[date, set[str]] = defaultdict(set)
    for entry in build.entries:
        by_date[entry.date][entry.grade] = entry.sessions
        labels[entry.date].add(entry.cycle_label)

    rows = []
    for d in sorted(by_date):
        grades = by_date[d]
        rows.append([
            d,
            weekday_label(d),
            "/".join(sorted(labels[d])),
            *[grades.get(g) or "" for g in GRADES],
            schedule_status(d, base_date),
        ])
    return rows


def write_plan_summary(
    workbook,
    build: PlanBuild,
    targets: Mapping[int, AnnualTarget],
    enabled_weekdays: Iterable[int],
    base_date: date,
):
    """Rewrite the plan summary sheet from scratch. Returns the worksheet."""
    Alignment, Font, PatternFill, get_column_letter = _get_openpyxl()
    header_font = Font(bold=True)
    header_fill = PatternFill(start_color="F0F0F0", end_color="F0F0F0", fill_type="solid")
    deficit_fill = PatternFill(start_color="FEF2F2", end_color="FEF2F2", fill_type="solid")
    deficit_font = Font(bold=True, color="991B1B")
    center = Alignment(horizontal="center")

    ws = _reset_sheet(workbook, PLAN_SUMMARY_SHEET)

    ws.cell(row=1, column=1, value=SUMMARY_TITLE).font = Font(bold=True, size=14)
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=16)
    ws.cell(
        row=3,
        column=1,
        value=(
            f"年度: {build.fiscal_year}年度　　実施期間: "
            f"{format_input_date(build.start_date)} ～ {format_input_date(build.end_date)}"
        ),
    )
    ws.cell(
        row=4,
        column=1,
        value=f"実施曜日: {_weekday_names(enabled_weekdays)}　　1回15分（3回で1単位時間 = 45分）",
    )

    headers = ["学年", *[_month_label(m) for m in FISCAL_MONTHS], "合計", "年間目標", "予備/不足"]
    for col, name in enumerate(headers, start=1):
        cell = ws.cell(row=SUMMARY_HEADER_ROW, column=col, value=name)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = center

    data_start = SUMMARY_HEADER_ROW + 1
    for offset, row in enumerate(build_summary_rows(build, targets)):
        for col, value in enumerate(row, start=1):
            cell = ws.cell(row=data_start + offset, column=col, value=value)
            if col > 1:
                cell.alignment = center
        grade = GRADES[offset]
        if build.reserve_by_grade.get(grade, 0) < 0:
            cell = ws.cell(row=data_start + offset, column=len(headers))
            cell.fill = deficit_fill
            cell.font = deficit_font

    last_row = data_start + _GRADE_ROWS - 1
    schedule_rows = build_schedule_rows(build, base_date)
    if schedule_rows:
        section_row = last_row + 2
        ws.cell(row=section_row, column=1, value=DAILY_SECTION_TITLE).font = Font(bold=True, size=12)
        header_row = section_row + 1
        for col, name in enumerate(DAILY_COLS, start=1):
            cell = ws.cell(row=header_row, column=col, value=name)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = center
        for offset, row in enumerate(schedule_rows, start=1):
            for col, value in enumerate(row, start=1):
                cell = ws.cell(row=header_row + offset, column=col, value=value)
                if col == 1:
                    cell.number_format = "m/d"
                else:
                    cell.alignment = center
        last_row = header_row + len(schedule_rows)

    ws.cell(row=last_row + 2, column=1, value="※ 本シートは再集計時に自動更新されます")

    ws.column_dimensions["A"].width = 10
    for col in range(2, 14):
        ws.column_dimensions[get_column_letter(col)].width = 7
    for col in (14, 15, 16):
        ws.column_dimensions[get_column_letter(col)].width = 12

    logger.info("Updated plan summary sheet for FY%d (%d scheduled days)", build.fiscal_year, len(schedule_rows))
    return ws
