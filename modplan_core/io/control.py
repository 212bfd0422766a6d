"""Versioned plan store on the control sheet: annual targets and the exception ledger.

The sheet holds two labelled sections found by scanning column A for marker
strings. Row 1 carries the data version. Layout::

    1   MODULE_CONTROL_VERSION | CONTROL_V4
    3   PLAN_TABLE
    4   fiscal_year | grade | plan_mode | m4 .. m3 | annual_koma | note
    5.. one row per (fiscal_year, grade)
    40  EXCEPTIONS_TABLE
    41  date | grade | delta_sessions | reason | note
    42.. append-only exception rows

Any row insertion invalidates the memoized layout before the next read.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from modplan_core.allocator import AnnualTarget
from modplan_core.calendar_utils import FISCAL_MONTHS, fiscal_year_of, normalize_to_date, round_half_up
from modplan_core.constants import (
    FISCAL_YEAR_MAX,
    FISCAL_YEAR_MIN,
    GRADES,
    PLAN_MODE_ANNUAL,
    PLAN_MODE_MONTHLY,
    is_valid_grade,
)
from modplan_core.school_days import is_non_empty_cell

from .schemas import (
    CONTROL_VERSION_KEY,
    DATA_VERSION,
    DEFAULT_EXCEPTIONS_MARKER_ROW,
    DEFAULT_PLAN_MARKER_ROW,
    EXCEPTION_COLS,
    EXCEPTIONS_MARKER,
    EXCEPTIONS_MIN_GAP,
    LEGACY_CYCLE_COLS,
    LEGACY_GRADE_START_INDEX,
    MONTH_COLS,
    PLAN_COLS,
    PLAN_MARKER,
    cell_text,
    to_float,
    to_int_or_none,
)

logger = logging.getLogger(__name__)

_MONTH_OFFSET = PLAN_COLS.index(MONTH_COLS[0])
_ANNUAL_INDEX = PLAN_COLS.index("annual_koma")
_NOTE_INDEX = PLAN_COLS.index("note")


@dataclass(frozen=True)
class ControlLayout:
    plan_marker_row: int
    exceptions_marker_row: int

    @property
    def plan_header_row(self) -> int:
        return self.plan_marker_row + 1

    @property
    def plan_data_start_row(self) -> int:
        return self.plan_marker_row + 2

    @property
    def plan_capacity(self) -> int:
        return max(self.exceptions_marker_row - self.plan_data_start_row, 0)

    @property
    def exceptions_header_row(self) -> int:
        return self.exceptions_marker_row + 1

    @property
    def exceptions_data_start_row(self) -> int:
        return self.exceptions_marker_row + 2


# ---------------------------------------------------------------------------
# Row <-> AnnualTarget conversion
# ---------------------------------------------------------------------------


def _number_cell(value: float) -> int | float:
    return int(value) if float(value).is_integer() else round(float(value), 6)


def target_to_row(target: AnnualTarget) -> list[Any]:
    months: list[Any] = [None] * len(MONTH_COLS)
    if target.mode == PLAN_MODE_MONTHLY and target.monthly_units:
        months = [_number_cell(target.monthly_units.get(m, 0)) for m in FISCAL_MONTHS]
    return [
        target.fiscal_year,
        target.grade,
        target.mode,
        *months,
        _number_cell(target.annual_units),
        target.note or "",
    ]


def row_to_target(row: list[Any]) -> AnnualTarget:
    """Parse one plan row. Raises ValueError for a malformed row."""
    fiscal_year = to_int_or_none(row[0])
    if fiscal_year is None or not FISCAL_YEAR_MIN <= fiscal_year <= FISCAL_YEAR_MAX:
        raise ValueError(f"invalid fiscal year {row[0]!r}")
    grade = to_int_or_none(row[1])
    if not is_valid_grade(grade):
        raise ValueError(f"invalid grade {row[1]!r}")
    mode = cell_text(row[2]).lower() or PLAN_MODE_ANNUAL
    if mode == PLAN_MODE_MONTHLY:
        monthly = {
            m: to_float(row[_MONTH_OFFSET + i]) for i, m in enumerate(FISCAL_MONTHS)
        }
        return AnnualTarget(fiscal_year, grade, mode, monthly_units=monthly, note=cell_text(row[_NOTE_INDEX]))
    return AnnualTarget(
        fiscal_year,
        grade,
        mode,
        annual_units=to_float(row[_ANNUAL_INDEX]),
        note=cell_text(row[_NOTE_INDEX]),
    )


def default_target_rows(fiscal_year: int) -> list[list[Any]]:
    return [target_to_row(AnnualTarget.default(fiscal_year, grade)) for grade in GRADES]


def is_legacy_cycle_row(row: list[Any]) -> bool:
    cycle_order = to_int_or_none(row[1])
    start_month = to_int_or_none(row[2])
    end_month = to_int_or_none(row[3])
    return (
        cycle_order is not None and 1 <= cycle_order <= 10
        and start_month is not None and 1 <= start_month <= 12
        and end_month is not None and 1 <= end_month <= 12
    )


def convert_cycle_rows(rows: Iterable[list[Any]]) -> list[list[Any]]:
    """Sum legacy per-cycle grade units into one annual row per (fiscal_year, grade)."""
    units: dict[int, dict[int, float]] = {}
    notes: dict[int, list[str]] = defaultdict(list)
    for row in rows:
        if not any(is_non_empty_cell(v) for v in row):
            continue
        fiscal_year = to_int_or_none(row[0])
        if fiscal_year is None or not FISCAL_YEAR_MIN <= fiscal_year <= FISCAL_YEAR_MAX:
            continue
        by_grade = units.setdefault(fiscal_year, {g: 0.0 for g in GRADES})
        for grade in GRADES:
            index = LEGACY_GRADE_START_INDEX + grade - 1
            if index < len(row):
                by_grade[grade] += to_float(row[index])
        note_index = len(LEGACY_CYCLE_COLS) - 1
        if note_index < len(row) and is_non_empty_cell(row[note_index]):
            notes[fiscal_year].append(str(row[note_index]))

    converted: list[list[Any]] = []
    for fiscal_year in sorted(units):
        note = "migrated: " + "; ".join(notes[fiscal_year]) if notes[fiscal_year] else "migrated from cycles"
        for grade in GRADES:
            target = AnnualTarget(
                fiscal_year,
                grade,
                PLAN_MODE_ANNUAL,
                annual_units=float(max(round_half_up(units[fiscal_year][grade]), 0)),
                note=note,
            )
            converted.append(target_to_row(target))
    return converted


# ---------------------------------------------------------------------------
# Control sheet
# ---------------------------------------------------------------------------


class ControlSheet:
    """Plan store backed by an openpyxl worksheet."""

    def __init__(self, worksheet) -> None:
        self.ws = worksheet
        self._layout: ControlLayout | None = None

    # -- low-level cell access ----------------------------------------------

    def _value(self, row: int, column: int) -> Any:
        if row > self.ws.max_row or column > self.ws.max_column:
            return None
        return self.ws.cell(row=row, column=column).value

    def _read_block(self, first_row: int, last_row: int, width: int) -> list[list[Any]]:
        if last_row < first_row:
            return []
        return [
            [self._value(r, c) for c in range(1, width + 1)]
            for r in range(first_row, last_row + 1)
        ]

    def _write_row(self, row: int, values: list[Any]) -> None:
        for column, value in enumerate(values, start=1):
            self.ws.cell(row=row, column=column, value=value)

    def _clear_block(self, first_row: int, row_count: int, width: int) -> None:
        for r in range(first_row, first_row + row_count):
            for c in range(1, width + 1):
                if r <= self.ws.max_row and c <= self.ws.max_column:
                    self.ws.cell(row=r, column=c).value = None

    def _insert_rows(self, before_row: int, amount: int) -> None:
        self.ws.insert_rows(before_row, amount)
        self.invalidate_layout()

    def last_content_row(self) -> int:
        last = 0
        for index, values in enumerate(self.ws.iter_rows(values_only=True), start=1):
            if any(is_non_empty_cell(v) for v in values):
                last = index
        return last

    # -- layout ---------------------------------------------------------------

    def invalidate_layout(self) -> None:
        self._layout = None

    def _find_markers(self) -> tuple[int, int]:
        plan_row = -1
        exceptions_row = -1
        for row in range(1, self.ws.max_row + 1):
            text = cell_text(self._value(row, 1))
            if text == PLAN_MARKER and plan_row < 0:
                plan_row = row
            if text == EXCEPTIONS_MARKER:
                exceptions_row = row
        return plan_row, exceptions_row

    def layout(self) -> ControlLayout:
        """Locate both sections, repairing missing or misplaced markers."""
        if self._layout is not None:
            return self._layout

        plan_row, exceptions_row = self._find_markers()
        if plan_row < 1:
            plan_row = DEFAULT_PLAN_MARKER_ROW
            logger.warning("Plan marker missing on control sheet; recreating at row %d", plan_row)
            self.ws.cell(row=plan_row, column=1, value=PLAN_MARKER)

        if exceptions_row < 1 or exceptions_row <= plan_row + 2:
            repaired = max(
                DEFAULT_EXCEPTIONS_MARKER_ROW,
                plan_row + EXCEPTIONS_MIN_GAP,
                self.last_content_row() + 2,
            )
            if exceptions_row >= 1:
                logger.warning(
                    "Exceptions marker at row %d overlaps plan section; moving to row %d",
                    exceptions_row, repaired,
                )
            self.ws.cell(row=repaired, column=1, value=EXCEPTIONS_MARKER)
            exceptions_row = repaired

        self._layout = ControlLayout(plan_marker_row=plan_row, exceptions_marker_row=exceptions_row)
        return self._layout

    def ensure_layout(self) -> ControlLayout:
        """Write the version row, both markers and both header rows."""
        self._write_row(1, [CONTROL_VERSION_KEY, DATA_VERSION])
        layout = self.layout()
        self.ws.cell(row=layout.plan_marker_row, column=1, value=PLAN_MARKER)
        self._write_row(layout.plan_header_row, PLAN_COLS)
        self.ws.cell(row=layout.exceptions_marker_row, column=1, value=EXCEPTIONS_MARKER)
        self._write_row(layout.exceptions_header_row, EXCEPTION_COLS)
        return layout

    # -- annual targets -------------------------------------------------------

    def read_all_target_rows(self) -> list[list[Any]]:
        layout = self.layout()
        rows = self._read_block(
            layout.plan_data_start_row,
            layout.exceptions_marker_row - 1,
            len(PLAN_COLS),
        )
        return [row for row in rows if any(is_non_empty_cell(v) for v in row)]

    def read_target_rows(self, fiscal_year: int) -> list[list[Any]]:
        return [row for row in self.read_all_target_rows() if to_int_or_none(row[0]) == fiscal_year]

    def count_target_rows(self, fiscal_year: int) -> int:
        return len(self.read_target_rows(fiscal_year))

    def load_targets(self, fiscal_year: int) -> dict[int, AnnualTarget]:
        """Targets keyed by grade. Malformed rows are skipped with a warning."""
        targets: dict[int, AnnualTarget] = {}
        for row in self.read_target_rows(fiscal_year):
            try:
                target = row_to_target(row)
            except ValueError as exc:
                logger.warning("Skipping plan row for FY%d: %s", fiscal_year, exc)
                continue
            if target.grade in targets:
                logger.warning("Duplicate plan row for FY%d grade %d; later row wins", fiscal_year, target.grade)
            targets[target.grade] = target
        return targets

    def replace_fiscal_year(self, fiscal_year: int, rows: list[list[Any]]) -> None:
        """Replace every plan row of ``fiscal_year`` with ``rows``."""
        kept = [row for row in self.read_all_target_rows() if to_int_or_none(row[0]) != fiscal_year]
        merged = sorted(
            kept + [list(r) for r in rows],
            key=lambda r: (to_int_or_none(r[0]) or 0, to_int_or_none(r[1]) or 0),
        )

        layout = self.layout()
        if len(merged) > layout.plan_capacity:
            self._insert_rows(layout.exceptions_marker_row, len(merged) - layout.plan_capacity)
            layout = self.layout()

        self._clear_block(layout.plan_data_start_row, layout.plan_capacity, len(PLAN_COLS))
        for offset, row in enumerate(merged):
            self._write_row(layout.plan_data_start_row + offset, row)

    def ensure_default_targets(self, fiscal_year: int) -> bool:
        """Create six annual default rows when ``fiscal_year`` has none."""
        if self.read_target_rows(fiscal_year):
            return False
        self.replace_fiscal_year(fiscal_year, default_target_rows(fiscal_year))
        logger.info("Created default annual targets for FY%d", fiscal_year)
        return True

    def save_targets(self, fiscal_year: int, targets: Mapping[int, AnnualTarget]) -> None:
        self.replace_fiscal_year(fiscal_year, [target_to_row(targets[g]) for g in sorted(targets)])

    # -- exceptions -----------------------------------------------------------

    def read_exception_rows(self) -> list[dict[str, Any]]:
        layout = self.layout()
        start = layout.exceptions_data_start_row
        rows = []
        for offset, values in enumerate(
            self._read_block(start, self.last_content_row(), len(EXCEPTION_COLS))
        ):
            if not any(is_non_empty_cell(v) for v in values):
                continue
            record = dict(zip(EXCEPTION_COLS, values))
            record["row_number"] = start + offset
            rows.append(record)
        return rows

    def first_empty_exception_row(self) -> int:
        layout = self.layout()
        start = layout.exceptions_data_start_row
        last = self.last_content_row()
        for offset, values in enumerate(self._read_block(start, last, len(EXCEPTION_COLS))):
            if not any(is_non_empty_cell(v) for v in values):
                return start + offset
        return max(last + 1, start)

    def append_exceptions(self, rows: Iterable[list[Any]]) -> None:
        for row in rows:
            self._write_row(self.first_empty_exception_row(), list(row))

    def count_exception_rows(self, fiscal_year: int) -> int:
        count = 0
        for record in self.read_exception_rows():
            d = normalize_to_date(record.get("date"))
            if d is not None and fiscal_year_of(d) == fiscal_year:
                count += 1
        return count

    # -- migration ------------------------------------------------------------

    def migrate_legacy_cycle_rows(self) -> int:
        """Convert pre-V4 cycle rows in the plan section. Returns rows written."""
        layout = self.layout()
        width = len(LEGACY_CYCLE_COLS)
        values = self._read_block(layout.plan_data_start_row, layout.exceptions_marker_row - 1, width)
        non_empty = [row for row in values if any(is_non_empty_cell(v) for v in row)]
        if not non_empty or not any(is_legacy_cycle_row(row) for row in non_empty):
            return 0

        logger.info("Migrating %d legacy cycle rows to annual targets", len(non_empty))
        converted = convert_cycle_rows(non_empty)
        self._clear_block(layout.plan_data_start_row, layout.plan_capacity, max(width, len(PLAN_COLS)))
        self._write_row(layout.plan_header_row, PLAN_COLS)
        if len(converted) > layout.plan_capacity:
            self._insert_rows(layout.exceptions_marker_row, len(converted) - layout.plan_capacity)
            layout = self.layout()
        for offset, row in enumerate(converted):
            self._write_row(layout.plan_data_start_row + offset, row)
        return len(converted)


def exception_to_row(d: date, grade: int, delta_sessions: int, reason: str = "", note: str = "") -> list[Any]:
    return [d, grade, delta_sessions, reason or "", note or ""]
