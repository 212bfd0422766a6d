"""Read the annual schedule sheet into ScheduleRow records."""

from __future__ import annotations

import logging
from typing import Any

from modplan_core.calendar_utils import normalize_to_date
from modplan_core.errors import SheetNotFoundError
from modplan_core.school_days import ScheduleRow

from .schemas import (
    ANNUAL_SCHEDULE_SHEET,
    SCHEDULE_DATA_END,
    SCHEDULE_DATA_START,
    SCHEDULE_DATE_INDEX,
    SCHEDULE_GRADE_INDEX,
)

logger = logging.getLogger(__name__)


def get_sheet(workbook, name: str):
    """Worksheet by name. Raises SheetNotFoundError if missing."""
    if name not in workbook.sheetnames:
        raise SheetNotFoundError(name)
    return workbook[name]


def _cell(values: tuple[Any, ...], index: int) -> Any:
    return values[index] if index < len(values) else None


def parse_schedule_values(rows) -> list[ScheduleRow]:
    """Convert raw row tuples to ScheduleRows. Rows without a date are dropped."""
    parsed: list[ScheduleRow] = []
    for values in rows:
        if not values:
            continue
        d = normalize_to_date(_cell(values, SCHEDULE_DATE_INDEX))
        if d is None:
            continue
        markers = tuple(_cell(values, i) for i in range(SCHEDULE_DATA_START, SCHEDULE_DATA_END + 1))
        parsed.append(ScheduleRow(date=d, grade=_cell(values, SCHEDULE_GRADE_INDEX), markers=markers))
    return parsed


def load_schedule_rows(workbook) -> list[ScheduleRow]:
    """Bulk-read every row of the annual schedule sheet in one pass.

    Raises SheetNotFoundError if the sheet is missing.
    """
    sheet = get_sheet(workbook, ANNUAL_SCHEDULE_SHEET)
    rows = parse_schedule_values(sheet.iter_rows(min_row=1, values_only=True))
    logger.debug("Loaded %d dated schedule rows from %s", len(rows), ANNUAL_SCHEDULE_SHEET)
    return rows
