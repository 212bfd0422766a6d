"""Invocation-scoped context: workbook, settings and memoized lookups.

One PlanContext is created per operation and passed explicitly through the
call chain. Memos live only on the instance; structural changes must be
followed by the matching ``invalidate_*`` call before the next read.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from pathlib import Path
from typing import Any

from modplan_core.io.control import ControlSheet
from modplan_core.io.reader import load_schedule_rows
from modplan_core.io.schemas import CONTROL_SHEET, DATA_VERSION
from modplan_core.school_days import ScheduleRow, build_school_day_map, extract_school_days, resolve_enabled_weekdays

from . import settings as keys
from .config import RuntimeConfig, default_settings_path
from .settings import SettingsStore, parse_weekdays

logger = logging.getLogger(__name__)


def _get_openpyxl():
    try:
        from openpyxl import load_workbook
        return load_workbook
    except ImportError as exc:
        raise ImportError("openpyxl is required to open the workbook: pip install openpyxl") from exc


class PlanContext:
    def __init__(self, workbook, settings: SettingsStore, workbook_path: Path | None = None) -> None:
        self.workbook = workbook
        self.settings = settings
        self.workbook_path = Path(workbook_path) if workbook_path else None
        self._settings_map: dict[str, str] | None = None
        self._control: ControlSheet | None = None
        self._schedule_rows: list[ScheduleRow] | None = None
        self._school_days: dict[tuple, dict[int, list[date]]] = {}
        self._prepared = False

    @classmethod
    def open(cls, workbook_path: str | Path, settings_path: str | Path | None = None) -> "PlanContext":
        """Load ``workbook_path``. Raises FileNotFoundError if it does not exist."""
        path = Path(workbook_path)
        if not path.exists():
            raise FileNotFoundError(f"Workbook not found: {path}")
        load_workbook = _get_openpyxl()
        workbook = load_workbook(path)
        store = SettingsStore(Path(settings_path) if settings_path else default_settings_path(path))
        return cls(workbook, store, path)

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> "PlanContext":
        return cls.open(config.workbook_path, config.settings_path)

    # -- settings -------------------------------------------------------------

    def settings_map(self) -> dict[str, str]:
        if self._settings_map is None:
            self._settings_map = self.settings.read()
        return self._settings_map

    def invalidate_settings(self) -> None:
        self._settings_map = None

    def update_settings(self, updates: Mapping[str, Any]) -> None:
        self.settings.upsert(updates)
        self.invalidate_settings()

    def enabled_weekdays(self) -> list[int]:
        return parse_weekdays(self.settings_map().get(keys.WEEKDAYS_ENABLED))

    # -- control sheet ----------------------------------------------------------

    @property
    def control(self) -> ControlSheet:
        if self._control is None:
            if CONTROL_SHEET in self.workbook.sheetnames:
                worksheet = self.workbook[CONTROL_SHEET]
            else:
                worksheet = self.workbook.create_sheet(CONTROL_SHEET)
                logger.info("Created control sheet %s", CONTROL_SHEET)
            self._control = ControlSheet(worksheet)
        return self._control

    def invalidate_layout(self) -> None:
        if self._control is not None:
            self._control.invalidate_layout()

    def prepare(self) -> None:
        """Initialize settings keys, migrate legacy plan rows and repair the control layout."""
        if self._prepared:
            return
        added = self.settings.ensure_keys()
        if added:
            self.invalidate_settings()
        control = self.control
        if self.settings_map().get(keys.DATA_VERSION, "") != DATA_VERSION:
            migrated = control.migrate_legacy_cycle_rows()
            if migrated:
                logger.info("Migrated legacy plan rows into %d annual targets", migrated)
            self.update_settings({keys.DATA_VERSION: DATA_VERSION})
        control.ensure_layout()
        self._hide_control_sheet()
        self._prepared = True

    def _hide_control_sheet(self) -> None:
        ws = self.control.ws
        others_visible = any(
            sheet.sheet_state == "visible" for sheet in self.workbook.worksheets if sheet is not ws
        )
        if not others_visible:
            return
        try:
            ws.sheet_state = "hidden"
        except Exception:
            logger.warning("Failed to hide control sheet", exc_info=True)

    # -- schedule -------------------------------------------------------------

    def schedule_rows(self) -> list[ScheduleRow]:
        if self._schedule_rows is None:
            self._schedule_rows = load_schedule_rows(self.workbook)
        return self._schedule_rows

    def school_day_map(
        self, start_date: date, end_date: date, enabled_weekdays: Iterable[int] | None = None
    ) -> dict[int, list[date]]:
        weekdays = resolve_enabled_weekdays(enabled_weekdays)
        key = (start_date, end_date, tuple(sorted(weekdays)))
        if key not in self._school_days:
            days = extract_school_days(self.schedule_rows(), start_date, end_date, weekdays)
            self._school_days[key] = build_school_day_map(days)
        return self._school_days[key]

    def invalidate_school_days(self) -> None:
        self._schedule_rows = None
        self._school_days.clear()

    # -- persistence ----------------------------------------------------------

    def save(self, path: str | Path | None = None) -> Path:
        target = Path(path) if path else self.workbook_path
        if target is None:
            raise ValueError("No workbook path to save to")
        self.workbook.save(target)
        return target
