"""Namespaced key-value settings persisted as a JSON document.

Every key is stored with the ``MODULE_`` prefix so other tools may share the
file. Values are strings; dates serialize as ``YYYY-MM-DD``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any

from modplan_core.calendar_utils import DEFAULT_WEEKDAYS_ENABLED, SCHOOL_WEEKDAYS, format_input_date, normalize_to_date
from modplan_core.io.schemas import comma_join, comma_split

logger = logging.getLogger(__name__)

PREFIX = "MODULE_"

PLAN_START_DATE = "PLAN_START_DATE"
PLAN_END_DATE = "PLAN_END_DATE"
WEEKDAYS_ENABLED = "WEEKDAYS_ENABLED"
LAST_GENERATED_AT = "LAST_GENERATED_AT"
LAST_DAILY_PLAN_COUNT = "LAST_DAILY_PLAN_COUNT"
DATA_VERSION = "DATA_VERSION"

SETTING_KEYS = (
    PLAN_START_DATE,
    PLAN_END_DATE,
    WEEKDAYS_ENABLED,
    LAST_GENERATED_AT,
    LAST_DAILY_PLAN_COUNT,
    DATA_VERSION,
)


def _json_dump(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False, sort_keys=True)


def _json_load(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def serialize_weekdays(weekdays: Iterable[int]) -> str:
    return comma_join(sorted({int(d) for d in weekdays}))


def parse_weekdays(value: Any) -> list[int]:
    """Weekday codes from a comma-joined string; Mon/Wed/Fri when nothing valid remains."""
    allowed = {int(d) for d in SCHOOL_WEEKDAYS}
    chosen: set[int] = set()
    for part in comma_split(value):
        if part.isdigit() and int(part) in allowed:
            chosen.add(int(part))
    if not chosen:
        return [int(d) for d in DEFAULT_WEEKDAYS_ENABLED]
    return sorted(chosen)


def serialize_value(key: str, value: Any) -> str:
    if value is None:
        return ""
    if key == WEEKDAYS_ENABLED and not isinstance(value, str):
        return serialize_weekdays(value)
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    if isinstance(value, date):
        return format_input_date(value)
    return str(value)


class SettingsStore:
    """JSON-file settings with the ``MODULE_`` namespace."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        payload = _json_load(self.path)
        if not isinstance(payload, dict):
            raise ValueError(f"Settings file {self.path} must contain a JSON object")
        return payload

    def read(self) -> dict[str, str]:
        """Settings of this namespace, keys without the prefix."""
        return {
            key[len(PREFIX):]: "" if value is None else str(value)
            for key, value in self._load_all().items()
            if key.startswith(PREFIX)
        }

    def upsert(self, updates: Mapping[str, Any]) -> None:
        payload = self._load_all()
        for key, value in updates.items():
            payload[PREFIX + key] = serialize_value(key, value)
        _json_dump(self.path, payload)

    def ensure_keys(self) -> list[str]:
        """Create missing keys with empty values. Returns the keys added."""
        payload = self._load_all()
        added = [key for key in SETTING_KEYS if PREFIX + key not in payload]
        if added:
            for key in added:
                payload[PREFIX + key] = ""
            _json_dump(self.path, payload)
            logger.info("Initialized settings keys %s in %s", ", ".join(added), self.path)
        return added


def read_date(settings: Mapping[str, str], key: str) -> date | None:
    return normalize_to_date(settings.get(key))
