from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

WORKBOOK_ENV = "MODPLAN_WORKBOOK"
SETTINGS_ENV = "MODPLAN_SETTINGS_FILE"
LOG_LEVEL_ENV = "MODPLAN_LOG_LEVEL"

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080


@dataclass(frozen=True)
class RuntimeConfig:
    workbook_path: Path
    settings_path: Path


@dataclass(frozen=True)
class ServerConfig:
    host: str
    port: int
    api_key: str


def load_env(dotenv_path: str | Path | None = None) -> None:
    path = Path(dotenv_path) if dotenv_path else None
    if path and path.exists():
        load_dotenv(path)
        return
    load_dotenv()


def default_settings_path(workbook_path: Path) -> Path:
    return workbook_path.with_name(workbook_path.name + ".settings.json")


def log_level() -> str:
    return os.getenv(LOG_LEVEL_ENV, "INFO").strip().upper() or "INFO"


def runtime_config() -> RuntimeConfig:
    raw = os.getenv(WORKBOOK_ENV, "").strip()
    if not raw:
        raise ValueError(f"Missing workbook path. Set {WORKBOOK_ENV} to the school workbook (.xlsx).")
    workbook_path = Path(raw).expanduser().resolve()
    settings_raw = os.getenv(SETTINGS_ENV, "").strip()
    settings_path = (
        Path(settings_raw).expanduser().resolve() if settings_raw else default_settings_path(workbook_path)
    )
    return RuntimeConfig(workbook_path=workbook_path, settings_path=settings_path)


def server_config() -> ServerConfig:
    return ServerConfig(
        host=os.getenv("HOST", "").strip() or DEFAULT_HOST,
        port=int(os.getenv("PORT", "").strip() or DEFAULT_PORT),
        api_key=os.getenv("MCP_API_KEY", "").strip(),
    )
