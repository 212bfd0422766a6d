"""Tests for environment configuration."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from modplan.config import (
    LOG_LEVEL_ENV,
    SETTINGS_ENV,
    WORKBOOK_ENV,
    default_settings_path,
    load_env,
    log_level,
    runtime_config,
    server_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (WORKBOOK_ENV, SETTINGS_ENV, "MODPLAN_LOG_LEVEL", "MCP_API_KEY", "HOST", "PORT"):
        monkeypatch.delenv(name, raising=False)


class TestRuntimeConfig:
    def test_missing_workbook_raises(self):
        with pytest.raises(ValueError, match=WORKBOOK_ENV):
            runtime_config()

    def test_settings_path_defaults_next_to_workbook(self, monkeypatch, tmp_path):
        monkeypatch.setenv(WORKBOOK_ENV, str(tmp_path / "school.xlsx"))
        cfg = runtime_config()
        assert cfg.workbook_path == (tmp_path / "school.xlsx").resolve()
        assert cfg.settings_path == (tmp_path / "school.xlsx.settings.json").resolve()

    def test_explicit_settings_path(self, monkeypatch, tmp_path):
        monkeypatch.setenv(WORKBOOK_ENV, str(tmp_path / "school.xlsx"))
        monkeypatch.setenv(SETTINGS_ENV, str(tmp_path / "shared.json"))
        cfg = runtime_config()
        assert cfg.settings_path == (tmp_path / "shared.json").resolve()

    def test_default_settings_path(self):
        assert default_settings_path(Path("/data/school.xlsx")) == Path("/data/school.xlsx.settings.json")


class TestServerConfig:
    def test_defaults(self):
        cfg = server_config()
        assert (cfg.host, cfg.port, cfg.api_key) == ("0.0.0.0", 8080, "")

    def test_blank_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("HOST", " ")
        monkeypatch.setenv("PORT", "")
        cfg = server_config()
        assert (cfg.host, cfg.port) == ("0.0.0.0", 8080)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PORT", "9001")
        monkeypatch.setenv("MCP_API_KEY", " secret ")
        cfg = server_config()
        assert cfg.port == 9001
        assert cfg.api_key == "secret"


class TestLoadEnv:
    def test_loads_dotenv_file(self, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(f"{WORKBOOK_ENV}={tmp_path / 'from-env.xlsx'}\n", encoding="utf-8")
        # Registered so the value load_dotenv sets is removed at teardown.
        monkeypatch.setenv(WORKBOOK_ENV, "placeholder")
        monkeypatch.delenv(WORKBOOK_ENV)

        load_env(env_file)

        assert os.environ[WORKBOOK_ENV] == str(tmp_path / "from-env.xlsx")


class TestLogLevel:
    def test_default(self):
        assert log_level() == "INFO"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv(LOG_LEVEL_ENV, " debug ")
        assert log_level() == "DEBUG"
