# tests/test_settings.py
from __future__ import annotations

from pathlib import Path

import pytest

from launchcore.services.settings import Settings

_KEYS = ("LOG_DIR", "LOG_LEVEL", "SIGTERM_TIMEOUT", "SHUTDOWN_GRACE", "FAIL_FAST", "HANDLE_SIGNALS", "HANDLER_WRITE_POLICY")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for k in _KEYS:
        monkeypatch.delenv("LAUNCHCORE_" + k, raising=False)


def test_defaults():
    s = Settings.from_sources(env_file=None)
    assert s.log_level == "INFO"
    assert s.sigterm_timeout == 5.0
    assert s.shutdown_grace == 10.0
    assert s.fail_fast is False
    assert s.handle_signals is True
    assert s.handler_write_policy == "last"
    assert s.logs_dir.name == "logs"


def test_env_file_and_environment(tmp_path, monkeypatch):
    env = tmp_path / ".env"
    env.write_text(
        "# comment\nLAUNCHCORE_LOG_LEVEL=debug\nLAUNCHCORE_FAIL_FAST='yes'\nLAUNCHCORE_SIGTERM_TIMEOUT=2.5\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("LAUNCHCORE_SIGTERM_TIMEOUT", "0.5")
    monkeypatch.setenv("LAUNCHCORE_LOG_DIR", str(tmp_path / "logs"))
    s = Settings.from_sources(env_file=str(env))
    assert s.log_level == "DEBUG"
    assert s.fail_fast is True
    # окружение важнее .env
    assert s.sigterm_timeout == 0.5
    assert s.logs_dir == (tmp_path / "logs").resolve()


def test_unknown_write_policy_falls_back(monkeypatch):
    monkeypatch.setenv("LAUNCHCORE_HANDLER_WRITE_POLICY", "random")
    assert Settings.from_sources(env_file=None).handler_write_policy == "last"


def test_with_overrides_ignores_none(tmp_path):
    s = Settings(logs_dir=Path("/tmp/x"), fail_fast=True)
    t = s.with_overrides(fail_fast=None, log_level="WARNING", logs_dir=str(tmp_path), unknown=1)
    assert t.fail_fast is True
    assert t.log_level == "WARNING"
    assert t.logs_dir == tmp_path.resolve()


def test_malformed_numbers_fall_back_to_defaults(monkeypatch, caplog):
    monkeypatch.setenv("LAUNCHCORE_SIGTERM_TIMEOUT", "soon")
    monkeypatch.setenv("LAUNCHCORE_SHUTDOWN_GRACE", "10s")
    s = Settings.from_sources(env_file=None)
    assert s.sigterm_timeout == 5.0
    assert s.shutdown_grace == 10.0
    bad = [r.extra["key"] for r in caplog.records if r.getMessage() == "settings.invalid_number"]
    assert bad == ["SIGTERM_TIMEOUT", "SHUTDOWN_GRACE"]
