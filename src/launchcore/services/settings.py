# src/launchcore/services/settings.py
from __future__ import annotations
from dataclasses import dataclass, replace
import logging
import os
from pathlib import Path
from typing import Optional, Dict
from launchcore.config import const

_log = logging.getLogger("launchcore.settings")


def _parse_env_file(path: str) -> Dict[str, str]:
    data: Dict[str, str] = {}
    p = Path(path)
    if not p.exists():
        return data
    for line in p.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" in line:
            k, v = line.split("=", 1)
            data[k.strip()] = v.strip().strip('"').strip("'")
    return data


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _as_float(key: str, value: str, default: float) -> float:
    try:
        return float(value)
    except ValueError:
        _log.warning("settings.invalid_number", extra={"extra": {"key": key, "value": value, "default": default}})
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    logs_dir: Path
    log_level: str = const.LOG_LEVEL
    sigterm_timeout: float = const.SIGTERM_TIMEOUT_S
    shutdown_grace: float = const.SHUTDOWN_GRACE_S
    fail_fast: bool = False
    handle_signals: bool = True
    handler_write_policy: str = const.HANDLER_WRITE_POLICY

    @staticmethod
    def from_sources(env_file: Optional[str] = ".env") -> "Settings":
        env_file_vars = _parse_env_file(env_file) if env_file else {}

        def pick_env(key: str, default: Optional[str] = None) -> str:
            full = const.ENV_PREFIX + key
            return os.environ.get(full) or env_file_vars.get(full) or (default or "")

        logs_dir = pick_env("LOG_DIR") or str(Path.home() / ".launchcore" / "logs")
        policy = pick_env("HANDLER_WRITE_POLICY", const.HANDLER_WRITE_POLICY)
        if policy not in ("last", "first"):
            policy = const.HANDLER_WRITE_POLICY

        return Settings(
            logs_dir=Path(logs_dir).expanduser().resolve(),
            log_level=pick_env("LOG_LEVEL", const.LOG_LEVEL).upper(),
            sigterm_timeout=_as_float("SIGTERM_TIMEOUT", pick_env("SIGTERM_TIMEOUT", str(const.SIGTERM_TIMEOUT_S)), const.SIGTERM_TIMEOUT_S),
            shutdown_grace=_as_float("SHUTDOWN_GRACE", pick_env("SHUTDOWN_GRACE", str(const.SHUTDOWN_GRACE_S)), const.SHUTDOWN_GRACE_S),
            fail_fast=_as_bool(pick_env("FAIL_FAST", "0")),
            handle_signals=_as_bool(pick_env("HANDLE_SIGNALS", "1")),
            handler_write_policy=policy,
        )

    def with_overrides(self, **kw) -> "Settings":
        # None означает «не задано в CLI» - оставляем значение из источников
        safe = {k: v for k, v in kw.items() if k in self.__dataclass_fields__ and v is not None}
        if "logs_dir" in safe:
            safe["logs_dir"] = Path(safe["logs_dir"]).expanduser().resolve()
        return replace(self, **safe)
