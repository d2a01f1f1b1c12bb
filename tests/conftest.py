# tests/conftest.py
from __future__ import annotations
import asyncio
import logging
from pathlib import Path
from typing import Callable, List

import pytest

from launchcore.description import LaunchDescription
from launchcore.services.context import LaunchContext
from launchcore.services.executor import LaunchExecutor
from launchcore.services.settings import Settings


@pytest.fixture
def event_loop():
    """Локальный event loop на тест (совместимо без pytest-asyncio)."""
    loop = asyncio.new_event_loop()
    try:
        yield loop
    finally:
        loop.close()


@pytest.fixture
def settings(tmp_path) -> Settings:
    # короткие таймауты, без перехвата сигналов - тесты не должны висеть
    return Settings(
        logs_dir=Path(tmp_path) / "logs",
        sigterm_timeout=1.0,
        shutdown_grace=5.0,
        fail_fast=False,
        handle_signals=False,
    )


@pytest.fixture
def user_log() -> List[str]:
    """Сообщения LogInfo (логгер launchcore.user), независимо от настроек propagate."""
    records: List[str] = []

    class _Collect(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record.getMessage())

    handler = _Collect(level=logging.DEBUG)
    lg = logging.getLogger("launchcore.user")
    old_level = lg.level
    lg.addHandler(handler)
    lg.setLevel(logging.DEBUG)
    try:
        yield records
    finally:
        lg.removeHandler(handler)
        lg.setLevel(old_level)


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    # setup_logging (CLI) вешает обработчики на "launchcore" и "launchcore.process" - снимаем их между тестами
    for name in ("launchcore.process", "launchcore"):
        for h in list(logging.getLogger(name).handlers):
            logging.getLogger(name).removeHandler(h)
            h.close()
    lg = logging.getLogger("launchcore")
    lg.propagate = True
    lg.setLevel(logging.NOTSET)


@pytest.fixture
def launch(settings) -> Callable[..., tuple]:
    """launch(*actions, args=None, **executor_kwargs) -> (executor, exit_code)."""

    def _launch(*actions, args=None, context=None, **kwargs):
        ctx = context or LaunchContext(args)
        executor = LaunchExecutor(ctx, settings=settings, **kwargs)
        executor.include(LaunchDescription(list(actions)))
        code = executor.run()
        return executor, code

    return _launch
