# tests/test_logging.py
from __future__ import annotations

import json
import logging

from launchcore.domain import Event, EventType
from launchcore.services.eventbus import LocalEventBus
from launchcore.services.logging import JsonFormatter, attach_event_logger, setup_logging


def _read(logfile):
    for h in logging.getLogger("launchcore").handlers:
        h.flush()
    return [json.loads(l) for l in logfile.read_text(encoding="utf-8").splitlines() if l.strip()]


def test_setup_logging_writes_json_lines(tmp_path):
    logger = setup_logging(tmp_path / "logs", "debug")
    logging.getLogger("launchcore.test").info("hello", extra={"extra": {"k": 1}})
    records = _read(tmp_path / "logs" / "launchcore.log")
    assert records[0]["msg"] == "logging.initialized"
    last = records[-1]
    assert last["msg"] == "hello"
    assert last["logger"] == "launchcore.test"
    assert last["k"] == 1
    assert logger.propagate is False


def test_setup_logging_is_reentrant(tmp_path):
    setup_logging(tmp_path, "info")
    setup_logging(tmp_path, "info")
    assert len(logging.getLogger("launchcore").handlers) == 2


def test_json_formatter_non_serializable_extra():
    rec = logging.LogRecord("launchcore.x", logging.INFO, __file__, 1, "m", None, None)
    rec.extra = {"obj": object()}
    data = json.loads(JsonFormatter().format(rec))
    assert data["msg"] == "m"
    assert data["obj"].startswith("<object")


def test_event_logger_logs_dispatched_events(tmp_path):
    setup_logging(tmp_path, "debug")
    bus = LocalEventBus()
    attach_event_logger(bus)
    bus.notify(Event(type="custom.ping", payload={"n": 2, "action": object()}, source="test", ts=1.0))
    records = [r for r in _read(tmp_path / "launchcore.log") if r["msg"] == "event"]
    assert records[-1]["type"] == "custom.ping"
    assert records[-1]["payload"] == {"n": 2}


def test_process_output_goes_to_its_own_file(tmp_path):
    setup_logging(tmp_path, "info")
    logging.getLogger("launchcore.process.talker").info("line one")
    logging.getLogger("launchcore.process.talker").warning("line two")
    logging.getLogger("launchcore.process.other").info("elsewhere")
    for h in logging.getLogger("launchcore.process").handlers:
        h.flush()
    assert (tmp_path / "processes" / "talker.log").read_text(encoding="utf-8").splitlines() == ["line one", "line two"]
    assert (tmp_path / "processes" / "other.log").read_text(encoding="utf-8").splitlines() == ["elsewhere"]
    # в общий JSON-лог строки процессов тоже попадают
    assert any(r["msg"] == "line one" and r["logger"] == "launchcore.process.talker" for r in _read(tmp_path / "launchcore.log"))


def test_process_files_can_be_disabled(tmp_path):
    setup_logging(tmp_path, "info", process_files=False)
    logging.getLogger("launchcore.process.quiet").info("x")
    assert not (tmp_path / "processes").exists()


def test_event_logger_levels(tmp_path):
    setup_logging(tmp_path, "info")
    bus = LocalEventBus()
    attach_event_logger(bus)
    bus.notify(Event(type=EventType.PROCESS_STARTED, payload={"name": "a"}, source="supervisor", ts=1.0))
    bus.notify(Event(type=EventType.PROCESS_EXITED, payload={"name": "a", "returncode": 2, "respawning": False}, source="supervisor", ts=2.0))
    bus.notify(Event(type=EventType.SHUTDOWN, payload={"reason": "done"}, source="launch", ts=3.0))
    events = [(r["level"], r["type"]) for r in _read(tmp_path / "launchcore.log") if r["msg"] == "event"]
    # process.started идёт на DEBUG и при уровне INFO отфильтровывается
    assert events == [("WARNING", EventType.PROCESS_EXITED), ("INFO", EventType.SHUTDOWN)]
