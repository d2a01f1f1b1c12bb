from __future__ import annotations
import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional
from datetime import datetime, timezone

from launchcore.config import const
from launchcore.domain import Event, EventType
from launchcore.ports import EventBus

# дочерние логгеры launchcore.process.<name> получают построчный вывод процессов
PROCESS_LOGGER = "launchcore.process"


def _jsonable(value: Any) -> Any:
    # ProcessHandle, ActionRun, Action: в лог идёт их repr, а не внутренности
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return repr(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra={"extra": {...}}`` fields are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            base.update(_jsonable(extra))
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


class ProcessOutputRouter(logging.Handler):
    """
    Раскладывает вывод процессов по файлам {logs_dir}/processes/<name>.log.

    Each process gets its own rotating file, opened on its first line. The
    lines are written as-is, without the JSON envelope.
    """

    def __init__(self, logs_dir: Path, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.dir = Path(logs_dir) / "processes"
        self._files: Dict[str, RotatingFileHandler] = {}

    def _file_for(self, name: str) -> RotatingFileHandler:
        fh = self._files.get(name)
        if fh is None:
            self.dir.mkdir(parents=True, exist_ok=True)
            fh = RotatingFileHandler(
                self.dir / f"{name}.log",
                maxBytes=const.LOG_MAX_BYTES,
                backupCount=const.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
            fh.setFormatter(logging.Formatter("%(message)s"))
            self._files[name] = fh
        return fh

    def emit(self, record: logging.LogRecord) -> None:
        name = record.name[len(PROCESS_LOGGER) + 1 :] or "unnamed"
        self._file_for(name).handle(record)

    def close(self) -> None:
        for fh in self._files.values():
            fh.close()
        self._files.clear()
        super().close()


def setup_logging(logs_dir: str | Path, level: str = const.LOG_LEVEL, *, process_files: bool = True) -> logging.Logger:
    """
    Настройка логов:
      - консоль (stderr), JSON
      - файл {logs_dir}/launchcore.log (ротация), JSON
      - {logs_dir}/processes/<name>.log - сырой вывод каждого процесса (если process_files)
    Повторный вызов заменяет обработчики, а не дублирует их.
    """
    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    logfile = logs_dir / const.LOG_FILE_NAME
    lvl = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger("launchcore")
    logger.setLevel(lvl)
    proc_logger = logging.getLogger(PROCESS_LOGGER)
    for lg in (logger, proc_logger):
        for h in list(lg.handlers):
            lg.removeHandler(h)
            h.close()

    for h in (logging.StreamHandler(), RotatingFileHandler(logfile, maxBytes=const.LOG_MAX_BYTES, backupCount=const.LOG_BACKUP_COUNT, encoding="utf-8")):
        h.setFormatter(JsonFormatter())
        h.setLevel(lvl)
        logger.addHandler(h)
    logger.propagate = False

    if process_files:
        proc_logger.addHandler(ProcessOutputRouter(logs_dir))
    logger.info("logging.initialized", extra={"extra": {"logfile": str(logfile), "process_files": process_files}})
    return logger


def _event_level(ev: Event) -> int:
    if ev.type == EventType.SHUTDOWN:
        return logging.INFO
    if ev.type == EventType.PROCESS_EXITED and ev.payload.get("returncode") not in (0, None) and not ev.payload.get("respawning"):
        return logging.WARNING
    return logging.DEBUG


def attach_event_logger(bus: EventBus, logger: Optional[logging.Logger] = None) -> None:
    """
    Подписывает логгер на все события шины.

    Shutdown events are logged at INFO and a final nonzero process exit at
    WARNING; everything else at DEBUG. Output lines (``process.io``) are left
    to the per-process loggers.
    """
    base_logger = logger or logging.getLogger("launchcore.events")

    def _handler(ev: Event) -> None:
        if ev.type == EventType.PROCESS_IO:
            return
        payload = {k: v for k, v in ev.payload.items() if k not in ("action", "owner", "handle")}
        base_logger.log(
            _event_level(ev),
            "event",
            extra={
                "extra": {
                    "event_time": datetime.fromtimestamp(ev.ts, tz=timezone.utc).isoformat() if ev.ts else None,
                    "type": ev.type,
                    "source": ev.source,
                    "payload": payload,
                }
            },
        )

    bus.subscribe("", _handler)
