# src/launchcore/domain/types.py
from __future__ import annotations
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class EventType:
    PROCESS_STARTED = "process.started"
    PROCESS_EXITED = "process.exited"
    PROCESS_IO = "process.io"
    SHUTDOWN = "launch.shutdown"


class ActionState(str, Enum):
    PENDING = "pending"
    EVALUATING_CONDITION = "evaluating_condition"
    SKIPPED = "skipped"
    ACTIVATED = "activated"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ActionState.SKIPPED, ActionState.COMPLETED, ActionState.FAILED)


@dataclass(frozen=True, slots=True)
class Event:
    type: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    source: str = "launch"
    ts: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class ProcessSpec:
    """Fully resolved description of one OS process, built by ExecuteProcess at activation time."""

    name: str
    cmd: list[str]
    cwd: str | None = None
    env: Mapping[str, str] | None = None
    output: str = "log"
    emit_output_events: bool = False
    respawn: bool = False
    respawn_delay: float = 0.0
    max_respawns: int | None = None
    sigterm_timeout: float | None = None
