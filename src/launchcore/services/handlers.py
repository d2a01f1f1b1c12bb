"""Event handlers: a match predicate plus a body of actions.

A body is either a list of actions or a callable ``(event, context) -> actions``
evaluated at match time.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union, TYPE_CHECKING

from launchcore.domain import Event, EventType

if TYPE_CHECKING:
    from launchcore.actions.base import Action
    from launchcore.services.context import LaunchContext

Body = Union[Sequence["Action"], "Action", Callable[[Event, "LaunchContext"], Any], None]


def _as_actions(result: Any) -> List["Action"]:
    if result is None:
        return []
    if isinstance(result, (list, tuple)):
        return list(result)
    return [result]


class EventHandler:
    def __init__(self, *, matcher: Callable[[Event], bool], entities: Body = None, handle_once: bool = False) -> None:
        self._matcher = matcher
        self._entities = entities
        self.handle_once = handle_once

    def matches(self, event: Event) -> bool:
        return bool(self._matcher(event))

    def handle(self, event: Event, context: "LaunchContext") -> List["Action"]:
        body = self._entities
        if callable(body) and not hasattr(body, "execute"):
            return _as_actions(body(event, context))
        return _as_actions(body)

    def describe(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return f"<{self.describe()}>"


class OnEvent(EventHandler):
    """Matches every event whose type equals ``event_type`` (or starts with it when it ends in '.')."""

    def __init__(self, event_type: str, entities: Body = None, *, handle_once: bool = False) -> None:
        self.event_type = event_type
        if event_type.endswith("."):
            matcher = lambda ev: ev.type.startswith(event_type)  # noqa: E731
        else:
            matcher = lambda ev: ev.type == event_type  # noqa: E731
        super().__init__(matcher=matcher, entities=entities, handle_once=handle_once)

    def describe(self) -> str:
        return f"OnEvent({self.event_type!r})"


def _target_matcher(event_type: str, target_action: Optional["Action"]) -> Callable[[Event], bool]:
    def matcher(ev: Event) -> bool:
        if ev.type != event_type:
            return False
        return target_action is None or ev.payload.get("action") is target_action

    return matcher


class OnProcessStart(EventHandler):
    def __init__(self, *, target_action: Optional["Action"] = None, on_start: Body = None, handle_once: bool = False) -> None:
        super().__init__(matcher=_target_matcher(EventType.PROCESS_STARTED, target_action), entities=on_start, handle_once=handle_once)
        self.target_action = target_action


class OnProcessExit(EventHandler):
    """Fires when a target process exits. Intermediate exits of a respawning process are skipped unless ``include_respawns``."""

    def __init__(
        self,
        *,
        target_action: Optional["Action"] = None,
        on_exit: Body = None,
        handle_once: bool = False,
        include_respawns: bool = False,
    ) -> None:
        base = _target_matcher(EventType.PROCESS_EXITED, target_action)

        def matcher(ev: Event) -> bool:
            return base(ev) and (include_respawns or not ev.payload.get("respawning"))

        super().__init__(matcher=matcher, entities=on_exit, handle_once=handle_once)
        self.target_action = target_action


class OnProcessIO(EventHandler):
    """Output lines of processes started with ``emit_output_events=True``."""

    def __init__(self, *, target_action: Optional["Action"] = None, on_stdout: Body = None, on_stderr: Body = None) -> None:
        super().__init__(matcher=_target_matcher(EventType.PROCESS_IO, target_action))
        self.target_action = target_action
        self._on = {"stdout": on_stdout, "stderr": on_stderr}

    def matches(self, event: Event) -> bool:
        return super().matches(event) and self._on.get(event.payload.get("stream")) is not None

    def handle(self, event: Event, context: "LaunchContext") -> List["Action"]:
        body = self._on[event.payload["stream"]]
        if callable(body):
            return _as_actions(body(event, context))
        return _as_actions(body)


class OnShutdown(EventHandler):
    def __init__(self, *, on_shutdown: Body = None) -> None:
        super().__init__(matcher=lambda ev: ev.type == EventType.SHUTDOWN, entities=on_shutdown, handle_once=True)


class OnAllProcessesExited(EventHandler):
    """Stateful watcher over several processes.

    Owns a mapping from target action to the last observed status and fires
    once, when every target has reached a final exit. The state lives as long
    as the registration.
    """

    def __init__(self, targets: Iterable["Action"], entities: Body = None) -> None:
        self.status: Dict[int, str] = {}
        self._targets = list(targets)
        for t in self._targets:
            self.status[id(t)] = "pending"
        super().__init__(matcher=self._observe, entities=entities, handle_once=True)

    def _observe(self, ev: Event) -> bool:
        action = ev.payload.get("action")
        if action is None or id(action) not in self.status:
            return False
        if ev.type == EventType.PROCESS_STARTED:
            self.status[id(action)] = "running"
        elif ev.type == EventType.PROCESS_EXITED and not ev.payload.get("respawning"):
            self.status[id(action)] = f"exited:{ev.payload.get('returncode')}"
            return all(s.startswith("exited") for s in self.status.values())
        return False

    def describe(self) -> str:
        return f"OnAllProcessesExited({len(self._targets)} targets)"
