# src/launchcore/services/context.py
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional

from launchcore.config import const
from launchcore.domain import ArgumentValueError, DuplicateArgument, Event, LaunchError, UndeclaredVariable
from launchcore.ports import EventBus

_log = logging.getLogger("launchcore.context")

_MISSING: Any = object()
# публичное имя маркера «default не задан»
NO_DEFAULT = _MISSING


class Scope:
    """One level of the variable stack. The environment is copied from the parent on push."""

    __slots__ = ("variables", "environment", "parent")

    def __init__(self, parent: Optional["Scope"] = None, environment: Optional[Mapping[str, str]] = None) -> None:
        self.parent = parent
        self.variables: Dict[str, Any] = {}
        if environment is None:
            environment = parent.environment if parent is not None else os.environ
        self.environment: Dict[str, str] = dict(environment)

    @property
    def depth(self) -> int:
        n, cur = 0, self
        while cur is not None:
            n += 1
            cur = cur.parent
        return n

    def lookup(self, name: str) -> Any:
        cur: Optional[Scope] = self
        while cur is not None:
            if name in cur.variables:
                return cur.variables[name]
            cur = cur.parent
        return _MISSING

    def __repr__(self) -> str:
        return f"Scope(depth={self.depth}, vars={sorted(self.variables)})"


@dataclass(frozen=True, slots=True)
class DeclaredArgument:
    name: str
    default: Any = _MISSING
    description: str = ""
    choices: tuple[str, ...] | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING


@dataclass(slots=True)
class _TurnWrites:
    policy: str
    names: set[str] = field(default_factory=set)


class LaunchContext:
    """
    Иерархическое хранилище переменных запуска + ссылка на шину событий.

    Scopes are an explicit stack: group and include actions push and pop them,
    the nesting of source files plays no role. Lookup walks from the innermost
    scope outward, writes target the innermost scope. Argument declarations are
    registered once per run and bound into the root scope.
    """

    def __init__(
        self,
        launch_arguments: Optional[Mapping[str, Any]] = None,
        *,
        bus: Optional[EventBus] = None,
        environment: Optional[Mapping[str, str]] = None,
        write_policy: str = const.HANDLER_WRITE_POLICY,
    ) -> None:
        if bus is None:
            from launchcore.services.eventbus import LocalEventBus

            bus = LocalEventBus()
        self.bus = bus
        self._root = Scope(environment=environment)
        self._current = self._root
        self._launch_arguments: Dict[str, Any] = dict(launch_arguments or {})
        self._used_arguments: set[str] = set()
        self._declarations: Dict[str, DeclaredArgument] = {}
        self._write_policy = write_policy
        self._turn: Optional[_TurnWrites] = None

    # ---------- аргументы ----------

    @property
    def launch_arguments(self) -> Mapping[str, Any]:
        return MappingProxyType(self._launch_arguments)

    @property
    def declared_arguments(self) -> Mapping[str, DeclaredArgument]:
        return MappingProxyType(self._declarations)

    def declare(
        self,
        name: str,
        default: Any = _MISSING,
        *,
        description: str = "",
        choices: Optional[list[str]] = None,
        allow_redeclare: bool = False,
    ) -> Any:
        """Declare a launch argument and bind its value (override, else default) into the root scope.

        Returns the bound value, or None when the argument has neither an
        override nor a default (reading it later raises UndeclaredVariable).
        """
        existing = self._declarations.get(name)
        if existing is not None:
            if existing.default != default and not allow_redeclare:
                raise DuplicateArgument(
                    name,
                    existing=None if not existing.has_default else existing.default,
                    requested=None if default is _MISSING else default,
                )
            if existing.default == default:
                # повторное объявление с тем же default - идемпотентно
                value = self._root.variables.get(name, _MISSING)
                return None if value is _MISSING else value

        decl = DeclaredArgument(name, default, description, tuple(choices) if choices else None)
        self._declarations[name] = decl

        if name in self._launch_arguments:
            value = self._launch_arguments[name]
            self._used_arguments.add(name)
        elif decl.has_default:
            value = default
        else:
            return None

        if decl.choices is not None and str(value) not in decl.choices:
            raise ArgumentValueError(name, value, list(decl.choices))
        self._root.variables[name] = value
        return value

    def unused_launch_arguments(self) -> list[str]:
        return [k for k in self._launch_arguments if k not in self._used_arguments]

    # ---------- переменные ----------

    def get(self, name: str, default: Any = _MISSING) -> Any:
        value = self._current.lookup(name)
        if value is _MISSING:
            if default is not _MISSING:
                return default
            raise UndeclaredVariable(name)
        return value

    def has(self, name: str) -> bool:
        return self._current.lookup(name) is not _MISSING

    def set(self, name: str, value: Any) -> None:
        turn = self._turn
        if turn is not None:
            if turn.policy == "first" and name in turn.names:
                _log.debug("context.write_ignored", extra={"extra": {"name": name, "policy": turn.policy}})
                return
            turn.names.add(name)
        self._current.variables[name] = value

    def unset(self, name: str) -> None:
        self._current.variables.pop(name, None)

    def snapshot(self) -> Dict[str, Any]:
        """Flattened view of every visible variable (inner scopes shadow outer ones)."""
        chain = []
        cur: Optional[Scope] = self._current
        while cur is not None:
            chain.append(cur.variables)
            cur = cur.parent
        out: Dict[str, Any] = {}
        for variables in reversed(chain):
            out.update(variables)
        return out

    # ---------- окружение процессов ----------

    @property
    def environment(self) -> Dict[str, str]:
        return self._current.environment

    def set_environment(self, name: str, value: str) -> None:
        self._current.environment[name] = value

    def unset_environment(self, name: str) -> None:
        self._current.environment.pop(name, None)

    # ---------- scopes ----------

    @property
    def current_scope(self) -> Scope:
        return self._current

    @property
    def depth(self) -> int:
        return self._current.depth

    def push_scope(self) -> Scope:
        self._current = Scope(self._current)
        return self._current

    def pop_scope(self) -> None:
        if self._current.parent is None:
            raise LaunchError("cannot pop the root scope")
        self._current = self._current.parent

    @contextmanager
    def scope(self) -> Iterator[Scope]:
        """Push a scope for the duration of the block; pop happens on every exit path."""
        before = self._current
        pushed = self.push_scope()
        try:
            yield pushed
        finally:
            self._current = before

    @contextmanager
    def entered(self, scope: Scope) -> Iterator[Scope]:
        """Temporarily make a previously captured scope current (deferred activations)."""
        before = self._current
        self._current = scope
        try:
            yield scope
        finally:
            self._current = before

    @contextmanager
    def dispatch_turn(self) -> Iterator[None]:
        """Track same-turn writes so the configured tie-break policy applies."""
        prev = self._turn
        self._turn = _TurnWrites(self._write_policy)
        try:
            yield
        finally:
            self._turn = prev

    # ---------- события ----------

    def emit_event(self, event: Event) -> None:
        self.bus.publish(event)
