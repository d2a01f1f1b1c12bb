from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Sequence, TYPE_CHECKING

from launchcore.actions.base import Action, as_action_list
from launchcore.domain import Event
from launchcore.services.context import NO_DEFAULT
from launchcore.services.handlers import EventHandler
from launchcore.services.substitutions import SomeSubstitutions, normalize, perform_substitutions

if TYPE_CHECKING:
    from launchcore.services.executor import ActionRun

user_log = logging.getLogger("launchcore.user")

_LEVELS = {"debug": logging.DEBUG, "info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


class LogInfo(Action):
    def __init__(self, msg: SomeSubstitutions, *, level: str = "info", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if level not in _LEVELS:
            raise ValueError(f"unknown log level {level!r}")
        self.msg = normalize(msg)
        self.level = level

    def execute(self, run: "ActionRun") -> None:
        user_log.log(_LEVELS[self.level], perform_substitutions(run.context, self.msg))


class DeclareArgument(Action):
    """Declares a launch argument. The value is the launch-time override, else the default."""

    def __init__(
        self,
        name: str,
        *,
        default: Optional[SomeSubstitutions] = None,
        description: str = "",
        choices: Optional[Sequence[str]] = None,
        allow_redeclare: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.name = name
        self.default = None if default is None else normalize(default)
        self.description = description
        self.choices = list(choices) if choices is not None else None
        self.allow_redeclare = allow_redeclare

    def execute(self, run: "ActionRun") -> None:
        default = NO_DEFAULT if self.default is None else perform_substitutions(run.context, self.default)
        run.context.declare(
            self.name,
            default,
            description=self.description,
            choices=self.choices,
            allow_redeclare=self.allow_redeclare,
        )

    def describe(self) -> str:
        return f"DeclareArgument({self.name!r})"


class SetVariable(Action):
    """Binds a variable in the innermost scope. Non-textual values are stored as-is."""

    def __init__(self, name: str, value: Any, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.name = name
        self._textual = isinstance(value, (str, list, tuple)) or hasattr(value, "perform")
        self.value = normalize(value) if self._textual else value

    def execute(self, run: "ActionRun") -> None:
        value = perform_substitutions(run.context, self.value) if self._textual else self.value
        run.context.set(self.name, value)

    def describe(self) -> str:
        return f"SetVariable({self.name!r})"


class UnsetVariable(Action):
    def __init__(self, name: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.name = name

    def execute(self, run: "ActionRun") -> None:
        run.context.unset(self.name)


class SetEnvironmentVariable(Action):
    def __init__(self, name: SomeSubstitutions, value: SomeSubstitutions, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.name = normalize(name)
        self.value = normalize(value)

    def execute(self, run: "ActionRun") -> None:
        ctx = run.context
        ctx.set_environment(perform_substitutions(ctx, self.name), perform_substitutions(ctx, self.value))


class UnsetEnvironmentVariable(Action):
    def __init__(self, name: SomeSubstitutions, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.name = normalize(name)

    def execute(self, run: "ActionRun") -> None:
        run.context.unset_environment(perform_substitutions(run.context, self.name))


class RegisterEventHandler(Action):
    def __init__(self, handler: EventHandler, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.handler = handler

    def execute(self, run: "ActionRun") -> None:
        run.executor.register_handler(self.handler, run.context.current_scope)

    def describe(self) -> str:
        return f"RegisterEventHandler({self.handler.describe()})"


class UnregisterEventHandler(Action):
    def __init__(self, handler: EventHandler, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.handler = handler

    def execute(self, run: "ActionRun") -> None:
        run.executor.unregister_handler(self.handler)


class EmitEvent(Action):
    def __init__(self, event: Event | str, payload: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if isinstance(event, str):
            event = Event(type=event, payload=dict(payload or {}), source="emit")
        self.event = event

    def execute(self, run: "ActionRun") -> None:
        run.context.emit_event(self.event)

    def describe(self) -> str:
        return f"EmitEvent({self.event.type!r})"


class OpaqueFunction(Action):
    """Dynamic composition: ``function(context, *args, **kwargs)`` returns actions spliced in as children."""

    def __init__(
        self,
        function: Callable[..., Any],
        *,
        args: Sequence[Any] = (),
        kwargs: Optional[Mapping[str, Any]] = None,
        **action_kwargs: Any,
    ) -> None:
        super().__init__(**action_kwargs)
        self.function = function
        self.args = tuple(args)
        self.kwargs = dict(kwargs or {})

    def execute(self, run: "ActionRun") -> list[Action]:
        return as_action_list(self.function(run.context, *self.args, **self.kwargs))

    def describe(self) -> str:
        return f"OpaqueFunction({getattr(self.function, '__name__', self.function)!r})"


class Shutdown(Action):
    """Requests shutdown of the whole launch; a second request while shutting down is ignored."""

    def __init__(self, *, reason: SomeSubstitutions = "", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.reason = normalize(reason)

    def execute(self, run: "ActionRun") -> None:
        run.executor.request_shutdown(perform_substitutions(run.context, self.reason), source=self.describe())
