"""Engine-side exceptions. Everything raised by launchcore derives from LaunchError."""

from __future__ import annotations

from typing import Any, Optional

__all__ = [
    "LaunchError",
    "DuplicateArgument",
    "UndeclaredVariable",
    "ArgumentValueError",
    "SubstitutionResolutionError",
    "ConditionEvaluationError",
    "ProcessSpawnError",
    "ProcessSupervisionError",
    "HandlerError",
    "IncludeError",
]


class LaunchError(RuntimeError):
    """Base class for errors recorded against an action activation."""


class DuplicateArgument(LaunchError):
    """Raised when an argument is redeclared with a conflicting default."""

    def __init__(self, name: str, *, existing: Any = None, requested: Any = None) -> None:
        self.name = name
        self.existing = existing
        self.requested = requested
        super().__init__(f"argument '{name}' already declared with default {existing!r}, got {requested!r}")


class UndeclaredVariable(LaunchError, KeyError):
    """Raised when a variable is absent from every enclosing scope."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"variable '{name}' is not declared in any enclosing scope")

    def __str__(self) -> str:
        return self.args[0]


class ArgumentValueError(LaunchError, ValueError):
    """Raised when an argument value is not one of the declared choices."""

    def __init__(self, name: str, value: Any, choices: list[str]) -> None:
        self.name = name
        self.value = value
        self.choices = choices
        super().__init__(f"argument '{name}' got {value!r}, expected one of {choices!r}")


class SubstitutionResolutionError(LaunchError):
    """Raised when a substitution cannot be resolved against the current context."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(message)


class ConditionEvaluationError(LaunchError):
    """Raised when a condition does not evaluate to a recognizable boolean."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(message)


class ProcessSpawnError(LaunchError):
    """Raised when the OS refuses to create a child process."""

    def __init__(self, name: str, *, cause: Optional[BaseException] = None) -> None:
        self.name = name
        self.cause = cause
        super().__init__(f"failed to spawn process '{name}': {cause!r}" if cause else f"failed to spawn process '{name}'")


class ProcessSupervisionError(LaunchError):
    """Raised when signal delivery or waiting on a child process fails."""

    def __init__(self, name: str, *, detail: str | None = None) -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"supervision of process '{name}' failed" + (f": {detail}" if detail else ""))


class HandlerError(LaunchError):
    """Raised when an event handler body raises while producing actions."""

    def __init__(self, handler: Any, event_type: str, *, cause: Optional[BaseException] = None) -> None:
        self.handler = handler
        self.event_type = event_type
        self.cause = cause
        super().__init__(f"handler {handler!r} failed on '{event_type}': {cause!r}")


class IncludeError(LaunchError):
    """Raised when an included description cannot be obtained from its source."""

    def __init__(self, source: Any, *, cause: Optional[BaseException] = None) -> None:
        self.source = source
        self.cause = cause
        super().__init__(f"cannot include {source!r}: {cause!r}")
