from __future__ import annotations

from typing import Any, Callable, TYPE_CHECKING

from launchcore.domain import ConditionEvaluationError, LaunchError
from launchcore.services.substitutions import SomeSubstitutions, normalize, perform_substitutions

if TYPE_CHECKING:
    from launchcore.services.context import LaunchContext

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off", "")


def to_bool(text: str) -> bool:
    v = text.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ConditionEvaluationError(f"{text!r} is not a boolean value")


class Condition:
    """Predicate over the context; a plain callable ``(context) -> bool`` may be wrapped directly."""

    def __init__(self, predicate: Callable[["LaunchContext"], Any] | None = None) -> None:
        self._predicate = predicate

    def _evaluate(self, context: "LaunchContext") -> bool:
        if self._predicate is None:
            raise NotImplementedError
        return bool(self._predicate(context))

    def evaluate(self, context: "LaunchContext") -> bool:
        try:
            return self._evaluate(context)
        except ConditionEvaluationError:
            raise
        except LaunchError as e:
            raise ConditionEvaluationError(f"{self!r}: {e}", cause=e) from e
        except Exception as e:
            raise ConditionEvaluationError(f"{self!r} raised {e!r}", cause=e) from e


class IfCondition(Condition):
    def __init__(self, expression: SomeSubstitutions) -> None:
        super().__init__()
        self.expression = normalize(expression)

    def _evaluate(self, context: "LaunchContext") -> bool:
        return to_bool(perform_substitutions(context, self.expression))

    def __repr__(self) -> str:
        return f"IfCondition({self.expression!r})"


class UnlessCondition(IfCondition):
    def _evaluate(self, context: "LaunchContext") -> bool:
        return not super()._evaluate(context)

    def __repr__(self) -> str:
        return f"UnlessCondition({self.expression!r})"


class VariableEquals(Condition):
    """True when the variable is bound and its text equals ``value`` (None means "unbound")."""

    def __init__(self, name: str, value: SomeSubstitutions | None) -> None:
        super().__init__()
        self.name = name
        self.value = None if value is None else normalize(value)

    def _evaluate(self, context: "LaunchContext") -> bool:
        if not context.has(self.name):
            return self.value is None
        if self.value is None:
            return False
        current = context.get(self.name)
        return str(current) == perform_substitutions(context, self.value)

    def __repr__(self) -> str:
        return f"VariableEquals({self.name!r})"


class VariableNotEquals(VariableEquals):
    def _evaluate(self, context: "LaunchContext") -> bool:
        return not super()._evaluate(context)

    def __repr__(self) -> str:
        return f"VariableNotEquals({self.name!r})"


def as_condition(value: Any) -> Condition | None:
    if value is None or isinstance(value, Condition):
        return value
    if callable(value):
        return Condition(value)
    raise TypeError(f"unsupported condition: {value!r}")
