from __future__ import annotations

from typing import Any, List, Optional, Sequence, TYPE_CHECKING

from launchcore.services.conditions import Condition, as_condition

if TYPE_CHECKING:
    from launchcore.services.executor import ActionRun


class Action:
    """Immutable unit of orchestration.

    ``execute`` receives the ActionRun that tracks this activation. It may
    mutate the context, activate children through ``run.activate`` or return
    them, and keep the run alive with ``run.hold(future)``. The action object
    itself is never mutated by execution.
    """

    # ExecuteProcess / TimerAction выключают: после shutdown такие действия пропускаются
    runs_during_shutdown = True
    # если True, провал этого действия проваливает охватывающую группу
    escalates_failure = False

    def __init__(self, *, condition: Any = None) -> None:
        self._condition: Optional[Condition] = as_condition(condition)

    @property
    def condition(self) -> Optional[Condition]:
        return self._condition

    def execute(self, run: "ActionRun") -> Optional[Sequence["Action"]]:
        raise NotImplementedError

    def describe(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return f"<{self.describe()}>"


def as_action_list(actions: Any) -> List[Action]:
    if actions is None:
        return []
    if isinstance(actions, Action):
        return [actions]
    out = list(actions)
    for a in out:
        if not isinstance(a, Action):
            raise TypeError(f"expected Action, got {a!r}")
    return out
