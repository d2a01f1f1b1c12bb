from __future__ import annotations

import asyncio
from typing import Any, Iterable, List, TYPE_CHECKING

from launchcore.actions.base import Action, as_action_list
from launchcore.domain import SubstitutionResolutionError
from launchcore.services.substitutions import SomeSubstitutions, normalize, perform_substitutions

if TYPE_CHECKING:
    from launchcore.services.executor import ActionRun


class TimerAction(Action):
    """Activates ``actions`` after ``period`` seconds. Cancelled timers never fire late."""

    runs_during_shutdown = False

    def __init__(self, period: SomeSubstitutions | float, actions: Iterable[Action], *, cancel_on_shutdown: bool = True, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.period = normalize(period)
        self._actions = as_action_list(actions)
        self.cancel_on_shutdown = cancel_on_shutdown

    @property
    def actions(self) -> List[Action]:
        return list(self._actions)

    def _resolve_period(self, run: "ActionRun") -> float:
        text = perform_substitutions(run.context, self.period)
        try:
            period = float(text)
        except ValueError as e:
            raise SubstitutionResolutionError(f"timer period {text!r} is not a number", cause=e) from e
        if period < 0:
            raise SubstitutionResolutionError(f"timer period must be >= 0, got {period}")
        return period

    def execute(self, run: "ActionRun") -> None:
        period = self._resolve_period(run)
        loop = asyncio.get_running_loop()
        done = loop.create_future()

        def fire() -> None:
            if done.done():
                return
            done.set_result(None)
            run.activate_deferred(self._actions)

        timer = loop.call_later(period, fire)

        def cancel(reason: str) -> None:
            if reason == "shutdown" and not self.cancel_on_shutdown:
                return
            timer.cancel()
            if not done.done():
                done.cancel()

        run.on_cancel(cancel)
        run.hold(done)

    def describe(self) -> str:
        return f"TimerAction({len(self._actions)} actions)"


class CancelTimer(Action):
    def __init__(self, timer: TimerAction, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.timer = timer

    def execute(self, run: "ActionRun") -> None:
        run.executor.cancel_action(self.timer, reason="cancelled")
