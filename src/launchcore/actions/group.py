from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, TYPE_CHECKING

from launchcore.actions.base import Action, as_action_list
from launchcore.domain import IncludeError, LaunchError
from launchcore.ports import DescriptionSource
from launchcore.services.substitutions import normalize, perform_substitutions

if TYPE_CHECKING:
    from launchcore.services.executor import ActionRun


def _normalize_bindings(bindings: Optional[Mapping[str, Any]]) -> List[tuple[str, Any]]:
    return [(k, normalize(v)) for k, v in (bindings or {}).items()]


class GroupAction(Action):
    """Activates its children inside a freshly pushed scope (or the current one when ``scoped=False``).

    ``variables`` are bound in the new scope before any child runs. The group
    reaches a terminal state once every child has.
    """

    def __init__(
        self,
        actions: Iterable[Action],
        *,
        scoped: bool = True,
        variables: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._actions = as_action_list(actions)
        self.scoped = scoped
        self._variables = _normalize_bindings(variables)

    @property
    def actions(self) -> List[Action]:
        return list(self._actions)

    def execute(self, run: "ActionRun") -> None:
        ctx = run.context
        if not self.scoped:
            self._bind(run)
            run.activate(self._actions)
            return
        with ctx.scope():
            self._bind(run)
            run.activate(self._actions)

    def _bind(self, run: "ActionRun") -> None:
        ctx = run.context
        # значения вычисляем до записи: соседние привязки видят внешние значения
        resolved = [(k, perform_substitutions(ctx, v)) for k, v in self._variables]
        for k, v in resolved:
            ctx.set(k, v)

    def describe(self) -> str:
        return f"GroupAction({len(self._actions)} actions)"


class IncludeDescription(Action):
    """Runs a description obtained from a collaborator in a fresh scope.

    ``source`` is a LaunchDescription, any DescriptionSource, or a path to a
    Python description file. ``arguments`` are bound in the fresh scope before
    the subtree runs, so the included DeclareArgument actions see them as
    launch-time values. A required include that fails fails its enclosing group.
    """

    def __init__(
        self,
        source: Any,
        *,
        arguments: Optional[Mapping[str, Any]] = None,
        required: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if isinstance(source, (str, Path)):
            from launchcore.description import PythonDescriptionSource

            source = PythonDescriptionSource(source)
        self.source = source
        self._arguments = _normalize_bindings(arguments)
        self.required = required

    @property
    def escalates_failure(self) -> bool:  # type: ignore[override]
        return self.required

    def _load(self, run: "ActionRun") -> Action:
        from launchcore.description import LaunchDescription

        if isinstance(self.source, LaunchDescription):
            return self.source
        if isinstance(self.source, DescriptionSource):
            try:
                return self.source.load(run.context)
            except LaunchError:
                raise
            except Exception as e:
                raise IncludeError(self.source, cause=e) from e
        raise IncludeError(self.source, cause=TypeError("not a description source"))

    def execute(self, run: "ActionRun") -> None:
        ctx = run.context
        resolved = [(k, perform_substitutions(ctx, v)) for k, v in self._arguments]
        with ctx.scope():
            for k, v in resolved:
                ctx.set(k, v)
            run.activate([self._load(run)])

    def describe(self) -> str:
        return f"IncludeDescription({self.source!r})"
