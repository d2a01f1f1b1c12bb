"""Description trees and the sources that produce them.

A front end builds a :class:`LaunchDescription`; the engine never looks at the
syntax it came from. :class:`PythonDescriptionSource` loads a Python file that
defines ``generate_description()``, which is what the CLI and
``IncludeDescription("path.py")`` use.
"""

from __future__ import annotations

import importlib.util
import inspect
from pathlib import Path
from typing import Any, Iterable, List, Optional, TYPE_CHECKING

from launchcore.actions.base import Action, as_action_list
from launchcore.actions.basic import DeclareArgument

if TYPE_CHECKING:
    from launchcore.services.context import LaunchContext
    from launchcore.services.executor import ActionRun


class LaunchDescription(Action):
    """Ordered, unscoped sequence of actions; the root of a description tree."""

    # описание прозрачно: провал обязательного include поднимается до ближайшей группы
    escalates_failure = True

    def __init__(self, actions: Optional[Iterable[Action]] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._actions: List[Action] = as_action_list(actions)

    @property
    def actions(self) -> List[Action]:
        return list(self._actions)

    def add_action(self, action: Action) -> None:
        """Only valid while the tree is being built, before it is handed to an executor."""
        self._actions.append(action)

    def execute(self, run: "ActionRun") -> List[Action]:
        return self.actions

    def declared_arguments(self) -> List[DeclareArgument]:
        """Statically visible DeclareArgument actions, descending into groups and nested descriptions."""
        out: List[DeclareArgument] = []

        def walk(actions: Iterable[Action]) -> None:
            for a in actions:
                if isinstance(a, DeclareArgument):
                    out.append(a)
                nested = getattr(a, "actions", None)
                if isinstance(nested, list):
                    walk(nested)

        walk(self._actions)
        return out

    def describe(self) -> str:
        return f"LaunchDescription({len(self._actions)} actions)"


class PythonDescriptionSource:
    """Loads ``generate_description()`` from a Python file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self, context: Optional["LaunchContext"] = None) -> LaunchDescription:
        path = self.path.expanduser().resolve()
        if not path.is_file():
            raise FileNotFoundError(str(path))
        spec = importlib.util.spec_from_file_location(f"launchcore_description_{path.stem}", path)
        if spec is None or spec.loader is None:
            raise ImportError(f"cannot load description file {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        factory = getattr(module, "generate_description", None)
        if factory is None:
            raise AttributeError(f"{path} does not define generate_description()")
        # generate_description(context) или generate_description()
        params = inspect.signature(factory).parameters
        result = factory(context) if params else factory()
        if isinstance(result, LaunchDescription):
            return result
        return LaunchDescription(as_action_list(result))

    def __repr__(self) -> str:
        return f"PythonDescriptionSource({str(self.path)!r})"
