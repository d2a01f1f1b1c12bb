from __future__ import annotations

import asyncio
import os
import shlex
from typing import Any, Iterable, List, Mapping, Optional, Sequence, TYPE_CHECKING

from launchcore.actions.base import Action
from launchcore.domain import Event, EventType, ProcessSpawnError, ProcessSpec, SubstitutionResolutionError
from launchcore.services.handlers import Body, EventHandler
from launchcore.services.substitutions import SomeSubstitutions, normalize, normalize_list, perform_substitutions

if TYPE_CHECKING:
    from launchcore.services.context import LaunchContext
    from launchcore.services.executor import ActionRun

_OUTPUTS = ("log", "screen", "none")


class ExecuteProcess(Action):
    """Starts an OS process through the supervisor.

    The activation stays Running until the process has exited for good
    (respawns included). ``on_exit`` runs once, after the final exit of this
    particular process.
    """

    runs_during_shutdown = False

    def __init__(
        self,
        cmd: SomeSubstitutions | Sequence[SomeSubstitutions],
        *,
        name: Optional[SomeSubstitutions] = None,
        cwd: Optional[SomeSubstitutions] = None,
        env: Optional[Mapping[str, SomeSubstitutions]] = None,
        additional_env: Optional[Mapping[str, SomeSubstitutions]] = None,
        output: str = "log",
        emit_output_events: bool = False,
        on_exit: Body = None,
        respawn: bool = False,
        respawn_delay: float = 0.0,
        max_respawns: Optional[int] = None,
        sigterm_timeout: Optional[SomeSubstitutions | float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if output not in _OUTPUTS:
            raise ValueError(f"output must be one of {_OUTPUTS}, got {output!r}")
        # строка - одна команда целиком (разбивается shlex), список - по аргументу на элемент
        self._split = isinstance(cmd, str)
        self.cmd = [normalize(cmd)] if self._split else normalize_list(cmd)
        self.name = None if name is None else normalize(name)
        self.cwd = None if cwd is None else normalize(cwd)
        self.env = None if env is None else {k: normalize(v) for k, v in env.items()}
        self.additional_env = {k: normalize(v) for k, v in (additional_env or {}).items()}
        self.output = output
        self.emit_output_events = emit_output_events
        self.on_exit = on_exit
        self.respawn = respawn
        self.respawn_delay = respawn_delay
        self.max_respawns = max_respawns
        self.sigterm_timeout = None if sigterm_timeout is None else normalize(sigterm_timeout)

    def build_spec(self, context: "LaunchContext") -> ProcessSpec:
        parts = [perform_substitutions(context, arg) for arg in self.cmd]
        argv: List[str] = shlex.split(parts[0]) if self._split else parts
        if not argv:
            raise SubstitutionResolutionError("command resolved to an empty argv")

        if self.env is not None:
            env = {k: perform_substitutions(context, v) for k, v in self.env.items()}
        else:
            env = dict(context.environment)
        env.update({k: perform_substitutions(context, v) for k, v in self.additional_env.items()})

        timeout = None
        if self.sigterm_timeout is not None:
            text = perform_substitutions(context, self.sigterm_timeout)
            try:
                timeout = float(text)
            except ValueError as e:
                raise SubstitutionResolutionError(f"sigterm_timeout {text!r} is not a number", cause=e) from e

        return ProcessSpec(
            name=perform_substitutions(context, self.name) if self.name is not None else os.path.basename(argv[0]),
            cmd=argv,
            cwd=perform_substitutions(context, self.cwd) if self.cwd is not None else None,
            env=env,
            output=self.output,
            emit_output_events=self.emit_output_events,
            respawn=self.respawn,
            respawn_delay=self.respawn_delay,
            max_respawns=self.max_respawns,
            sigterm_timeout=timeout,
        )

    def execute(self, run: "ActionRun") -> None:
        spec = self.build_spec(run.context)
        handler: Optional[EventHandler] = None
        if self.on_exit is not None:
            # только финальный выход именно этого запуска, не любого процесса
            def matcher(ev: Event) -> bool:
                return ev.type == EventType.PROCESS_EXITED and ev.payload.get("owner") is run and not ev.payload.get("respawning")

            handler = EventHandler(matcher=matcher, entities=self.on_exit, handle_once=True)
            run.executor.register_handler(handler, run.context.current_scope)
        run.hold(asyncio.get_running_loop().create_task(self._run(run, spec, handler)))

    async def _run(self, run: "ActionRun", spec: ProcessSpec, handler: Optional[EventHandler]) -> Optional[int]:
        try:
            handle = await run.executor.supervisor.spawn(spec, owner=run)
        except ProcessSpawnError:
            if handler is not None:
                run.executor.unregister_handler(handler)
            raise
        run.process = handle
        return await asyncio.shield(handle.finished)

    def describe(self) -> str:
        first = self.cmd[0] if self.cmd else []
        return f"ExecuteProcess({''.join(s.describe() for s in first)})"
