# src/launchcore/services/executor.py
from __future__ import annotations

import asyncio
import functools
import logging
import signal
from typing import Callable, Iterable, List, Optional, Set

from launchcore.actions.base import Action, as_action_list
from launchcore.domain import ActionState, Event, EventType, HandlerError, LaunchError
from launchcore.services.context import LaunchContext, Scope
from launchcore.services.eventbus import WAKE, HandlerRegistry, LocalEventBus
from launchcore.services.handlers import EventHandler
from launchcore.services.runtime.supervisor import AsyncProcessSupervisor, ProcessHandle
from launchcore.services.settings import Settings

_log = logging.getLogger("launchcore.executor")


class ActionRun:
    """One activation of an action: its scope, state, children and outstanding work."""

    def __init__(self, action: Action, executor: "LaunchExecutor", scope: Scope, parent: Optional["ActionRun"]) -> None:
        self.action = action
        self.executor = executor
        self.scope = scope
        self.parent = parent
        self.state = ActionState.PENDING
        self.error: Optional[BaseException] = None
        self.children: List[ActionRun] = []
        self.process: Optional[ProcessHandle] = None
        self._holds: Set[asyncio.Future] = set()
        self._cancel_callbacks: List[Callable[[str], None]] = []
        self._executing = False

    @property
    def context(self) -> LaunchContext:
        return self.executor.context

    @property
    def terminal(self) -> bool:
        return self.state.terminal

    # ---------- API для действий ----------

    def activate(self, actions: Iterable[Action]) -> List["ActionRun"]:
        """Activate children in the context's current scope, in order, within this turn."""
        return [self.executor._activate(a, self.context.current_scope, parent=self) for a in as_action_list(actions)]

    def activate_deferred(self, actions: Iterable[Action]) -> List["ActionRun"]:
        """Activate children later (timer fire, handler body) in the scope this run was created in."""
        if self.terminal:
            return []
        with self.context.entered(self.scope):
            runs = self.activate(actions)
        self._maybe_finish()
        return runs

    def hold(self, fut: asyncio.Future) -> None:
        """Keep the run in Running until ``fut`` resolves; an exception from it fails the run."""
        self._holds.add(fut)
        fut.add_done_callback(self._hold_done)

    def on_cancel(self, callback: Callable[[str], None]) -> None:
        self._cancel_callbacks.append(callback)

    def cancel(self, reason: str) -> None:
        for cb in list(self._cancel_callbacks):
            cb(reason)

    # ---------- состояние ----------

    def _hold_done(self, fut: asyncio.Future) -> None:
        self._holds.discard(fut)
        if not fut.cancelled():
            exc = fut.exception()
            if exc is not None:
                self.fail(exc)
                return
        self._maybe_finish()

    def fail(self, error: BaseException) -> None:
        if self.terminal:
            return
        self.error = error
        self._finish(ActionState.FAILED)

    def skip(self) -> None:
        if not self.terminal:
            self._finish(ActionState.SKIPPED)

    def _maybe_finish(self) -> None:
        if self.terminal or self._executing:
            return
        if self._holds or any(not c.terminal for c in self.children):
            self.state = ActionState.RUNNING
            return
        self._finish(ActionState.COMPLETED)

    def _finish(self, state: ActionState) -> None:
        self.state = state
        self.executor._on_terminal(self)

    def _child_finished(self, child: "ActionRun") -> None:
        if self.terminal:
            return
        if child.state is ActionState.FAILED and child.action.escalates_failure:
            self.fail(child.error or LaunchError(f"{child.action.describe()} failed"))
            return
        self._maybe_finish()

    def __repr__(self) -> str:
        return f"<ActionRun {self.action.describe()} {self.state.value}>"


class LaunchExecutor:
    """
    Главный цикл запуска.

    Phase one visits the root descriptions (configure). Phase two drains the
    event queue and runs until no unresolved activation remains, or until
    shutdown has finished or its grace period elapsed. All context mutation and
    handler dispatch happen on the loop thread, one event per turn.
    """

    def __init__(
        self,
        context: Optional[LaunchContext] = None,
        *,
        settings: Optional[Settings] = None,
        supervisor: Optional[AsyncProcessSupervisor] = None,
        fail_fast: Optional[bool] = None,
    ) -> None:
        self.settings = settings or Settings.from_sources(env_file=None)
        self.context = context or LaunchContext(write_policy=self.settings.handler_write_policy)
        bus = self.context.bus
        if not isinstance(bus, LocalEventBus):
            raise TypeError("LaunchExecutor needs a LocalEventBus on the context")
        self._bus: LocalEventBus = bus
        self.supervisor = supervisor or AsyncProcessSupervisor(bus, sigterm_timeout=self.settings.sigterm_timeout)
        self.fail_fast = self.settings.fail_fast if fail_fast is None else fail_fast
        self.handlers = HandlerRegistry()
        self.runs: List[ActionRun] = []
        self._roots: List[Action] = []
        self._live: Set[ActionRun] = set()
        self._fatal: List[BaseException] = []
        self._shutting_down = False
        self._shutdown_deadline: Optional[float] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # ---------- публичный API ----------

    def include(self, description: Action) -> None:
        self._roots.append(description)
        if self._loop is not None:
            self._loop.call_soon(self._activate, description, self.context.current_scope)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def failures(self) -> List[ActionRun]:
        return [r for r in self.runs if r.state is ActionState.FAILED]

    def register_handler(self, handler: EventHandler, scope: Optional[Scope] = None) -> None:
        self.handlers.register(handler, scope or self.context.current_scope)

    def unregister_handler(self, handler: EventHandler) -> None:
        self.handlers.unregister(handler)

    def request_shutdown(self, reason: str = "", *, source: str = "launch") -> None:
        """Emit the shutdown event; termination starts when it is dispatched."""
        self.context.emit_event(Event(type=EventType.SHUTDOWN, payload={"reason": reason}, source=source))

    def cancel_action(self, action: Action, *, reason: str = "cancelled") -> None:
        for run in list(self._live):
            if run.action is action:
                run.cancel(reason)

    def run(self) -> int:
        return asyncio.run(self.run_async())

    async def run_async(self) -> int:
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._bus.bind(loop)
        installed = self._install_signal_handlers(loop)
        try:
            # фаза 1: конфигурирование - обходим корневые описания
            for root in list(self._roots):
                self._activate(root, self.context.current_scope)
            # фаза 2: исполнение до shutdown / исчерпания
            await self._loop_until_done(loop)
        finally:
            await self._finalize(loop, installed)
        return self.exit_code

    @property
    def exit_code(self) -> int:
        return 1 if self._fatal else 0

    # ---------- цикл ----------

    def _idle(self) -> bool:
        return not self._live and self._bus.pending() == 0

    async def _loop_until_done(self, loop: asyncio.AbstractEventLoop) -> None:
        while not self._idle():
            timeout = None
            if self._shutdown_deadline is not None:
                timeout = self._shutdown_deadline - loop.time()
                if timeout <= 0:
                    _log.warning("executor.shutdown_grace_elapsed", extra={"extra": {"live": [repr(r) for r in self._live]}})
                    return
            try:
                item = await asyncio.wait_for(self._bus.next(), timeout=timeout)
            except asyncio.TimeoutError:
                continue
            if item is WAKE:
                continue
            self._dispatch(item)

    def _dispatch(self, event: Event) -> None:
        self._bus.notify(event)
        first_shutdown = event.type == EventType.SHUTDOWN and not self._shutting_down
        if event.type == EventType.SHUTDOWN:
            if first_shutdown:
                self._shutting_down = True
            else:
                _log.info("executor.shutdown_already_in_progress", extra={"extra": {"source": event.source}})

        matched = self.handlers.matching(event)
        with self.context.dispatch_turn():
            # все действия всех совпавших обработчиков активируются до следующего события
            for reg in matched:
                if reg.handler.handle_once:
                    self.handlers.unregister(reg.handler)
                with self.context.entered(reg.scope):
                    try:
                        # тело-функция может вернуть что угодно: проверяем до активации
                        actions = as_action_list(reg.handler.handle(event, self.context))
                    except Exception as e:
                        self._record_failure(None, HandlerError(reg.handler, event.type, cause=e))
                        continue
                    for action in actions:
                        self._activate(action, reg.scope)

        if first_shutdown:
            self._begin_shutdown(event)
        if event.type == EventType.PROCESS_EXITED and not event.payload.get("respawning"):
            handle = event.payload.get("handle")
            if handle is not None:
                self.supervisor.release(handle)

    # ---------- активация ----------

    def _activate(self, action: Action, scope: Scope, parent: Optional[ActionRun] = None) -> ActionRun:
        run = ActionRun(action, self, scope, parent)
        self.runs.append(run)
        self._live.add(run)
        if parent is not None:
            parent.children.append(run)

        if self._shutting_down and not action.runs_during_shutdown:
            run.skip()
            return run

        with self.context.entered(scope):
            run.state = ActionState.EVALUATING_CONDITION
            try:
                eligible = action.condition is None or action.condition.evaluate(self.context)
            except LaunchError as e:
                run.fail(e)
                return run
            if not eligible:
                _log.debug("action.skipped", extra={"extra": {"action": action.describe()}})
                run.skip()
                return run

            run.state = ActionState.ACTIVATED
            run._executing = True
            try:
                children = action.execute(run)
                if children:
                    run.activate(children)
            except Exception as e:
                run._executing = False
                run.fail(e)
                return run
            run._executing = False
        run._maybe_finish()
        return run

    def _on_terminal(self, run: ActionRun) -> None:
        self._live.discard(run)
        if run.state is ActionState.FAILED:
            self._record_failure(run, run.error)
        if run.parent is not None:
            run.parent._child_finished(run)
        elif run.state is ActionState.FAILED and run.action.escalates_failure:
            # обязательный include без охватывающей группы - провал всего запуска
            self._fatal.append(run.error or LaunchError("required action failed"))
        self._bus.wake()

    def _record_failure(self, run: Optional[ActionRun], error: Optional[BaseException]) -> None:
        what = run.action.describe() if run is not None else "handler"
        _log.error("action.failed", extra={"extra": {"action": what, "error": str(error), "kind": type(error).__name__}})
        if self.fail_fast:
            self._fatal.append(error or LaunchError(f"{what} failed"))
            if not self._shutting_down:
                self.request_shutdown(f"fail-fast: {what} failed", source="executor")

    # ---------- shutdown ----------

    def _begin_shutdown(self, event: Event) -> None:
        assert self._loop is not None
        _log.info("executor.shutdown", extra={"extra": {"reason": event.payload.get("reason", ""), "source": event.source}})
        self._shutdown_deadline = self._loop.time() + self.settings.shutdown_grace
        for run in list(self._live):
            if run.state in (ActionState.PENDING, ActionState.EVALUATING_CONDITION):
                run.skip()
            else:
                run.cancel("shutdown")
        self._shutdown_task = self._loop.create_task(self.supervisor.terminate_all(self.settings.sigterm_timeout))

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> List[int]:
        if not self.settings.handle_signals:
            return []
        installed: List[int] = []
        for sig in (getattr(signal, "SIGINT", None), getattr(signal, "SIGTERM", None)):
            if sig is None:
                continue
            try:
                loop.add_signal_handler(sig, functools.partial(self.request_shutdown, f"signal {signal.Signals(sig).name}", source="signal"))
            except (NotImplementedError, RuntimeError, ValueError):
                continue  # windows / не главный поток
            installed.append(sig)
        return installed

    async def _finalize(self, loop: asyncio.AbstractEventLoop, installed: List[int]) -> None:
        for sig in installed:
            loop.remove_signal_handler(sig)
        if self._shutdown_task is not None and not self._shutdown_task.done():
            self._shutdown_task.cancel()
            try:
                await self._shutdown_task
            except asyncio.CancelledError:
                pass
        # всё, что пережило grace-период, добиваем
        leftovers = self.supervisor.live_handles()
        if leftovers:
            _log.warning("executor.force_kill", extra={"extra": {"processes": [h.name for h in leftovers]}})
            self.supervisor.kill_all()
            for h in leftovers:
                if h.task is not None and not h.task.done():
                    h.task.cancel()
            await asyncio.gather(*(h.task for h in leftovers if h.task is not None), return_exceptions=True)
        for run in list(self._live):
            for fut in list(run._holds):
                fut.cancel()
        unused = self.context.unused_launch_arguments()
        if unused:
            _log.warning("executor.unused_launch_arguments", extra={"extra": {"names": unused}})
        self._bus.unbind()
        self._loop = None
