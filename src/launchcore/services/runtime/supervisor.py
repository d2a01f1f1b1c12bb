# src/launchcore/services/runtime/supervisor.py
from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from launchcore.config import const
from launchcore.domain import EventType, ProcessSpawnError, ProcessSpec, ProcessSupervisionError
from launchcore.ports import EventBus, ProcessSupervisor
from launchcore.services.eventbus import emit

_log = logging.getLogger("launchcore.supervisor")


def _gen_handle() -> str:
    return uuid.uuid4().hex


class ProcState(str, Enum):
    INIT = "init"
    STARTING = "starting"
    RUNNING = "running"
    BACKOFF = "backoff"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass(slots=True, eq=False)
class ProcessHandle:
    id: str
    name: str
    spec: ProcessSpec
    owner: Any = None
    state: ProcState = ProcState.INIT
    pid: Optional[int] = None
    restarts: int = 0
    last_start_ts: float = 0.0
    proc: Optional[asyncio.subprocess.Process] = None
    task: Optional[asyncio.Task] = None
    # итог выполнения
    returncode: Optional[int] = None
    signal: Optional[int] = None
    error: Optional[str] = None
    terminating: bool = False
    stop_requested: asyncio.Event = field(default_factory=asyncio.Event)
    finished: Optional[asyncio.Future] = None

    @property
    def alive(self) -> bool:
        return self.proc is not None and self.proc.returncode is None

    def __repr__(self) -> str:
        return f"ProcessHandle({self.name!r}, pid={self.pid}, state={self.state.value})"


class AsyncProcessSupervisor(ProcessSupervisor):
    """
    Владелец всех дочерних процессов ОС:
      - запускает spec.cmd через asyncio.create_subprocess_exec
      - публикует в шину process.started | process.exited | process.io
      - respawn с экспоненциальным backoff и ограничением перезапусков
      - SIGTERM -> ожидание -> SIGKILL при остановке
    The registry of handles is only touched from the loop thread; exit
    notifications reach the executor through the bus queue.
    """

    def __init__(self, bus: EventBus, *, sigterm_timeout: float = const.SIGTERM_TIMEOUT_S) -> None:
        self._bus = bus
        self._handles: Dict[str, ProcessHandle] = {}
        self._sigterm_timeout = sigterm_timeout
        # выставляется terminate_all: новые процессы после этого сразу останавливаются
        self._closing = False

    # ---------- API ----------

    async def spawn(self, spec: ProcessSpec, *, owner: Any = None) -> ProcessHandle:
        loop = asyncio.get_running_loop()
        handle = ProcessHandle(id=_gen_handle(), name=spec.name, spec=spec, owner=owner, finished=loop.create_future())
        await self._start_once(handle)
        self._handles[handle.id] = handle
        handle.task = asyncio.create_task(self._supervise(handle))
        if self._closing:
            # процесс стартовал, пока шла остановка: terminate_all его уже не увидел
            _log.info("process.started_during_shutdown", extra={"extra": {"name": handle.name, "pid": handle.pid}})
            await self.terminate(handle)
        return handle

    async def terminate(self, handle: ProcessHandle, timeout_s: Optional[float] = None) -> None:
        """Graceful stop. Calling it on an exited or already terminating process does nothing."""
        if handle.terminating or (handle.finished is not None and handle.finished.done()):
            return
        handle.terminating = True
        handle.stop_requested.set()
        timeout_s = self._timeout_for(handle, timeout_s)

        proc = handle.proc
        if proc is None or proc.returncode is not None:
            return  # между перезапусками: супервизор увидит stop_requested

        handle.state = ProcState.STOPPING
        _log.info("process.terminating", extra={"extra": {"name": handle.name, "pid": handle.pid}})
        self._send(handle, signal.SIGTERM if hasattr(signal, "SIGTERM") else None)
        try:
            await asyncio.wait_for(asyncio.shield(proc.wait()), timeout=timeout_s)
        except asyncio.TimeoutError:
            _log.warning("process.kill_escalation", extra={"extra": {"name": handle.name, "pid": handle.pid, "timeout": timeout_s}})
            self.kill(handle)

    def kill(self, handle: ProcessHandle) -> None:
        if handle.alive:
            handle.terminating = True
            handle.stop_requested.set()
            self._send(handle, getattr(signal, "SIGKILL", None))

    async def terminate_all(self, timeout_s: Optional[float] = None) -> None:
        self._closing = True
        handles = [h for h in self._handles.values() if h.finished is not None and not h.finished.done()]
        if not handles:
            return
        results = await asyncio.gather(*(self.terminate(h, timeout_s) for h in handles), return_exceptions=True)
        for h, res in zip(handles, results):
            if isinstance(res, Exception):
                _log.error("process.terminate_failed", extra={"extra": {"name": h.name, "error": repr(res)}})

    def kill_all(self) -> None:
        for h in list(self._handles.values()):
            try:
                self.kill(h)
            except ProcessSupervisionError as e:
                _log.error("process.kill_failed", extra={"extra": {"name": h.name, "error": str(e)}})

    @property
    def closing(self) -> bool:
        return self._closing

    def live_handles(self) -> List[ProcessHandle]:
        return [h for h in self._handles.values() if h.alive or (h.finished is not None and not h.finished.done())]

    def release(self, handle: ProcessHandle) -> None:
        """Forget a handle whose final exit event has been dispatched."""
        if handle.finished is not None and handle.finished.done():
            self._handles.pop(handle.id, None)

    def get(self, handle_id: str) -> Optional[ProcessHandle]:
        return self._handles.get(handle_id)

    # ---------- внутренняя логика ----------

    def _timeout_for(self, handle: ProcessHandle, timeout_s: Optional[float]) -> float:
        if handle.spec.sigterm_timeout is not None:
            return handle.spec.sigterm_timeout
        return self._sigterm_timeout if timeout_s is None else timeout_s

    def _send(self, handle: ProcessHandle, sig: Optional[int]) -> None:
        proc = handle.proc
        if proc is None:
            return
        try:
            if sig is None:
                proc.terminate()  # windows
            else:
                proc.send_signal(sig)
        except ProcessLookupError:
            pass  # уже завершился
        except OSError as e:
            raise ProcessSupervisionError(handle.name, detail=f"signal {sig}: {e}") from e

    async def _start_once(self, handle: ProcessHandle) -> None:
        spec = handle.spec
        handle.state = ProcState.STARTING
        handle.last_start_ts = time.time()
        pipe = asyncio.subprocess.PIPE if spec.output != "none" or spec.emit_output_events else asyncio.subprocess.DEVNULL
        try:
            handle.proc = await asyncio.create_subprocess_exec(
                *spec.cmd,
                stdout=pipe,
                stderr=pipe,
                cwd=spec.cwd,
                env=dict(spec.env) if spec.env is not None else None,
            )
        except (OSError, ValueError) as e:  # ошибка старта
            handle.state = ProcState.ERROR
            handle.error = f"start_error: {e!r}"
            raise ProcessSpawnError(spec.name, cause=e) from e

        handle.pid = handle.proc.pid
        handle.returncode = None
        handle.signal = None
        handle.state = ProcState.RUNNING
        _log.info("process.started", extra={"extra": {"name": handle.name, "pid": handle.pid, "cmd": spec.cmd}})
        emit(self._bus, EventType.PROCESS_STARTED, self._payload(handle), "supervisor")

    def _payload(self, handle: ProcessHandle, **extra: Any) -> dict:
        return {"handle": handle, "name": handle.name, "pid": handle.pid, "action": getattr(handle.owner, "action", None), "owner": handle.owner, **extra}

    async def _supervise(self, handle: ProcessHandle) -> None:
        assert handle.finished is not None
        try:
            while True:
                await self._wait_subprocess(handle)
                respawning = self._should_respawn(handle)
                _log.info(
                    "process.exited",
                    extra={"extra": {"name": handle.name, "pid": handle.pid, "returncode": handle.returncode, "respawning": respawning}},
                )
                emit(
                    self._bus,
                    EventType.PROCESS_EXITED,
                    self._payload(handle, returncode=handle.returncode, signal=handle.signal, respawning=respawning),
                    "supervisor",
                )
                if not respawning:
                    handle.state = ProcState.STOPPED
                    handle.finished.set_result(handle.returncode)
                    return

                # backoff, как в анти-crash менеджера процессов
                handle.restarts += 1
                base = handle.spec.respawn_delay
                delay = min(base * (2 ** (handle.restarts - 1)), max(base, const.RESPAWN_BACKOFF_MAX_S))
                handle.state = ProcState.BACKOFF
                try:
                    await asyncio.wait_for(handle.stop_requested.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
                if handle.terminating:
                    handle.state = ProcState.STOPPED
                    handle.finished.set_result(handle.returncode)
                    return
                await self._start_once(handle)
        except ProcessSpawnError as e:
            _log.error("process.respawn_failed", extra={"extra": {"name": handle.name, "error": str(e)}})
            if not handle.finished.done():
                handle.finished.set_exception(e)
        except asyncio.CancelledError:
            if not handle.finished.done():
                handle.finished.cancel()
            raise

    def _should_respawn(self, handle: ProcessHandle) -> bool:
        spec = handle.spec
        if not spec.respawn or handle.terminating:
            return False
        return spec.max_respawns is None or handle.restarts < spec.max_respawns

    async def _wait_subprocess(self, handle: ProcessHandle) -> None:
        proc = handle.proc
        assert proc is not None
        pumps = [
            asyncio.create_task(self._pump(handle, stream, label))
            for stream, label in ((proc.stdout, "stdout"), (proc.stderr, "stderr"))
            if stream is not None
        ]
        await proc.wait()
        if pumps:
            await asyncio.gather(*pumps, return_exceptions=True)
        rc = proc.returncode
        handle.returncode = rc
        handle.signal = -rc if rc is not None and rc < 0 else None

    async def _pump(self, handle: ProcessHandle, stream: asyncio.StreamReader, label: str) -> None:
        out_log = logging.getLogger(f"launchcore.process.{handle.name}")
        while True:
            line = await stream.readline()
            if not line:
                return
            text = line.decode(errors="replace").rstrip("\r\n")
            if handle.spec.output == "log":
                out_log.log(logging.INFO if label == "stdout" else logging.WARNING, text)
            elif handle.spec.output == "screen":
                target = sys.stdout if label == "stdout" else sys.stderr
                print(f"[{handle.name}-{handle.pid}] {text}", file=target)
            if handle.spec.emit_output_events:
                emit(self._bus, EventType.PROCESS_IO, self._payload(handle, stream=label, text=text), "supervisor")
