from __future__ import annotations
import asyncio
import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, DefaultDict, Deque, Iterator, List, Optional, TYPE_CHECKING

from launchcore.domain import Event
from launchcore.ports import EventBus

if TYPE_CHECKING:
    from launchcore.services.context import Scope
    from launchcore.services.handlers import EventHandler

Tap = Callable[[Event], Any]

_log = logging.getLogger("launchcore.bus")

# служебный маркер: «разбуди цикл, событий нет»
WAKE = object()


class LocalEventBus(EventBus):
    """
    Шина событий с потокобезопасной передачей в цикл исполнителя.
    - publish(event) - ставит событие в очередь (из любого потока)
    - subscribe(prefix, tap) - наблюдатели, вызываются при диспетчеризации
    Особенности:
      * prefix = "" или "*" - подписка на всё.
      * до bind(loop) события копятся в буфере и переносятся в очередь при привязке.
      * порядок доставки = порядок постановки в очередь.
    """

    def __init__(self) -> None:
        self._subs: DefaultDict[str, List[Tap]] = defaultdict(list)
        self._lock = RLock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None
        self._queue: Optional[asyncio.Queue] = None
        self._backlog: Deque[Any] = deque()

    # ---------- привязка к циклу ----------

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        with self._lock:
            self._loop = loop
            self._loop_thread = threading.get_ident()
            self._queue = asyncio.Queue()
            while self._backlog:
                self._queue.put_nowait(self._backlog.popleft())

    def unbind(self) -> None:
        with self._lock:
            if self._queue is not None:
                while not self._queue.empty():
                    self._backlog.append(self._queue.get_nowait())
            self._loop = None
            self._loop_thread = None
            self._queue = None

    # ---------- API ----------

    def subscribe(self, type_prefix: str, handler: Tap) -> None:
        with self._lock:
            self._subs[type_prefix].append(handler)

    def publish(self, event: Event) -> None:
        self._put(event)

    def wake(self) -> None:
        self._put(WAKE)

    def _put(self, item: Any) -> None:
        with self._lock:
            loop, queue = self._loop, self._queue
            if queue is None or loop is None:
                self._backlog.append(item)
                return
            if threading.get_ident() == self._loop_thread:
                queue.put_nowait(item)
                return
        # чужой поток (например, поток ожидания процесса) - передаём через loop
        loop.call_soon_threadsafe(queue.put_nowait, item)

    async def next(self) -> Any:
        assert self._queue is not None, "bus is not bound to a loop"
        return await self._queue.get()

    def pending(self) -> int:
        with self._lock:
            n = len(self._backlog)
            if self._queue is not None:
                n += self._queue.qsize()
            return n

    def notify(self, event: Event) -> None:
        """Call the prefix taps for an event that is being dispatched."""
        with self._lock:
            pairs = [(p, hs[:]) for p, hs in self._subs.items()]
        for prefix, taps in pairs:
            if prefix == "*" or prefix == "" or event.type.startswith(prefix):
                for tap in taps:
                    try:
                        tap(event)
                    except Exception:
                        _log.exception("bus.tap_failed", extra={"extra": {"type": event.type}})


def emit(bus: EventBus, type_: str, payload: dict, source: str) -> None:
    bus.publish(Event(type=type_, payload=payload, source=source, ts=time.time()))


@dataclass(slots=True)
class _Registration:
    handler: "EventHandler"
    scope: "Scope"


class HandlerRegistry:
    """Active event handlers, kept in registration order."""

    def __init__(self) -> None:
        self._entries: List[_Registration] = []

    def register(self, handler: "EventHandler", scope: "Scope") -> None:
        self._entries.append(_Registration(handler, scope))

    def unregister(self, handler: "EventHandler") -> bool:
        for i, entry in enumerate(self._entries):
            if entry.handler is handler:
                del self._entries[i]
                return True
        return False

    def matching(self, event: Event) -> List[_Registration]:
        # снимок: обработчики, зарегистрированные во время такта, сработают только на следующие события
        return [e for e in list(self._entries) if e.handler.matches(event)]

    def __contains__(self, handler: object) -> bool:
        return any(e.handler is handler for e in self._entries)

    def __iter__(self) -> Iterator["EventHandler"]:
        return iter([e.handler for e in self._entries])

    def __len__(self) -> int:
        return len(self._entries)
