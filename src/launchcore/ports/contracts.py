# src/launchcore/ports/contracts.py
from __future__ import annotations
from typing import Any, Callable, Optional, Protocol, TYPE_CHECKING, runtime_checkable

from launchcore.domain import Event, ProcessSpec

if TYPE_CHECKING:
    from launchcore.description import LaunchDescription
    from launchcore.services.context import LaunchContext


@runtime_checkable
class EventBus(Protocol):
    def publish(self, event: Event) -> None: ...

    def subscribe(self, type_prefix: str, handler: Callable[[Event], Any]) -> None: ...


@runtime_checkable
class ProcessSupervisor(Protocol):
    async def spawn(self, spec: ProcessSpec, *, owner: Any = None) -> Any: ...

    async def terminate(self, handle: Any, timeout_s: Optional[float] = None) -> None: ...

    async def terminate_all(self, timeout_s: Optional[float] = None) -> None: ...

    def live_handles(self) -> list[Any]: ...

    def release(self, handle: Any) -> None: ...


@runtime_checkable
class DescriptionSource(Protocol):
    """Front-end collaborator: produces an already-built description tree."""

    def load(self, context: "LaunchContext") -> "LaunchDescription": ...
