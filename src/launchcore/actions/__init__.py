from .base import Action
from .basic import (
    LogInfo,
    DeclareArgument,
    SetVariable,
    UnsetVariable,
    SetEnvironmentVariable,
    UnsetEnvironmentVariable,
    RegisterEventHandler,
    UnregisterEventHandler,
    EmitEvent,
    OpaqueFunction,
    Shutdown,
)
from .group import GroupAction, IncludeDescription
from .timer import TimerAction, CancelTimer
from .process import ExecuteProcess

__all__ = [
    "Action",
    "LogInfo",
    "DeclareArgument",
    "SetVariable",
    "UnsetVariable",
    "SetEnvironmentVariable",
    "UnsetEnvironmentVariable",
    "RegisterEventHandler",
    "UnregisterEventHandler",
    "EmitEvent",
    "OpaqueFunction",
    "Shutdown",
    "GroupAction",
    "IncludeDescription",
    "TimerAction",
    "CancelTimer",
    "ExecuteProcess",
]
