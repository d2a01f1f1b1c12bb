from .types import Event, ProcessSpec, ActionState, EventType
from .errors import (
    LaunchError,
    DuplicateArgument,
    UndeclaredVariable,
    ArgumentValueError,
    SubstitutionResolutionError,
    ConditionEvaluationError,
    ProcessSpawnError,
    ProcessSupervisionError,
    HandlerError,
    IncludeError,
)

__all__ = [
    "Event",
    "ProcessSpec",
    "ActionState",
    "EventType",
    "LaunchError",
    "DuplicateArgument",
    "UndeclaredVariable",
    "ArgumentValueError",
    "SubstitutionResolutionError",
    "ConditionEvaluationError",
    "ProcessSpawnError",
    "ProcessSupervisionError",
    "HandlerError",
    "IncludeError",
]
