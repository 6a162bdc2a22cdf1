"""Domain layer definitions."""

from .outcomes import (
    ActionOutcome,
    ErrorInfo,
    JobRecord,
    PageLoad,
    RunCompleted,
    RunObservationFailed,
    RunTimedOut,
    WaitResult,
)
from .runs import (
    TERMINAL_STATES,
    Artifact,
    InvocationContext,
    ListPage,
    ObjectReference,
    RunEvent,
    RunHandle,
    RunState,
    RunStatus,
)

__all__ = [
    "ActionOutcome",
    "Artifact",
    "ErrorInfo",
    "InvocationContext",
    "JobRecord",
    "ListPage",
    "ObjectReference",
    "PageLoad",
    "RunCompleted",
    "RunEvent",
    "RunHandle",
    "RunObservationFailed",
    "RunState",
    "RunStatus",
    "RunTimedOut",
    "TERMINAL_STATES",
    "WaitResult",
]
