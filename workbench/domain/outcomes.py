"""Typed results returned across the public boundary of the client."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Union

from .runs import ListPage, RunStatus


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    kind: str
    message: str


OutcomeStatus = Literal["succeeded", "running", "failed"]


@dataclass(frozen=True, slots=True)
class ActionOutcome:
    """Human readable result of running one action.

    ``running`` means the invocation was accepted but local observation
    stopped before the run settled; it is not a failure.
    """

    status: OutcomeStatus
    content: str
    error: ErrorInfo | None = None
    state: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status != "failed"

    @property
    def run_id(self) -> int | None:
        value = self.state.get("run_id")
        return int(value) if value is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "success": self.success,
            "content": self.content,
            "error": asdict(self.error) if self.error else None,
            "state": dict(self.state),
        }


@dataclass(frozen=True, slots=True)
class RunCompleted:
    status: RunStatus


@dataclass(frozen=True, slots=True)
class RunTimedOut:
    run_id: int
    timeout_ms: int
    timed_out: bool = True


@dataclass(frozen=True, slots=True)
class RunObservationFailed:
    run_id: int
    error: ErrorInfo


WaitResult = Union[RunCompleted, RunTimedOut, RunObservationFailed]


PageLoadStatus = Literal["loaded", "running", "ignored", "failed"]


@dataclass(frozen=True, slots=True)
class PageLoad:
    """Result of fetching one listing page."""

    status: PageLoadStatus
    page: ListPage | None = None
    run_id: int | None = None
    error: ErrorInfo | None = None


@dataclass(slots=True)
class JobRecord:
    """Represents a background run tracked on behalf of a caller."""

    job_id: str
    action_id: str
    run_id: int | None = None
    status: str = "pending"
    content: str | None = None
    error: str | None = None
    filename: str | None = None
