"""Domain records for durable workbench runs."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RunState(str, Enum):
    """Lifecycle states reported by the backend for a run."""

    QUEUED = "queued"
    STARTING = "starting"
    RUNNING = "running"
    WAITING_FOR_INPUT = "waiting_for_input"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({RunState.SUCCEEDED, RunState.FAILED, RunState.CANCELLED})


@dataclass(frozen=True, slots=True)
class InvocationContext:
    """Identifies the conversation turn that triggered an invocation."""

    message_id: str
    topic_id: str | None = None
    thread_id: str | None = None

    @property
    def conversation_id(self) -> str | None:
        if not self.topic_id:
            return None
        if self.thread_id:
            return f"lc_thread:{self.thread_id}"
        return f"lc_topic:{self.topic_id}"


@dataclass(frozen=True, slots=True)
class RunHandle:
    """Identifiers returned by the backend when an invocation is accepted."""

    invocation_id: str
    run_id: int


@dataclass(frozen=True, slots=True)
class RunStatus:
    """One observation of a run; always re-fetched, never cached."""

    run_id: int
    state: str
    failure_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        try:
            return RunState(self.state).is_terminal
        except ValueError:
            return False

    def describe_failure(self) -> str:
        if self.failure_reason:
            return f"{self.state}（{self.failure_reason}）"
        return self.state


@dataclass(frozen=True, slots=True)
class Artifact:
    """Immutable typed result document produced by a run."""

    artifact_id: str
    type: str
    schema_version: str
    content: Any = None
    summary: str | None = None
    title: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def dispatch_key(self) -> tuple[str, str]:
        return (self.type, self.schema_version)


@dataclass(frozen=True, slots=True)
class ObjectReference:
    """Reference to an uploaded object used in place of an inline payload."""

    object_key: str
    sha256: str
    media_type: str
    sensitivity: str
    purpose: str

    def to_param(self) -> dict[str, Any]:
        return {
            "integrity": {"sha256": self.sha256},
            "locator": {"kind": "object_store", "object_key": self.object_key},
            "media_type": self.media_type,
            "purpose": self.purpose,
            "sensitivity": self.sensitivity,
        }


@dataclass(frozen=True, slots=True)
class ListPage:
    """A single page of an entity listing."""

    ids: list[int]
    items: list[dict[str, Any]] | None
    has_more: bool
    next_after_id: int | None
    total: int | None = None


@dataclass(frozen=True, slots=True)
class RunEvent:
    """A frame from the observational run event stream."""

    seq: int
    type: str
    state: str | None = None
    payload: Any = None
