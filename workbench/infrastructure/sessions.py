"""In-memory persistence for browse sessions and background jobs."""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Protocol

from workbench.domain import JobRecord


class SessionRepository(Protocol):
    """Persistence contract for state the gateway keeps between requests."""

    def next_session_id(self) -> str: ...

    def save_session(self, session_id: str, session: Any) -> None: ...

    def get_session(self, session_id: str) -> Any | None: ...

    def next_job_id(self) -> str: ...

    def save_job(self, job: JobRecord) -> None: ...

    def get_job(self, job_id: str) -> JobRecord | None: ...

    def list_jobs(self) -> list[JobRecord]: ...

    def reset(self) -> None: ...


class InMemorySessionRepository:
    """Simple in-memory repository for a single gateway process and tests."""

    def __init__(self) -> None:
        self._sessions: dict[str, Any] = {}
        self._jobs: dict[str, JobRecord] = {}
        self._session_counter = 0
        self._job_counter = 0

    def next_session_id(self) -> str:
        self._session_counter += 1
        return f"browse-{self._session_counter:05d}"

    def save_session(self, session_id: str, session: Any) -> None:
        self._sessions[session_id] = session

    def get_session(self, session_id: str) -> Any | None:
        return self._sessions.get(session_id)

    def next_job_id(self) -> str:
        self._job_counter += 1
        return f"job-{self._job_counter:05d}"

    def save_job(self, job: JobRecord) -> None:
        self._jobs[job.job_id] = job

    def get_job(self, job_id: str) -> JobRecord | None:
        job = self._jobs.get(job_id)
        return replace(job) if job is not None else None

    def list_jobs(self) -> list[JobRecord]:
        return [replace(job) for job in self._jobs.values()]

    def reset(self) -> None:
        self._sessions.clear()
        self._jobs.clear()
        self._session_counter = 0
        self._job_counter = 0
