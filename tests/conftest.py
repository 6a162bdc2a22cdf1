from __future__ import annotations

import asyncio
import json
import re
import sys
from pathlib import Path
from typing import Any

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from workbench.application import WorkbenchService
from workbench.application.invocations import InvocationIssuer, RunPipeline
from workbench.core.settings import TimeoutPolicy, WorkbenchSettings
from workbench.domain import InvocationContext
from workbench.infrastructure import StaticCredentialProvider, WorkbenchClient
from workbench.workers.poller import CompletionPoller

BASE_URL = "http://backend.test"
STORE_URL = "https://store.test"

_RUN_PATH = re.compile(r"^/workbench/runs/(\d+)$")
_RUN_ARTIFACTS_PATH = re.compile(r"^/workbench/runs/(\d+)/artifacts$")
_RUN_CONTROL_PATH = re.compile(r"^/workbench/runs/(\d+)/(cancel|retry|input)$")
_ARTIFACT_PATH = re.compile(r"^/workbench/artifacts/([^/]+)$")


class FakeClock:
    """Monotonic clock advanced only by the poller's sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeBackend:
    """Scripted stand-in for the workbench REST surface.

    Each planned invocation gets a list of states returned by successive
    status polls (the last one repeats) and the artifacts listed once it
    succeeds.
    """

    def __init__(self, tenant_id: int = 7) -> None:
        self.tenant_id = tenant_id
        self.requests: list[httpx.Request] = []
        self.invocations: list[dict[str, Any]] = []
        self.planned: list[tuple[list[Any], list[dict[str, Any]]]] = []
        self.states: dict[int, list[Any]] = {}
        self.artifacts: dict[int, list[dict[str, Any]]] = {}
        self.status_polls: dict[int, int] = {}
        self.presigns: list[dict[str, Any]] = []
        self.puts: list[dict[str, Any]] = []
        self.controls: list[tuple[int, str, Any]] = []
        self.files: dict[str, httpx.Response] = {}
        self.invocation_error: tuple[int, str] | None = None
        self.presign_error: tuple[int, str] | None = None
        self.put_error: tuple[int, str] | None = None
        self.artifacts_error: tuple[int, str] | None = None
        self.listing_queries: list[tuple[str, dict[str, str]]] = []
        self.artifact_listing: Any = None
        self.runs_listing: Any = None
        self._next_run_id = 100

    def plan(self, states: list[Any], artifacts: list[dict[str, Any]] | None = None) -> None:
        self.planned.append((list(states), list(artifacts or [])))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = request.url

        if url.host == "store.test" and request.method == "PUT":
            self.puts.append({"url": str(url), "headers": request.headers, "content": request.content})
            if self.put_error:
                return httpx.Response(self.put_error[0], text=self.put_error[1])
            return httpx.Response(200)

        if url.host == "files.test":
            return self.files.get(str(url), httpx.Response(404, text="missing"))

        path = url.path
        if path == "/workbench/invocations" and request.method == "POST":
            return self._start(request)

        if path == "/workbench/object-store/presign-upload":
            body = json.loads(request.content)
            self.presigns.append(body)
            if self.presign_error:
                return httpx.Response(self.presign_error[0], text=self.presign_error[1])
            number = len(self.presigns)
            return httpx.Response(
                200,
                json={
                    "upload_url": f"{STORE_URL}/put/{number}",
                    "required_headers": {"x-amz-meta-sha256": body["sha256"]},
                    "object_key": f"uploads/tenant-{self.tenant_id}/{body['purpose']}/obj-{number}",
                    "expires_at": "2030-01-01T00:00:00Z",
                },
            )

        if path in ("/workbench/artifacts", "/workbench/runs") and request.method == "GET":
            return self._listing(path, request)

        match = _RUN_PATH.match(path)
        if match:
            return self._status(int(match.group(1)))

        match = _RUN_ARTIFACTS_PATH.match(path)
        if match:
            if self.artifacts_error:
                return httpx.Response(self.artifacts_error[0], text=self.artifacts_error[1])
            return httpx.Response(200, json=self.artifacts.get(int(match.group(1)), []))

        match = _RUN_CONTROL_PATH.match(path)
        if match:
            run_id = int(match.group(1))
            if run_id not in self.states:
                return httpx.Response(404, text="run not found")
            body = json.loads(request.content) if request.content else None
            self.controls.append((run_id, match.group(2), body))
            return httpx.Response(204)

        match = _ARTIFACT_PATH.match(path)
        if match:
            artifact_id = match.group(1)
            for artifacts in self.artifacts.values():
                for artifact in artifacts:
                    if artifact["artifact_id"] == artifact_id:
                        return httpx.Response(200, json=artifact)
            return httpx.Response(404, text="artifact not found")

        return httpx.Response(404, text=f"unexpected {request.method} {path}")

    def _start(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.invocations.append({"headers": request.headers, "body": body})
        if self.invocation_error:
            return httpx.Response(self.invocation_error[0], text=self.invocation_error[1])
        run_id = self._next_run_id
        self._next_run_id += 1
        states, artifacts = self.planned.pop(0) if self.planned else (["succeeded"], [])
        self.states[run_id] = states
        self.artifacts[run_id] = artifacts
        return httpx.Response(201, json={"invocation_id": f"inv-{run_id}", "run_id": run_id})

    def _listing(self, path: str, request: httpx.Request) -> httpx.Response:
        """Serve the artifact and run listings; a scripted body wins over the defaults."""
        self.listing_queries.append((path, dict(request.url.params)))
        if path == "/workbench/runs":
            if self.runs_listing is not None:
                return httpx.Response(200, json=self.runs_listing)
            runs = [{"run_id": run_id, "state": states[0]} for run_id, states in sorted(self.states.items())]
            return httpx.Response(200, json={"items": runs})
        if self.artifact_listing is not None:
            return httpx.Response(200, json=self.artifact_listing)
        return httpx.Response(200, json=[artifact for items in self.artifacts.values() for artifact in items])

    def _status(self, run_id: int) -> httpx.Response:
        states = self.states.get(run_id)
        if states is None:
            return httpx.Response(404, text="run not found")
        self.status_polls[run_id] = self.status_polls.get(run_id, 0) + 1
        entry = states.pop(0) if len(states) > 1 else states[0]
        state, reason = entry if isinstance(entry, tuple) else (entry, None)
        return httpx.Response(200, json={"run_id": run_id, "state": state, "failure_reason": reason})


def list_artifact(
    ids: list[int],
    *,
    has_more: bool = False,
    next_after_id: int | None = None,
    entity_type: str = "school",
    artifact_id: str = "art-list",
    **extra: Any,
) -> dict[str, Any]:
    content = {
        "entity_type": entity_type,
        "ids": ids,
        "has_more": has_more,
        "next_after_id": next_after_id,
        "page": 1,
        "page_size": extra.pop("page_size", 50),
        **extra,
    }
    return {
        "artifact_id": artifact_id,
        "type": "admin.entity.list",
        "schema_version": "v1",
        "content": content,
        "summary": None,
        "title": None,
    }


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def client(backend: FakeBackend) -> WorkbenchClient:
    http_client = httpx.AsyncClient(transport=backend.transport())
    return WorkbenchClient(BASE_URL, credentials=StaticCredentialProvider("test-token"), http_client=http_client)


@pytest.fixture()
def poller(client: WorkbenchClient, clock: FakeClock) -> CompletionPoller:
    return CompletionPoller(client, sleep=clock.sleep, clock=clock)


@pytest.fixture()
def pipeline(client: WorkbenchClient, poller: CompletionPoller) -> RunPipeline:
    issuer = InvocationIssuer(client, plugin_id="admin.ops.v1")
    return RunPipeline(issuer, client, poller)


@pytest.fixture()
def context() -> InvocationContext:
    return InvocationContext(message_id="msg-1", topic_id="topic-1")


@pytest.fixture()
def settings() -> WorkbenchSettings:
    return WorkbenchSettings(base_url=BASE_URL, api_token="test-token", timeouts=TimeoutPolicy())


@pytest.fixture()
def service(client: WorkbenchClient, poller: CompletionPoller, settings: WorkbenchSettings) -> WorkbenchService:
    return WorkbenchService(client, settings=settings, poller=poller)
