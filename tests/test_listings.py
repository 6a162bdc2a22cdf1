from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import list_artifact
from workbench.app import create_app
from workbench.core.errors import ErrorKind, WorkbenchError


@pytest.mark.asyncio
async def test_artifact_listing_sends_only_set_filters(backend, client):
    backend.artifact_listing = [list_artifact([1, 2], artifact_id="art-1")]

    artifacts = await client.list_artifacts()
    await client.list_artifacts(conversation_id="lc_topic:t", run_id="12", limit=20)

    assert [artifact.artifact_id for artifact in artifacts] == ["art-1"]
    assert backend.listing_queries == [
        ("/workbench/artifacts", {}),
        ("/workbench/artifacts", {"conversation_id": "lc_topic:t", "run_id": "12", "limit": "20"}),
    ]


@pytest.mark.asyncio
async def test_artifact_listing_omits_blank_conversation(backend, client):
    backend.artifact_listing = []

    assert await client.list_artifacts(conversation_id="", limit=5.0) == []
    assert backend.listing_queries == [("/workbench/artifacts", {"limit": "5"})]


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["items", "artifacts"])
async def test_artifact_listing_accepts_envelopes(backend, client, key):
    backend.artifact_listing = {key: [list_artifact([3], artifact_id="art-3"), list_artifact([4], artifact_id="art-4")]}

    artifacts = await client.list_artifacts(run_id=5)

    assert [artifact.artifact_id for artifact in artifacts] == ["art-3", "art-4"]
    assert artifacts[0].content["ids"] == [3]


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"items": "nope"}, "not-a-list", 42])
async def test_non_array_artifact_listing_is_an_observation_failure(backend, client, body):
    backend.artifact_listing = body

    with pytest.raises(WorkbenchError) as excinfo:
        await client.list_artifacts()

    assert excinfo.value.kind is ErrorKind.OBSERVATION_FAILED


@pytest.mark.asyncio
async def test_malformed_listed_artifact_is_an_observation_failure(backend, client):
    backend.artifact_listing = [{"type": "admin.entity.list"}]

    with pytest.raises(WorkbenchError) as excinfo:
        await client.list_artifacts()

    assert excinfo.value.kind is ErrorKind.OBSERVATION_FAILED


@pytest.mark.asyncio
async def test_run_listing_accepts_array_and_envelope(backend, client):
    backend.runs_listing = [{"run_id": 1, "state": "running"}, "junk"]
    bare = await client.list_runs(state="running", conversation_id=None)

    backend.runs_listing = {"items": [{"run_id": 2, "state": "succeeded"}]}
    wrapped = await client.list_runs()

    assert bare == [{"run_id": 1, "state": "running"}]
    assert wrapped == [{"run_id": 2, "state": "succeeded"}]
    assert backend.listing_queries == [("/workbench/runs", {"state": "running"}), ("/workbench/runs", {})]


def test_listing_routes(service, backend):
    backend.plan(["succeeded"], [list_artifact([1], artifact_id="art-9")])
    with TestClient(create_app(service=service)) as api:
        api.post("/api/invocations", json={"action_id": "admin.list.schools", "conversation_id": "lc_topic:t"})
        runs = api.get("/api/runs", params={"conversation_id": "lc_topic:t"})
        artifacts = api.get("/api/artifacts", params={"run_id": 100, "limit": 10})
        backend.artifact_listing = {"items": 7}
        broken = api.get("/api/artifacts")

    assert runs.status_code == 200
    assert runs.json() == {"items": [{"run_id": 100, "state": "succeeded"}]}
    assert [item["artifact_id"] for item in artifacts.json()["items"]] == ["art-9"]
    assert ("/workbench/artifacts", {"run_id": "100", "limit": "10"}) in backend.listing_queries
    assert broken.status_code == 502
    assert broken.json()["detail"]["kind"] == ErrorKind.OBSERVATION_FAILED.value
