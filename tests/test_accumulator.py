from __future__ import annotations

import asyncio

import pytest

from conftest import list_artifact
from workbench.application import BrowseState, ListAccumulator
from workbench.core.errors import ErrorKind


def _accumulator(pipeline, **kwargs) -> ListAccumulator:
    kwargs.setdefault("conversation_id", "lc_topic:topic-1")
    return ListAccumulator(pipeline, entity_type=kwargs.pop("entity_type", "student"), **kwargs)


@pytest.mark.asyncio
async def test_two_pages_accumulate_one_hundred_unique_ids(backend, pipeline):
    backend.plan(["succeeded"], [list_artifact(list(range(1, 51)), has_more=True, next_after_id=50)])
    backend.plan(["succeeded"], [list_artifact(list(range(51, 101)), has_more=False)])
    accumulator = _accumulator(pipeline, filters={"class_id": 3})

    first = await accumulator.fetch_initial_page()
    assert first.status == "loaded"
    assert accumulator.state is BrowseState.LOADED
    assert accumulator.has_more is True
    assert accumulator.next_after_id == 50

    second = await accumulator.fetch_next_page()

    assert second.status == "loaded"
    assert accumulator.ids == list(range(1, 101))
    assert len(set(accumulator.ids)) == 100
    assert accumulator.has_more is False
    assert accumulator.next_after_id is None
    assert accumulator.state is BrowseState.EXHAUSTED
    assert accumulator.pages_loaded == 2

    first_params = backend.invocations[0]["body"]["params"]
    second_params = backend.invocations[1]["body"]["params"]
    assert backend.invocations[0]["body"]["action_id"] == "admin.list.students"
    assert "after_id" not in first_params
    assert first_params == {"filters": {"class_id": 3}, "page": 1, "page_size": 50, "include_total": False}
    assert second_params["after_id"] == 50


@pytest.mark.asyncio
async def test_each_page_fetch_uses_a_fresh_idempotency_key(backend, pipeline):
    backend.plan(["succeeded"], [list_artifact([1, 2], has_more=True, next_after_id=2)])
    backend.plan(["succeeded"], [list_artifact([3], has_more=False)])
    accumulator = _accumulator(pipeline)

    await accumulator.fetch_initial_page()
    await accumulator.fetch_next_page()

    keys = [item["headers"]["idempotency-key"] for item in backend.invocations]
    assert keys[0] != keys[1]
    assert all(key.startswith("ui:admin.list.students:") for key in keys)


@pytest.mark.asyncio
async def test_concurrent_load_more_is_ignored(backend, pipeline):
    backend.plan(["succeeded"], [list_artifact([1, 2], has_more=True, next_after_id=2)])
    backend.plan(["running", "succeeded"], [list_artifact([3, 4], has_more=False)])
    accumulator = _accumulator(pipeline)
    await accumulator.fetch_initial_page()

    pending = asyncio.create_task(accumulator.fetch_next_page())
    while not accumulator.in_flight:
        await asyncio.sleep(0)

    assert accumulator.state is BrowseState.LOADING_MORE
    duplicate = await accumulator.fetch_next_page()
    assert duplicate.status == "ignored"

    loaded = await pending
    assert loaded.status == "loaded"
    assert accumulator.ids == [1, 2, 3, 4]
    assert len(backend.invocations) == 2


@pytest.mark.asyncio
async def test_duplicate_ids_are_a_contract_violation(backend, pipeline):
    backend.plan(["succeeded"], [list_artifact([1, 2, 3], has_more=True, next_after_id=3)])
    backend.plan(["succeeded"], [list_artifact([3, 4], has_more=True, next_after_id=4)])
    accumulator = _accumulator(pipeline)
    await accumulator.fetch_initial_page()

    result = await accumulator.fetch_next_page()

    assert result.status == "failed"
    assert result.error.kind == ErrorKind.LIST_CONTRACT_VIOLATION.value
    assert accumulator.ids == [1, 2, 3]
    assert accumulator.next_after_id == 3
    assert accumulator.state is BrowseState.LOADED


@pytest.mark.asyncio
async def test_cursor_must_advance(backend, pipeline):
    backend.plan(["succeeded"], [list_artifact([10, 20], has_more=True, next_after_id=20)])
    backend.plan(["succeeded"], [list_artifact([30], has_more=True, next_after_id=15)])
    accumulator = _accumulator(pipeline)
    await accumulator.fetch_initial_page()

    result = await accumulator.fetch_next_page()

    assert result.status == "failed"
    assert result.error.kind == ErrorKind.LIST_CONTRACT_VIOLATION.value
    assert accumulator.ids == [10, 20]


@pytest.mark.asyncio
async def test_timeout_keeps_cursor_and_reports_running(backend, pipeline):
    backend.plan(["succeeded"], [list_artifact([1, 2], has_more=True, next_after_id=2)])
    backend.plan(["running"])
    accumulator = _accumulator(pipeline, timeout_ms=1_000)
    await accumulator.fetch_initial_page()

    result = await accumulator.fetch_next_page()

    assert result.status == "running"
    assert result.run_id is not None
    assert accumulator.ids == [1, 2]
    assert accumulator.next_after_id == 2
    assert accumulator.has_more is True
    assert accumulator.state is BrowseState.LOADED


@pytest.mark.asyncio
async def test_reset_discards_accumulated_state(backend, pipeline):
    backend.plan(["succeeded"], [list_artifact([1, 2], has_more=True, next_after_id=2)])
    backend.plan(["succeeded"], [list_artifact([1, 2, 3], has_more=False)])
    accumulator = _accumulator(pipeline)
    await accumulator.fetch_initial_page()

    accumulator.reset()
    assert accumulator.state is BrowseState.IDLE
    assert accumulator.ids == []

    refreshed = await accumulator.fetch_initial_page()
    assert refreshed.status == "loaded"
    assert accumulator.ids == [1, 2, 3]
    assert "after_id" not in backend.invocations[1]["body"]["params"]


@pytest.mark.asyncio
async def test_has_more_without_cursor_is_treated_as_exhausted(backend, pipeline):
    backend.plan(["succeeded"], [list_artifact([1], has_more=True, next_after_id=None)])
    accumulator = _accumulator(pipeline)

    await accumulator.fetch_initial_page()

    assert accumulator.has_more is False
    assert accumulator.state is BrowseState.EXHAUSTED
    assert (await accumulator.fetch_next_page()).status == "ignored"


@pytest.mark.asyncio
async def test_missing_list_artifact_fails(backend, pipeline):
    backend.plan(["succeeded"], [])
    accumulator = _accumulator(pipeline)

    result = await accumulator.fetch_initial_page()

    assert result.status == "failed"
    assert result.error.kind == ErrorKind.LIST_CONTRACT_VIOLATION.value
    assert accumulator.state is BrowseState.IDLE


@pytest.mark.asyncio
async def test_failed_run_leaves_accumulator_untouched(backend, pipeline):
    backend.plan([("failed", "db unavailable")])
    accumulator = _accumulator(pipeline)

    result = await accumulator.fetch_initial_page()

    assert result.status == "failed"
    assert result.error.kind == ErrorKind.RUN_FAILED.value
    assert result.error.message == "db unavailable"
    assert accumulator.ids == []


@pytest.mark.asyncio
async def test_unsaved_conversation_fails_before_any_request(backend, pipeline):
    accumulator = _accumulator(pipeline, conversation_id=None)

    result = await accumulator.fetch_initial_page()

    assert result.status == "failed"
    assert result.error.kind == ErrorKind.CONVERSATION_UNSAVED.value
    assert backend.requests == []


def test_unknown_entity_type_is_rejected(pipeline):
    with pytest.raises(ValueError):
        ListAccumulator(pipeline, entity_type="planet")
