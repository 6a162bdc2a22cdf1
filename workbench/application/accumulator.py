"""Cursor-driven accumulation of entity listings across pages."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from workbench.core.actions import list_action_id
from workbench.core.errors import ErrorKind, WorkbenchError
from workbench.core.interpreter import parse_content
from workbench.core.schema import EntityListV1
from workbench.domain import ErrorInfo, ListPage, PageLoad, RunTimedOut

from .invocations import RunPipeline, RunResult

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
LIST_ARTIFACT_KEY = ("admin.entity.list", "v1")


class BrowseState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    LOADING_MORE = "loading_more"
    EXHAUSTED = "exhausted"


class ListAccumulator:
    """Grows one in-memory listing for a fixed (entity type, filters) pair.

    Pages are only ever appended. A full refresh goes through :meth:`reset`.
    At most one page fetch runs at a time; a call made while one is pending
    returns ``ignored`` without touching the cursor.
    """

    def __init__(
        self,
        pipeline: RunPipeline,
        *,
        entity_type: str,
        filters: dict[str, Any] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout_ms: int = 15_000,
        conversation_id: str | None = None,
    ) -> None:
        self._pipeline = pipeline
        self.entity_type = entity_type
        self.action_id = list_action_id(entity_type)
        self.filters = dict(filters or {})
        self.page_size = max(1, int(page_size))
        self.timeout_ms = timeout_ms
        self._conversation_id = conversation_id
        self._generation = 0
        self._in_flight = False
        self._clear()

    def _clear(self) -> None:
        self._state = BrowseState.IDLE
        self._ids: list[int] = []
        self._id_set: set[int] = set()
        self._items: list[dict[str, Any]] = []
        self._has_more = False
        self._next_after_id: int | None = None
        self._total: int | None = None
        self._pages = 0
        self._last_run_id: int | None = None

    # ------------------------------------------------------------------
    # read-only view
    # ------------------------------------------------------------------
    @property
    def state(self) -> BrowseState:
        return self._state

    @property
    def ids(self) -> list[int]:
        return list(self._ids)

    @property
    def items(self) -> list[dict[str, Any]]:
        return list(self._items)

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def next_after_id(self) -> int | None:
        return self._next_after_id

    @property
    def total(self) -> int | None:
        return self._total

    @property
    def pages_loaded(self) -> int:
        return self._pages

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def snapshot(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "filters": dict(self.filters),
            "page_size": self.page_size,
            "state": self._state.value,
            "ids": list(self._ids),
            "items": list(self._items),
            "has_more": self._has_more,
            "next_after_id": self._next_after_id,
            "total": self._total,
            "pages_loaded": self._pages,
            "last_run_id": self._last_run_id,
        }

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    def reset(self) -> None:
        """Discard everything accumulated; an in-flight fetch is ignored when it lands."""

        self._generation += 1
        self._in_flight = False
        self._clear()

    async def fetch_initial_page(self) -> PageLoad:
        if self._in_flight:
            return PageLoad(status="ignored")
        if self._state is not BrowseState.IDLE:
            self.reset()
        return await self._load(after_id=None, loading=BrowseState.LOADING)

    async def fetch_next_page(self, after_id: int | None = None) -> PageLoad:
        if self._in_flight:
            return PageLoad(status="ignored")
        if self._state is BrowseState.IDLE:
            return await self.fetch_initial_page()
        if self._state is BrowseState.EXHAUSTED:
            return PageLoad(status="ignored")
        cursor = after_id if after_id is not None else self._next_after_id
        return await self._load(after_id=cursor, loading=BrowseState.LOADING_MORE)

    async def refresh(self) -> PageLoad:
        self.reset()
        return await self.fetch_initial_page()

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _params(self, after_id: int | None) -> dict[str, Any]:
        params: dict[str, Any] = {
            "filters": dict(self.filters),
            "page": 1,
            "page_size": self.page_size,
            "include_total": False,
        }
        if after_id is not None:
            params["after_id"] = after_id
        return params

    async def _load(self, *, after_id: int | None, loading: BrowseState) -> PageLoad:
        self._in_flight = True
        generation = self._generation
        previous = self._state
        self._state = loading
        try:
            load = await self._fetch(after_id)
        finally:
            if generation == self._generation:
                self._in_flight = False

        if generation != self._generation:
            return PageLoad(status="ignored", run_id=load.run_id)

        if load.status != "loaded" or load.page is None:
            self._state = previous
            return load

        try:
            self._merge(load.page)
        except WorkbenchError as exc:
            self._state = previous
            logger.warning("%s page rejected: %s", self.action_id, exc.message)
            return PageLoad(status="failed", run_id=load.run_id, error=exc.to_info())

        self._last_run_id = load.run_id
        self._state = BrowseState.LOADED if self._has_more else BrowseState.EXHAUSTED
        return load

    async def _fetch(self, after_id: int | None) -> PageLoad:
        try:
            handle = await self._pipeline.start(
                self.action_id, self._params(after_id), conversation_id=self._conversation_id
            )
        except WorkbenchError as exc:
            return PageLoad(status="failed", error=exc.to_info())

        result = await self._pipeline.collect(handle, self.timeout_ms)
        if isinstance(result.wait, RunTimedOut):
            return PageLoad(status="running", run_id=handle.run_id)
        if not result.succeeded:
            outcome = RunPipeline.to_outcome(self.action_id, result)
            return PageLoad(status="failed", run_id=handle.run_id, error=outcome.error)
        return self._page_from(result)

    def _page_from(self, result: RunResult) -> PageLoad:
        run_id = result.handle.run_id
        latest = result.artifacts[0] if result.artifacts else None
        content = parse_content(latest) if latest is not None and latest.dispatch_key == LIST_ARTIFACT_KEY else None
        if not isinstance(content, EntityListV1):
            return PageLoad(
                status="failed",
                run_id=run_id,
                error=ErrorInfo(
                    kind=ErrorKind.LIST_CONTRACT_VIOLATION.value,
                    message=f"run {run_id} did not produce an admin.entity.list@v1 artifact",
                ),
            )

        has_more = bool(content.has_more and content.next_after_id is not None)
        page = ListPage(
            ids=list(content.ids),
            items=list(content.items) if content.items is not None else None,
            has_more=has_more,
            next_after_id=content.next_after_id if has_more else None,
            total=content.total,
        )
        return PageLoad(status="loaded", page=page, run_id=run_id)

    def _merge(self, page: ListPage) -> None:
        seen: set[int] = set()
        duplicates = []
        for entity_id in page.ids:
            if entity_id in self._id_set or entity_id in seen:
                duplicates.append(entity_id)
            seen.add(entity_id)
        if duplicates:
            raise WorkbenchError(
                f"listing returned ids already seen: {duplicates[:20]}",
                kind=ErrorKind.LIST_CONTRACT_VIOLATION,
            )

        previous_cursor = self._next_after_id
        if previous_cursor is not None and page.next_after_id is not None and page.next_after_id <= previous_cursor:
            raise WorkbenchError(
                f"cursor did not advance: {page.next_after_id} after {previous_cursor}",
                kind=ErrorKind.LIST_CONTRACT_VIOLATION,
            )

        self._ids.extend(page.ids)
        self._id_set.update(page.ids)
        if page.items:
            self._items.extend(page.items)
        self._has_more = page.has_more
        self._next_after_id = page.next_after_id
        if page.total is not None:
            self._total = page.total
        self._pages += 1
