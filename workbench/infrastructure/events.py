"""Observational run event stream (Server-Sent Events)."""
from __future__ import annotations

import json
import logging
from collections import deque
from typing import AsyncIterator, Iterable

from pydantic import ValidationError

from workbench.core.schema import RunEventPayload
from workbench.domain import RunEvent

from .workbench_api import WorkbenchClient

logger = logging.getLogger(__name__)

EVENT_LOG_LIMIT = 500


def parse_event_data(data: str) -> RunEvent | None:
    """Decode one ``data:`` block; malformed frames yield ``None``."""

    try:
        payload = RunEventPayload.model_validate(json.loads(data))
    except (ValueError, ValidationError):
        return None
    return RunEvent(seq=payload.seq, type=payload.type, state=payload.state, payload=payload.payload)


async def parse_event_stream(lines: AsyncIterator[str]) -> AsyncIterator[RunEvent]:
    data_lines: list[str] = []

    async for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data_lines:
                event = parse_event_data("\n".join(data_lines))
                data_lines = []
                if event is not None:
                    yield event
                else:
                    logger.warning("dropped malformed run event frame")
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data_lines.append(value)

    if data_lines:
        event = parse_event_data("\n".join(data_lines))
        if event is not None:
            yield event
        else:
            logger.warning("dropped malformed run event frame")


async def iter_run_events(
    client: WorkbenchClient,
    run_id: int,
    *,
    last_event_id: int | None = None,
) -> AsyncIterator[RunEvent]:
    async for event in parse_event_stream(client.stream_run_event_lines(run_id, last_event_id=last_event_id)):
        yield event


class RunEventLog:
    """Keeps the most recent events of one run in sequence order."""

    def __init__(self, limit: int = EVENT_LOG_LIMIT) -> None:
        self._events: deque[RunEvent] = deque(maxlen=limit)

    @property
    def last_event_id(self) -> int | None:
        return self._events[-1].seq if self._events else None

    def append(self, event: RunEvent) -> bool:
        last = self.last_event_id
        if last is not None and event.seq <= last:
            return False
        self._events.append(event)
        return True

    def extend(self, events: Iterable[RunEvent]) -> int:
        return sum(1 for event in events if self.append(event))

    def events(self) -> list[RunEvent]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)

    async def follow(self, client: WorkbenchClient, run_id: int) -> int:
        """Consume the stream from the last seen event until it closes."""

        added = 0
        async for event in iter_run_events(client, run_id, last_event_id=self.last_event_id):
            if self.append(event):
                added += 1
        return added
