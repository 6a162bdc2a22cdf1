from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Iterator, Protocol

from workbench.core.errors import ErrorKind, WorkbenchError
from workbench.domain import (
    ErrorInfo,
    RunCompleted,
    RunObservationFailed,
    RunStatus,
    RunTimedOut,
    WaitResult,
)

logger = logging.getLogger(__name__)

INITIAL_INTERVAL_MS = 200
MAX_INTERVAL_MS = 1000
BACKOFF_FACTOR = 1.3
MIN_SLEEP_MS = 1


class RunStatusSource(Protocol):
    async def get_run(self, run_id: int) -> RunStatus: ...


def next_interval(interval_ms: int) -> int:
    """Interval to wait after another non-terminal observation."""

    return min(MAX_INTERVAL_MS, math.floor(interval_ms * BACKOFF_FACTOR))


def backoff_intervals(start_ms: int = INITIAL_INTERVAL_MS) -> Iterator[int]:
    interval = start_ms
    while True:
        yield interval
        interval = next_interval(interval)


class CompletionPoller:
    """Polls a run until it is terminal or the caller's timeout elapses.

    A timeout only stops local observation; the run keeps going on the
    backend. Status is re-fetched on every cycle and never cached. The poller
    holds no per-run state, so several observers may wait on the same run.
    """

    def __init__(
        self,
        client: RunStatusSource,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._sleep = sleep
        self._clock = clock

    async def wait_for_completion(self, run_id: int, timeout_ms: int) -> WaitResult:
        started = self._clock()
        intervals = backoff_intervals()

        while True:
            try:
                status = await self._client.get_run(run_id)
            except WorkbenchError as exc:
                logger.warning("observing run %s failed: %s", run_id, exc.message)
                return RunObservationFailed(
                    run_id=run_id,
                    error=ErrorInfo(kind=ErrorKind.OBSERVATION_FAILED.value, message=exc.message),
                )

            if status.is_terminal:
                return RunCompleted(status=status)

            elapsed_ms = (self._clock() - started) * 1000
            if elapsed_ms >= timeout_ms:
                logger.info("run %s still %s after %sms, stopping local observation", run_id, status.state, timeout_ms)
                return RunTimedOut(run_id=run_id, timeout_ms=timeout_ms)

            wait_ms = min(next(intervals), max(MIN_SLEEP_MS, timeout_ms - elapsed_ms))
            await self._sleep(wait_ms / 1000)
