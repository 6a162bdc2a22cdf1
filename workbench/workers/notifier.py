from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, Union

from workbench.core.errors import WorkbenchError
from workbench.domain import ActionOutcome, RunHandle

logger = logging.getLogger(__name__)

SettledCallback = Callable[[ActionOutcome], Union[None, Awaitable[None]]]


class SettlingPipeline(Protocol):
    async def start(self, action_id: str, params: dict[str, Any], **kwargs: Any) -> RunHandle: ...

    async def settle(self, action_id: str, handle: RunHandle, timeout_ms: int) -> ActionOutcome: ...


class SettleOnce:
    """Completion handle that may be resolved a single time."""

    def __init__(self, callback: SettledCallback) -> None:
        self._callback = callback
        self._outcome: ActionOutcome | None = None

    @property
    def settled(self) -> bool:
        return self._outcome is not None

    @property
    def outcome(self) -> ActionOutcome | None:
        return self._outcome

    async def __call__(self, outcome: ActionOutcome) -> None:
        if self._outcome is not None:
            raise RuntimeError("background run already settled")
        self._outcome = outcome
        result = self._callback(outcome)
        if inspect.isawaitable(result):
            await result


@dataclass(slots=True)
class BackgroundJob:
    """Returned as soon as the invocation is accepted (or rejected)."""

    action_id: str
    handle: RunHandle | None
    outcome: ActionOutcome
    task: asyncio.Task[None] | None = None


class BackgroundNotifier:
    """Keeps observing a run after the initiating call has returned.

    ``on_settled`` receives exactly one outcome: the interpreted result, the
    failure, or a single "still running" notice once ``timeout_ms`` elapses.
    Observation then stops; re-attach with the run id to learn more.
    """

    def __init__(self, pipeline: SettlingPipeline) -> None:
        self._pipeline = pipeline
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def start_background(
        self,
        action_id: str,
        params: dict[str, Any],
        on_settled: SettledCallback,
        *,
        timeout_ms: int,
        **invoke_kwargs: Any,
    ) -> BackgroundJob:
        try:
            handle = await self._pipeline.start(action_id, params, **invoke_kwargs)
        except WorkbenchError as exc:
            logger.warning("could not start background %s: %s", action_id, exc.message)
            outcome = ActionOutcome(
                status="failed",
                content=f"Failed to start run ({action_id}): {exc.message}",
                error=exc.to_info(),
                state={"action_id": action_id},
            )
            return BackgroundJob(action_id=action_id, handle=None, outcome=outcome)

        accepted = ActionOutcome(
            status="running",
            content=f"已发起后台任务（{action_id}，run={handle.run_id}）。完成后会通知结果。",
            state={"action_id": action_id, "invocation_id": handle.invocation_id, "run_id": handle.run_id},
        )
        settle = SettleOnce(on_settled)
        task = asyncio.create_task(self._observe(action_id, handle, timeout_ms, settle))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return BackgroundJob(action_id=action_id, handle=handle, outcome=accepted, task=task)

    async def _observe(self, action_id: str, handle: RunHandle, timeout_ms: int, settle: SettleOnce) -> None:
        outcome = await self._pipeline.settle(action_id, handle, timeout_ms)
        if outcome.status == "running":
            outcome = ActionOutcome(
                status="running",
                content=(
                    f"后台任务（{action_id}，run={handle.run_id}）仍在执行中，"
                    "已停止自动跟踪，请稍后在运行面板查看结果。"
                ),
                state=outcome.state,
            )
        logger.info("background run %s for %s settled as %s", handle.run_id, action_id, outcome.status)
        await settle(outcome)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background observation raised", exc_info=exc)

    async def drain(self) -> None:
        """Wait for every detached observation started so far."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
