"""Invocation issuing and the invoke -> poll -> interpret pipeline."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from workbench.core.errors import (
    BackendResponseError,
    ConversationUnsaved,
    ErrorKind,
    WorkbenchError,
    preview_body,
)
from workbench.core.idempotency import fresh_idempotency_key, message_idempotency_key
from workbench.core.interpreter import interpret
from workbench.domain import (
    ActionOutcome,
    Artifact,
    ErrorInfo,
    InvocationContext,
    RunCompleted,
    RunHandle,
    RunObservationFailed,
    RunState,
    RunTimedOut,
    WaitResult,
)
from workbench.infrastructure import WorkbenchClient
from workbench.workers.poller import CompletionPoller

logger = logging.getLogger(__name__)


class InvocationIssuer:
    """Starts runs. Never retries; a retry is the caller's decision.

    ``plugin_scoped`` issuers report HTTP 403 as a disabled plugin rather than
    a plain permission failure.
    """

    def __init__(self, client: WorkbenchClient, *, plugin_id: str, plugin_scoped: bool = False) -> None:
        self._client = client
        self._plugin_id = plugin_id
        self._plugin_scoped = plugin_scoped

    @property
    def plugin_id(self) -> str:
        return self._plugin_id

    def idempotency_key_for(self, action_id: str, context: InvocationContext | None) -> str:
        if context is not None and context.message_id:
            return message_idempotency_key(self._plugin_id, action_id, context)
        return fresh_idempotency_key(action_id)

    async def invoke(
        self,
        action_id: str,
        params: dict[str, Any],
        *,
        context: InvocationContext | None = None,
        conversation_id: str | None = None,
        idempotency_key: str | None = None,
        confirmation_token: str | None = None,
        request_id: str | None = None,
    ) -> RunHandle:
        anchor = conversation_id or (context.conversation_id if context is not None else None)
        if not anchor:
            raise ConversationUnsaved("conversation is not saved yet; send a message before running actions")

        key = idempotency_key or self.idempotency_key_for(action_id, context)
        try:
            handle = await self._client.start_invocation(
                action_id=action_id,
                params=params,
                conversation_id=anchor,
                plugin_id=self._plugin_id,
                idempotency_key=key,
                confirmation_id=confirmation_token,
                request_id=request_id,
            )
        except BackendResponseError as exc:
            raise self._map_status(exc) from exc

        logger.info("started %s as run %s (invocation %s)", action_id, handle.run_id, handle.invocation_id)
        return handle

    def _map_status(self, exc: BackendResponseError) -> WorkbenchError:
        detail = preview_body(exc.body) or str(exc.status_code)
        if exc.status_code == 401:
            kind, message = ErrorKind.UNAUTHORIZED, f"Unauthorized: {detail}. Sign in again and retry."
        elif exc.status_code == 403 and self._plugin_scoped:
            kind = ErrorKind.PLUGIN_DISABLED
            message = f"{self._plugin_id} is currently disabled. Ask an administrator to enable it."
        elif exc.status_code == 403:
            kind, message = ErrorKind.FORBIDDEN, f"Forbidden: {detail}"
        elif exc.status_code == 409:
            kind = ErrorKind.CONFLICT
            message = f"Conflict: the artifact changed since it was opened ({detail}). Reload and try again."
        else:
            kind, message = ErrorKind.INVOCATION_FAILED, f"Failed to start run: {detail}"
        return WorkbenchError(message, kind=kind, status_code=exc.status_code, body=exc.body)


@dataclass(frozen=True, slots=True)
class RunResult:
    """Everything observed about one run within a bounded wait."""

    handle: RunHandle
    wait: WaitResult
    artifacts: tuple[Artifact, ...] = ()
    error: ErrorInfo | None = None

    @property
    def succeeded(self) -> bool:
        return (
            self.error is None
            and isinstance(self.wait, RunCompleted)
            and self.wait.status.state == RunState.SUCCEEDED.value
        )


class RunPipeline:
    """Invoke, wait for completion, then read the newest artifact.

    Every public method converts :class:`WorkbenchError` into a typed
    :class:`ActionOutcome`; nothing raises past it.
    """

    def __init__(self, issuer: InvocationIssuer, client: WorkbenchClient, poller: CompletionPoller) -> None:
        self._issuer = issuer
        self._client = client
        self._poller = poller

    @property
    def issuer(self) -> InvocationIssuer:
        return self._issuer

    async def start(self, action_id: str, params: dict[str, Any], **kwargs: Any) -> RunHandle:
        return await self._issuer.invoke(action_id, params, **kwargs)

    async def collect(self, handle: RunHandle, timeout_ms: int) -> RunResult:
        wait = await self._poller.wait_for_completion(handle.run_id, timeout_ms)
        if not isinstance(wait, RunCompleted) or wait.status.state != RunState.SUCCEEDED.value:
            return RunResult(handle=handle, wait=wait)
        try:
            artifacts = await self._client.list_run_artifacts(handle.run_id)
        except WorkbenchError as exc:
            return RunResult(
                handle=handle,
                wait=wait,
                error=ErrorInfo(kind=ErrorKind.OBSERVATION_FAILED.value, message=exc.message),
            )
        return RunResult(handle=handle, wait=wait, artifacts=tuple(artifacts))

    async def settle(self, action_id: str, handle: RunHandle, timeout_ms: int) -> ActionOutcome:
        return self.to_outcome(action_id, await self.collect(handle, timeout_ms))

    @staticmethod
    def to_outcome(action_id: str, result: RunResult) -> ActionOutcome:
        run_id = result.handle.run_id
        state: dict[str, Any] = {
            "action_id": action_id,
            "invocation_id": result.handle.invocation_id,
            "run_id": run_id,
        }
        wait = result.wait

        if isinstance(wait, RunTimedOut):
            state["timed_out"] = True
            return ActionOutcome(
                status="running",
                content=(
                    f"已发起操作（{action_id}，run={run_id}），正在执行中。"
                    "若稍后仍未见到结果，请打开运行面板查看状态与产物。"
                ),
                state=state,
            )

        if isinstance(wait, RunObservationFailed):
            return ActionOutcome(
                status="failed",
                content=f"已发起操作（{action_id}，run={run_id}），但获取执行结果失败：{wait.error.message}",
                error=wait.error,
                state=state,
            )

        status = wait.status
        state["run_state"] = status.state
        if status.state != RunState.SUCCEEDED.value:
            logger.info("run %s for %s ended as %s", run_id, action_id, status.describe_failure())
            return ActionOutcome(
                status="failed",
                content=f"操作未成功完成（{action_id}，run={run_id}）：{status.describe_failure()}",
                error=ErrorInfo(kind=ErrorKind.RUN_FAILED.value, message=status.failure_reason or status.state),
                state=state,
            )

        if result.error is not None:
            return ActionOutcome(
                status="failed",
                content=f"操作已完成（{action_id}，run={run_id}），但读取产物失败：{result.error.message}",
                error=result.error,
                state=state,
            )

        if result.artifacts:
            latest = result.artifacts[0]
            state["artifact_id"] = latest.artifact_id
            state["artifact_type"] = latest.type
        return ActionOutcome(status="succeeded", content=interpret(action_id, result.artifacts), state=state)

    async def run_to_outcome(
        self,
        action_id: str,
        params: dict[str, Any],
        *,
        timeout_ms: int,
        **invoke_kwargs: Any,
    ) -> ActionOutcome:
        try:
            handle = await self.start(action_id, params, **invoke_kwargs)
        except WorkbenchError as exc:
            logger.warning("could not start %s: %s", action_id, exc.message)
            return failed_outcome(action_id, exc)
        return await self.settle(action_id, handle, timeout_ms)


def failed_outcome(action_id: str, exc: WorkbenchError) -> ActionOutcome:
    return ActionOutcome(
        status="failed",
        content=f"Failed to start run ({action_id}): {exc.message}",
        error=exc.to_info(),
        state={"action_id": action_id},
    )
