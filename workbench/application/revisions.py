"""Saving edited artifact content as a new revision."""
from __future__ import annotations

from typing import Any

from workbench.core.errors import InvalidParams
from workbench.core.idempotency import new_confirmation_token
from workbench.domain import ActionOutcome, InvocationContext

from .invocations import RunPipeline, failed_outcome


class RevisionSaver:
    """Starts a save run guarded by the artifact the editor was viewing.

    The backend rejects the save with HTTP 409 when a newer revision exists;
    that surfaces as a ``WorkbenchConflict`` outcome.
    """

    def __init__(self, pipeline: RunPipeline, *, timeout_ms: int) -> None:
        self._pipeline = pipeline
        self._timeout_ms = timeout_ms

    async def save(
        self,
        action_id: str,
        content: Any,
        *,
        base_artifact_id: str,
        expected_latest_artifact_id: str | None = None,
        context: InvocationContext | None = None,
        conversation_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> ActionOutcome:
        base = str(base_artifact_id or "").strip()
        if not base:
            return failed_outcome(action_id, InvalidParams("base_artifact_id is required"))

        params = {
            "base_artifact_id": base,
            "content": content,
            "expected_latest_artifact_id": expected_latest_artifact_id or base,
        }
        return await self._pipeline.run_to_outcome(
            action_id,
            params,
            timeout_ms=self._timeout_ms,
            context=context,
            conversation_id=conversation_id,
            idempotency_key=idempotency_key,
            confirmation_token=new_confirmation_token(),
        )
