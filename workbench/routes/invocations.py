from __future__ import annotations

from fastapi import APIRouter, HTTPException

from workbench.application import get_workbench_service
from workbench.domain import InvocationContext

router = APIRouter(prefix="/invocations", tags=["invocations"])


def context_from_payload(payload: dict) -> InvocationContext | None:
    message_id = str(payload.get("message_id") or "").strip()
    topic_id = str(payload.get("topic_id") or "").strip()
    if not message_id and not topic_id:
        return None
    return InvocationContext(
        message_id=message_id,
        topic_id=topic_id or None,
        thread_id=str(payload.get("thread_id") or "").strip() or None,
    )


@router.post("")
async def start_invocation(payload: dict) -> dict:
    """Run an action and return its typed outcome.

    ``mode`` is ``blocking`` (default) or ``background``. A blocking call
    that outlives its timeout answers ``status: running`` rather than failing.
    """
    action_id = str(payload.get("action_id") or "").strip()
    if not action_id:
        raise HTTPException(status_code=400, detail="action_id is required")
    params = payload.get("params") or {}
    if not isinstance(params, dict):
        raise HTTPException(status_code=400, detail="params must be an object")
    mode = str(payload.get("mode") or "blocking")
    if mode not in {"blocking", "background"}:
        raise HTTPException(status_code=400, detail="mode must be blocking or background")

    timeout_ms = payload.get("timeout_ms")
    if timeout_ms is not None:
        try:
            timeout_ms = int(timeout_ms)
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="timeout_ms must be an integer") from None
        if timeout_ms < 0:
            raise HTTPException(status_code=400, detail="timeout_ms must be >= 0")

    service = get_workbench_service()
    outcome = await service.invoke(
        action_id,
        params,
        background=mode == "background",
        timeout_ms=timeout_ms,
        conversation_id=str(payload.get("conversation_id") or "").strip() or None,
        context=context_from_payload(payload),
        idempotency_key=str(payload.get("idempotency_key") or "").strip() or None,
        confirmed=bool(payload.get("confirmed")),
    )
    return outcome.to_dict()
