from __future__ import annotations

from dataclasses import asdict
from typing import NoReturn

from fastapi import APIRouter, HTTPException

from workbench.application import get_workbench_service
from workbench.core.errors import WorkbenchError

from .invocations import context_from_payload

router = APIRouter(tags=["runs"])


def _raise_for(exc: WorkbenchError) -> NoReturn:
    status_code = exc.status_code if exc.status_code and 400 <= exc.status_code < 500 else 502
    raise HTTPException(status_code=status_code, detail={"kind": exc.kind.value, "message": exc.message})


@router.get("/runs")
async def list_runs(conversation_id: str | None = None, state: str | None = None, limit: int | None = None) -> dict:
    service = get_workbench_service()
    try:
        runs = await service.list_runs(conversation_id=conversation_id, state=state, limit=limit)
    except WorkbenchError as exc:
        _raise_for(exc)
    return {"items": runs}


@router.get("/artifacts")
async def list_artifacts(conversation_id: str | None = None, run_id: int | None = None, limit: int | None = None) -> dict:
    service = get_workbench_service()
    try:
        artifacts = await service.list_artifacts(conversation_id=conversation_id, run_id=run_id, limit=limit)
    except WorkbenchError as exc:
        _raise_for(exc)
    return {"items": [asdict(artifact) for artifact in artifacts]}


@router.get("/runs/{run_id}")
async def get_run(run_id: int) -> dict:
    service = get_workbench_service()
    try:
        status = await service.get_run(run_id)
    except WorkbenchError as exc:
        _raise_for(exc)
    return {**asdict(status), "terminal": status.is_terminal}


@router.get("/runs/{run_id}/artifacts")
async def list_run_artifacts(run_id: int) -> dict:
    service = get_workbench_service()
    try:
        artifacts = await service.list_run_artifacts(run_id)
    except WorkbenchError as exc:
        _raise_for(exc)
    return {"items": [asdict(artifact) for artifact in artifacts]}


@router.get("/artifacts/{artifact_id}")
async def get_artifact(artifact_id: str) -> dict:
    service = get_workbench_service()
    try:
        artifact = await service.get_artifact(artifact_id)
    except WorkbenchError as exc:
        _raise_for(exc)
    return asdict(artifact)


@router.post("/artifacts/{artifact_id}/revisions")
async def save_revision(artifact_id: str, payload: dict) -> dict:
    """Save edited content as a new revision based on ``artifact_id``."""
    action_id = str(payload.get("action_id") or "").strip()
    if not action_id:
        raise HTTPException(status_code=400, detail="action_id is required")
    if "content" not in payload:
        raise HTTPException(status_code=400, detail="content is required")

    service = get_workbench_service()
    outcome = await service.save_revision(
        action_id,
        payload["content"],
        base_artifact_id=artifact_id,
        expected_latest_artifact_id=str(payload.get("expected_latest_artifact_id") or "").strip() or None,
        conversation_id=str(payload.get("conversation_id") or "").strip() or None,
        context=context_from_payload(payload),
    )
    return outcome.to_dict()


@router.post("/runs/{run_id}/cancel")
async def cancel_run(run_id: int) -> dict:
    service = get_workbench_service()
    try:
        await service.cancel_run(run_id)
    except WorkbenchError as exc:
        _raise_for(exc)
    return {"run_id": run_id, "status": "cancel_requested"}


@router.post("/runs/{run_id}/retry")
async def retry_run(run_id: int) -> dict:
    service = get_workbench_service()
    try:
        await service.retry_run(run_id)
    except WorkbenchError as exc:
        _raise_for(exc)
    return {"run_id": run_id, "status": "retry_requested"}


@router.post("/runs/{run_id}/input")
async def submit_run_input(run_id: int, payload: dict) -> dict:
    if "input" not in payload:
        raise HTTPException(status_code=400, detail="input is required")
    service = get_workbench_service()
    try:
        await service.submit_input(run_id, payload["input"])
    except WorkbenchError as exc:
        _raise_for(exc)
    return {"run_id": run_id, "status": "input_submitted"}
