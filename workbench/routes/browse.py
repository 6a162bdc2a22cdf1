from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, HTTPException

from workbench.application import ListAccumulator, get_workbench_service
from workbench.domain import PageLoad

router = APIRouter(prefix="/browse/sessions", tags=["browse"])


def _serialise(session_id: str, accumulator: ListAccumulator, load: PageLoad | None = None) -> dict:
    body = {"session_id": session_id, **accumulator.snapshot()}
    if load is not None:
        body["load"] = {
            "status": load.status,
            "run_id": load.run_id,
            "error": asdict(load.error) if load.error else None,
            "page_ids": list(load.page.ids) if load.page else None,
        }
    return body


def _get_session(session_id: str) -> ListAccumulator:
    accumulator = get_workbench_service().get_browse_session(session_id)
    if accumulator is None:
        raise HTTPException(status_code=404, detail="browse session not found")
    return accumulator


@router.post("")
async def open_session(payload: dict) -> dict:
    entity_type = str(payload.get("entity_type") or "").strip()
    if not entity_type:
        raise HTTPException(status_code=400, detail="entity_type is required")
    filters = payload.get("filters") or {}
    if not isinstance(filters, dict):
        raise HTTPException(status_code=400, detail="filters must be an object")
    try:
        page_size = int(payload.get("page_size") or 50)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="page_size must be an integer") from None

    service = get_workbench_service()
    try:
        session_id, accumulator = service.open_browse_session(
            entity_type,
            filters=filters,
            page_size=page_size,
            conversation_id=str(payload.get("conversation_id") or "").strip() or None,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    load = await accumulator.fetch_initial_page()
    return _serialise(session_id, accumulator, load)


@router.get("/{session_id}")
async def get_session(session_id: str) -> dict:
    return _serialise(session_id, _get_session(session_id))


@router.post("/{session_id}/more")
async def load_more(session_id: str) -> dict:
    accumulator = _get_session(session_id)
    load = await accumulator.fetch_next_page()
    return _serialise(session_id, accumulator, load)


@router.post("/{session_id}/refresh")
async def refresh(session_id: str) -> dict:
    accumulator = _get_session(session_id)
    load = await accumulator.refresh()
    return _serialise(session_id, accumulator, load)
