from __future__ import annotations

import json
from dataclasses import asdict

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from workbench.application import get_workbench_service
from workbench.core.actions import IMPORTABLE_ENTITIES

router = APIRouter(prefix="/imports", tags=["imports"])


@router.post("/{entity_type}")
async def upload_csv(
    entity_type: str,
    file: UploadFile = File(...),
    conversation_id: str = Form(...),
    defaults: str | None = Form(default=None),
) -> dict:
    """Stage an uploaded CSV and start its import in the background."""
    if entity_type not in IMPORTABLE_ENTITIES:
        raise HTTPException(status_code=400, detail=f"unsupported entity type: {entity_type}")

    parsed_defaults = None
    if defaults:
        try:
            parsed_defaults = json.loads(defaults)
        except ValueError:
            raise HTTPException(status_code=400, detail="defaults must be a JSON object") from None

    try:
        payload = await file.read()
    finally:
        await file.close()
    if not payload:
        raise HTTPException(status_code=400, detail="uploaded CSV is empty")

    service = get_workbench_service()
    record = await service.start_import(
        entity_type,
        payload,
        filename=file.filename,
        defaults=parsed_defaults,
        conversation_id=conversation_id.strip() or None,
    )
    return asdict(record)


@router.get("/jobs")
async def list_jobs() -> dict:
    service = get_workbench_service()
    return {"items": [asdict(record) for record in service.list_jobs()]}


@router.get("/jobs/{job_id}")
async def get_job(job_id: str) -> dict:
    record = get_workbench_service().get_job(job_id)
    if record is None:
        raise HTTPException(status_code=404, detail="job not found")
    return asdict(record)
