from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WirePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class StartInvocationResponse(WirePayload):
    invocation_id: str
    run_id: int


class RunPayload(WirePayload):
    run_id: int
    state: str
    failure_reason: str | None = None


class ArtifactPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    artifact_id: str
    type: str
    schema_version: str
    content: Any = None
    summary: str | None = None
    title: str | None = None


class PresignUploadResponse(WirePayload):
    upload_url: str
    required_headers: dict[str, str] = Field(default_factory=dict)
    object_key: str
    expires_at: str | None = None


class RunEventPayload(WirePayload):
    seq: int
    type: str
    state: str | None = None
    payload: Any = None


# ---------------------------------------------------------------------------
# artifact content shapes, one per (type, schema_version)
# ---------------------------------------------------------------------------
class ArtifactContent(BaseModel):
    model_config = ConfigDict(extra="ignore")


class MutationResultV1(ArtifactContent):
    entity_type: str = ""
    operation: str = ""
    entity_id: int | str | None = None
    status: str = ""
    error_code: str | None = None
    message: str | None = None


class ResolveCandidate(ArtifactContent):
    entity_id: int | str | None = None
    display_name: str = ""


class EntityResolveV1(ArtifactContent):
    entity_type: str = ""
    status: str = ""
    explanation: str | None = None
    candidates: list[ResolveCandidate] = Field(default_factory=list)


class EntityListV1(ArtifactContent):
    entity_type: str = ""
    filters: dict[str, Any] = Field(default_factory=dict)
    ids: list[int] = Field(default_factory=list)
    items: list[dict[str, Any]] | None = None
    has_more: bool = False
    next_after_id: int | None = None
    page: int | None = None
    page_size: int | None = None
    total: int | None = None


class BulkDeletePreviewV1(ArtifactContent):
    existing_ids: list[int | str] = Field(default_factory=list)
    missing_ids: list[int | str] = Field(default_factory=list)


class BulkDeleteItem(ArtifactContent):
    id: int | str | None = None
    status: str = ""
    error_code: str | None = None
    message: str | None = None


class BulkDeleteResultV1(ArtifactContent):
    results: list[BulkDeleteItem] = Field(default_factory=list)


class SqlPatchPreviewV1(ArtifactContent):
    valid: bool = False
    estimated_affected_rows: int | None = None
    validation_errors: list[str] = Field(default_factory=list)


class SqlPatchResultV1(ArtifactContent):
    status: str = ""
    affected_rows: int | None = None
    message: str | None = None


class ImportCounts(ArtifactContent):
    rows_succeeded: int = 0
    rows_skipped: int = 0
    rows_failed: int = 0


class ImportResultV1(ArtifactContent):
    entity_type: str = ""
    counts: ImportCounts = Field(default_factory=ImportCounts)
