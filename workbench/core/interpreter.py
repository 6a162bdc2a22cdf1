"""Turn run artifacts into one-paragraph human readable summaries.

Interpretation dispatches only on ``(type, schema_version)``. Each known
shape has a pydantic content model and a formatter; anything else, including
content that does not validate against its model, falls back to the
artifact's own summary. :func:`interpret` never raises.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from pydantic import ValidationError

from workbench.core.actions import entity_label
from workbench.core.schema import (
    ArtifactContent,
    BulkDeletePreviewV1,
    BulkDeleteResultV1,
    EntityListV1,
    EntityResolveV1,
    ImportResultV1,
    MutationResultV1,
    SqlPatchPreviewV1,
    SqlPatchResultV1,
)
from workbench.domain import Artifact

logger = logging.getLogger(__name__)

CANDIDATE_PREVIEW = 8
ID_PREVIEW = 20
FAILURE_PREVIEW = 5

OPERATION_LABELS = {"create": "创建", "update": "更新", "delete": "删除"}


@dataclass(frozen=True, slots=True)
class ArtifactShape:
    model: type[ArtifactContent]
    formatter: Callable[[str, ArtifactContent], str]


def _preview(values: Sequence[object], limit: int, sep: str = ", ") -> str:
    text = sep.join(str(value) for value in values[:limit])
    if len(values) > limit:
        text += "…"
    return text


def _format_mutation(action_id: str, content: MutationResultV1) -> str:
    op_label = OPERATION_LABELS.get(content.operation, content.operation) or "操作"
    label = entity_label(content.entity_type)
    if content.status == "succeeded":
        return f"{op_label}{label}成功（ID={content.entity_id}）"
    details = "：".join(part for part in (content.error_code, content.message) if part)
    return f"{op_label}{label}失败{f'（{details}）' if details else ''}"


def _format_resolve(action_id: str, content: EntityResolveV1) -> str:
    label = entity_label(content.entity_type)
    candidates = content.candidates
    shown = min(CANDIDATE_PREVIEW, len(candidates))
    preview = ", ".join(
        f"{candidate.entity_id if candidate.entity_id is not None else '?'}:{candidate.display_name[:50]}"
        for candidate in candidates[:CANDIDATE_PREVIEW]
    )
    preview_label = f"候选（前{shown}个）：{preview}" if preview else ""
    explanation = (content.explanation or "").strip()

    if content.status == "resolved":
        return f"已解析{label}：候选 {len(candidates)} 个。{preview_label}"
    if content.status == "ambiguous":
        hint = f"。提示：{explanation}" if explanation else ""
        return f"已解析{label}：存在多个候选，需要人工确认。{preview_label}{hint}"
    return f"未能解析{label}（no_match）{f'：{explanation}' if explanation else ''}"


def _format_list(action_id: str, content: EntityListV1) -> str:
    label = entity_label(content.entity_type)
    meta = []
    if content.total is not None:
        meta.append(f"总数 {content.total}")
    if content.page_size is not None:
        meta.append(f"每页 {content.page_size}")
    if content.page is not None:
        meta.append(f"第 {content.page} 页")

    if content.has_more:
        if content.next_after_id is not None:
            paging = f"还有更多，可继续查询（after_id={content.next_after_id}）"
        else:
            paging = "还有更多，可继续查询"
        meta.append(paging)

    ids = content.ids
    if ids:
        shown = min(ID_PREVIEW, len(ids))
        ids_label = f"本页 {len(ids)} 条，ID（前{shown}个）：{_preview(ids, ID_PREVIEW)}"
    else:
        ids_label = "本页无数据"
    if not meta:
        return f"已查询{label}列表。{ids_label}"
    return f"已查询{label}列表：{'，'.join(meta)}。{ids_label}"


def _format_bulk_delete_preview(action_id: str, content: BulkDeletePreviewV1) -> str:
    missing = content.missing_ids
    text = f"批量删除预览：存在 {len(content.existing_ids)}，不存在 {len(missing)}。"
    if missing:
        text += f" 不存在的ID：{_preview(missing, ID_PREVIEW)}"
    return text


def _format_bulk_delete_result(action_id: str, content: BulkDeleteResultV1) -> str:
    deleted = sum(1 for item in content.results if item.status == "deleted")
    failures = [item for item in content.results if item.status == "failed"]
    preview = ", ".join(
        f"{item.id if item.id is not None else '?'}({item.message or item.error_code or 'failed'})"
        for item in failures[:FAILURE_PREVIEW]
    )
    text = f"批量删除完成：成功 {deleted}，失败 {len(failures)}"
    if preview:
        text += f"。失败示例：{preview}"
    return text


def _format_sql_patch_preview(action_id: str, content: SqlPatchPreviewV1) -> str:
    if content.valid:
        estimated = content.estimated_affected_rows if content.estimated_affected_rows is not None else "?"
        return f"SQL Patch 预览通过：预计影响 {estimated} 行。"
    errors = content.validation_errors
    preview = _preview(errors, FAILURE_PREVIEW, sep="; ")
    return f"SQL Patch 预览失败：{len(errors)} 个校验错误{f'（示例：{preview}）' if preview else ''}"


def _format_sql_patch_result(action_id: str, content: SqlPatchResultV1) -> str:
    if content.status == "succeeded":
        affected = content.affected_rows if content.affected_rows is not None else "?"
        return f"SQL Patch 执行成功：影响 {affected} 行。"
    return f"SQL Patch 执行失败{f'：{content.message}' if content.message else ''}"


def _format_import_result(action_id: str, content: ImportResultV1) -> str:
    counts = content.counts
    label = entity_label(content.entity_type) if content.entity_type else ""
    text = f"{label}导入完成：成功 {counts.rows_succeeded}，跳过 {counts.rows_skipped}"
    if counts.rows_failed:
        text += f"，失败 {counts.rows_failed}"
    return text


ARTIFACT_SHAPES: dict[tuple[str, str], ArtifactShape] = {
    ("admin.mutation.result", "v1"): ArtifactShape(MutationResultV1, _format_mutation),
    ("admin.entity.resolve", "v1"): ArtifactShape(EntityResolveV1, _format_resolve),
    ("admin.entity.list", "v1"): ArtifactShape(EntityListV1, _format_list),
    ("admin.bulk_delete.preview", "v1"): ArtifactShape(BulkDeletePreviewV1, _format_bulk_delete_preview),
    ("admin.bulk_delete.result", "v1"): ArtifactShape(BulkDeleteResultV1, _format_bulk_delete_result),
    ("admin.sql_patch.preview", "v1"): ArtifactShape(SqlPatchPreviewV1, _format_sql_patch_preview),
    ("admin.sql_patch.result", "v1"): ArtifactShape(SqlPatchResultV1, _format_sql_patch_result),
    ("admin.import.result", "v1"): ArtifactShape(ImportResultV1, _format_import_result),
}


def parse_content(artifact: Artifact) -> ArtifactContent | None:
    """Validate ``artifact.content`` against its registered shape, if any."""

    shape = ARTIFACT_SHAPES.get(artifact.dispatch_key)
    if shape is None:
        return None
    try:
        return shape.model.model_validate(artifact.content if artifact.content is not None else {})
    except ValidationError as exc:
        logger.warning(
            "artifact %s (%s@%s) does not match its schema: %s",
            artifact.artifact_id,
            artifact.type,
            artifact.schema_version,
            exc.error_count(),
        )
        return None


def fallback_summary(action_id: str, artifact: Artifact) -> str:
    summary = str(artifact.summary or "").strip()
    if summary:
        return f"操作完成（{action_id}）：{summary}"
    return f"操作完成（{action_id}）。"


def summarize_artifact(action_id: str, artifact: Artifact) -> str:
    content = parse_content(artifact)
    if content is None:
        return fallback_summary(action_id, artifact)
    shape = ARTIFACT_SHAPES[artifact.dispatch_key]
    return shape.formatter(action_id, content)


def interpret(action_id: str, artifacts: Sequence[Artifact]) -> str:
    """Summarise the newest artifact of a run (index 0, newest first)."""

    if not artifacts:
        return f"操作已完成（{action_id}），但未找到产物。"
    return summarize_artifact(action_id, artifacts[0])
