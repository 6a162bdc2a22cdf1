"""Admin-ops use cases built on the run pipeline."""
from __future__ import annotations

import logging
import uuid
from typing import Any

from workbench.core import csv_source
from workbench.core.actions import (
    ENTITY_RESOLVE_ACTION,
    SQL_PATCH_ACK,
    SQL_PATCH_EXECUTE_ACTION,
    SQL_PATCH_PREVIEW_ACTION,
    bulk_delete_action_id,
    import_action_id,
    import_csv_sensitivity,
    list_action_id,
    mutation_action_id,
    requires_confirmation,
    substitute_tenant_placeholder,
)
from workbench.core.errors import InvalidParams, UploadFailed, WorkbenchError, preview_body
from workbench.core.idempotency import new_confirmation_token
from workbench.core.settings import TimeoutPolicy
from workbench.domain import ActionOutcome, InvocationContext, ObjectReference
from workbench.infrastructure import ObjectUploader, WorkbenchClient
from workbench.workers.notifier import BackgroundJob, BackgroundNotifier, SettledCallback

from .invocations import RunPipeline, failed_outcome

logger = logging.getLogger(__name__)

CSV_SNIPPET_LIMIT = 300


class AdminOpsService:
    """School administration actions: listing, CRUD, bulk delete, SQL patch, CSV import."""

    def __init__(
        self,
        pipeline: RunPipeline,
        notifier: BackgroundNotifier,
        uploader: ObjectUploader,
        client: WorkbenchClient,
        *,
        timeouts: TimeoutPolicy | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._notifier = notifier
        self._uploader = uploader
        self._client = client
        self._timeouts = timeouts or TimeoutPolicy()

    @property
    def timeouts(self) -> TimeoutPolicy:
        return self._timeouts

    # ------------------------------------------------------------------
    # generic entry points
    # ------------------------------------------------------------------
    def _invoke_kwargs(
        self,
        action_id: str,
        context: InvocationContext | None,
        conversation_id: str | None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"context": context, "conversation_id": conversation_id}
        if idempotency_key:
            kwargs["idempotency_key"] = idempotency_key
        if requires_confirmation(action_id):
            kwargs["confirmation_token"] = new_confirmation_token()
        return kwargs

    async def run_action(
        self,
        action_id: str,
        params: dict[str, Any],
        *,
        timeout_ms: int,
        context: InvocationContext | None = None,
        conversation_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> ActionOutcome:
        kwargs = self._invoke_kwargs(action_id, context, conversation_id, idempotency_key)
        return await self._pipeline.run_to_outcome(action_id, params, timeout_ms=timeout_ms, **kwargs)

    async def start_action(
        self,
        action_id: str,
        params: dict[str, Any],
        on_settled: SettledCallback,
        *,
        timeout_ms: int,
        context: InvocationContext | None = None,
        conversation_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> BackgroundJob:
        kwargs = self._invoke_kwargs(action_id, context, conversation_id, idempotency_key)
        return await self._notifier.start_background(
            action_id, params, on_settled, timeout_ms=timeout_ms, **kwargs
        )

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    async def list_entities(
        self,
        entity_type: str,
        *,
        filters: dict[str, Any] | None = None,
        page: int = 1,
        page_size: int = 50,
        after_id: int | None = None,
        include_total: bool = False,
        context: InvocationContext | None = None,
        conversation_id: str | None = None,
    ) -> ActionOutcome:
        try:
            action_id = list_action_id(entity_type)
        except ValueError as exc:
            return failed_outcome(f"admin.list.{entity_type}", InvalidParams(str(exc)))
        params: dict[str, Any] = {
            "filters": dict(filters or {}),
            "page": page,
            "page_size": page_size,
            "include_total": include_total,
        }
        if after_id is not None:
            params["after_id"] = after_id
        return await self.run_action(
            action_id, params, timeout_ms=self._timeouts.list_ms, context=context, conversation_id=conversation_id
        )

    async def resolve_entity(
        self,
        params: dict[str, Any],
        *,
        context: InvocationContext | None = None,
        conversation_id: str | None = None,
    ) -> ActionOutcome:
        return await self.run_action(
            ENTITY_RESOLVE_ACTION,
            dict(params),
            timeout_ms=self._timeouts.list_ms,
            context=context,
            conversation_id=conversation_id,
        )

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------
    async def mutate(
        self,
        operation: str,
        entity_type: str,
        params: dict[str, Any],
        *,
        context: InvocationContext | None = None,
        conversation_id: str | None = None,
    ) -> ActionOutcome:
        try:
            action_id = mutation_action_id(operation, entity_type)
        except ValueError as exc:
            return failed_outcome(f"admin.{operation}.{entity_type}", InvalidParams(str(exc)))
        return await self.run_action(
            action_id,
            dict(params),
            timeout_ms=self._timeouts.mutation_ms,
            context=context,
            conversation_id=conversation_id,
        )

    async def bulk_delete(
        self,
        entity_type: str,
        phase: str,
        ids: list[int],
        *,
        context: InvocationContext | None = None,
        conversation_id: str | None = None,
        from_browser: bool = False,
    ) -> ActionOutcome:
        try:
            action_id = bulk_delete_action_id(entity_type, phase)
        except ValueError as exc:
            return failed_outcome(f"admin.bulk_delete.{entity_type}.{phase}", InvalidParams(str(exc)))
        if not ids:
            return failed_outcome(action_id, InvalidParams("ids must not be empty"))

        if phase == "preview":
            timeout_ms = self._timeouts.list_ms
        elif from_browser:
            timeout_ms = self._timeouts.bulk_delete_browse_ms
        else:
            timeout_ms = self._timeouts.bulk_delete_ms
        return await self.run_action(
            action_id,
            {"ids": [int(value) for value in ids]},
            timeout_ms=timeout_ms,
            context=context,
            conversation_id=conversation_id,
        )

    # ------------------------------------------------------------------
    # SQL patch
    # ------------------------------------------------------------------
    async def _stage_sql(self, sql_text: str, context: InvocationContext | None) -> ObjectReference:
        suffix = context.message_id if context is not None and context.message_id else uuid.uuid4().hex
        return await self._uploader.stage_text(
            sql_text,
            purpose="sql",
            media_type="text/plain",
            filename=f"sql_patch_{suffix}.sql",
            sensitivity="restricted",
            transform=substitute_tenant_placeholder,
        )

    async def sql_patch(
        self,
        phase: str,
        sql_text: str,
        max_affected_rows: Any,
        *,
        context: InvocationContext | None = None,
        conversation_id: str | None = None,
    ) -> ActionOutcome:
        if phase == "preview":
            action_id, timeout_ms = SQL_PATCH_PREVIEW_ACTION, self._timeouts.sql_patch_preview_ms
        elif phase == "execute":
            action_id, timeout_ms = SQL_PATCH_EXECUTE_ACTION, self._timeouts.sql_patch_execute_ms
        else:
            return failed_outcome("admin.sql_patch", InvalidParams(f"unsupported sql patch phase: {phase!r}"))

        if not str(sql_text or "").strip():
            return failed_outcome(action_id, InvalidParams("sql_text is required"))
        max_rows = _row_limit(max_affected_rows)
        if max_rows is None:
            return failed_outcome(action_id, InvalidParams("max_affected_rows must be a whole number"))
        if max_rows < 1:
            return failed_outcome(action_id, InvalidParams("max_affected_rows must be >= 1"))

        try:
            reference = await self._stage_sql(str(sql_text), context)
        except WorkbenchError as exc:
            logger.warning("staging sql for %s failed: %s", action_id, exc.message)
            return failed_outcome(action_id, exc)

        params: dict[str, Any] = {"max_affected_rows": max_rows, "sql_ref": reference.to_param()}
        if phase == "execute":
            params["ack"] = SQL_PATCH_ACK
        return await self.run_action(
            action_id, params, timeout_ms=timeout_ms, context=context, conversation_id=conversation_id
        )

    # ------------------------------------------------------------------
    # CSV import
    # ------------------------------------------------------------------
    async def read_conversation_csv(self, csv_file_url: str) -> bytes:
        """Download a CSV attached to the conversation, trying each URL candidate."""

        candidates = csv_source.csv_url_candidates(csv_file_url)
        if not candidates:
            raise InvalidParams("CSV 文件 URL 无效（必须是 http/https）。")

        last_error = ""
        for candidate in candidates:
            try:
                response = await self._client.fetch_url(candidate)
            except WorkbenchError as exc:
                last_error = f"读取会话里的 CSV 文件失败：{exc.message}"
                continue
            if 200 <= response.status_code < 300:
                return response.content

            snippet = preview_body(response.text, CSV_SNIPPET_LIMIT)
            hint = (
                "（签名不匹配，通常是 URL 中的 & 被转义成了 &amp;）"
                if csv_source.is_signature_mismatch(response.status_code, snippet)
                else ""
            )
            last_error = (
                f"无法读取会话里的 CSV 文件（{response.status_code}）{f'：{snippet}' if snippet else ''}{hint}"
            )
        raise UploadFailed(last_error or "读取会话里的 CSV 文件失败。")

    async def _import_params(
        self,
        entity_type: str,
        payload: bytes,
        filename: str,
        defaults: Any,
    ) -> dict[str, Any]:
        if not payload:
            raise InvalidParams("CSV 文件为空，无法导入。")
        reference = await self._uploader.stage(
            payload,
            purpose="csv",
            media_type="text/csv",
            filename=filename,
            sensitivity=import_csv_sensitivity(entity_type),
        )
        params: dict[str, Any] = {"csv_ref": reference.to_param()}
        safe_defaults = csv_source.sanitize_import_defaults(entity_type, defaults)
        if safe_defaults:
            params["defaults"] = safe_defaults
        return params

    async def start_csv_import(
        self,
        entity_type: str,
        payload: bytes,
        on_settled: SettledCallback,
        *,
        filename: str | None = None,
        defaults: Any = None,
        context: InvocationContext | None = None,
        conversation_id: str | None = None,
    ) -> BackgroundJob:
        try:
            action_id = import_action_id(entity_type)
        except ValueError as exc:
            return _rejected_job(f"admin.import.{entity_type}", InvalidParams(str(exc)))

        safe_name = csv_source.sanitize_csv_filename(entity_type, filename)
        try:
            params = await self._import_params(entity_type, payload, safe_name, defaults)
        except WorkbenchError as exc:
            logger.warning("staging %s for %s failed: %s", safe_name, action_id, exc.message)
            return _rejected_job(action_id, exc)

        return await self.start_action(
            action_id,
            params,
            on_settled,
            timeout_ms=self._timeouts.import_ms,
            context=context,
            conversation_id=conversation_id,
        )

    async def import_csv_from_url(
        self,
        entity_type: str,
        csv_file_url: str,
        on_settled: SettledCallback,
        *,
        filename: str | None = None,
        defaults: Any = None,
        context: InvocationContext | None = None,
        conversation_id: str | None = None,
    ) -> BackgroundJob:
        try:
            action_id = import_action_id(entity_type)
        except ValueError as exc:
            return _rejected_job(f"admin.import.{entity_type}", InvalidParams(str(exc)))

        try:
            payload = await self.read_conversation_csv(csv_file_url)
        except WorkbenchError as exc:
            return _rejected_job(action_id, exc)

        return await self.start_csv_import(
            entity_type,
            payload,
            on_settled,
            filename=csv_source.sanitize_csv_filename(entity_type, filename, csv_file_url),
            defaults=defaults,
            context=context,
            conversation_id=conversation_id,
        )


def _rejected_job(action_id: str, exc: WorkbenchError) -> BackgroundJob:
    return BackgroundJob(action_id=action_id, handle=None, outcome=failed_outcome(action_id, exc))


def _row_limit(value: Any) -> int | None:
    """Whole-number row limit, or ``None`` when ``value`` is not one."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None
