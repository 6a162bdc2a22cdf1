"""Application service wiring the run pipeline for the gateway."""
from __future__ import annotations

import logging
from typing import Any

from workbench.core.actions import requires_confirmation
from workbench.core.idempotency import new_confirmation_token
from workbench.core.settings import WorkbenchSettings
from workbench.domain import ActionOutcome, Artifact, InvocationContext, JobRecord, RunStatus
from workbench.infrastructure import (
    CredentialProvider,
    InMemorySessionRepository,
    ObjectUploader,
    SessionRepository,
    StaticCredentialProvider,
    WorkbenchClient,
)
from workbench.workers.notifier import BackgroundJob, BackgroundNotifier
from workbench.workers.poller import CompletionPoller

from .accumulator import DEFAULT_PAGE_SIZE, ListAccumulator
from .admin_ops import AdminOpsService
from .invocations import InvocationIssuer, RunPipeline
from .revisions import RevisionSaver

logger = logging.getLogger(__name__)


class WorkbenchService:
    """Facade over the pipeline, browse sessions and background jobs."""

    def __init__(
        self,
        client: WorkbenchClient,
        *,
        settings: WorkbenchSettings | None = None,
        repository: SessionRepository | None = None,
        poller: CompletionPoller | None = None,
        plugin_scoped: bool = False,
    ) -> None:
        self._settings = settings or WorkbenchSettings()
        self._client = client
        self._repository = repository or InMemorySessionRepository()
        self._issuer = InvocationIssuer(client, plugin_id=self._settings.plugin_id, plugin_scoped=plugin_scoped)
        self._poller = poller or CompletionPoller(client)
        self._pipeline = RunPipeline(self._issuer, client, self._poller)
        self._notifier = BackgroundNotifier(self._pipeline)
        self._uploader = ObjectUploader(client)
        self._admin_ops = AdminOpsService(
            self._pipeline,
            self._notifier,
            self._uploader,
            client,
            timeouts=self._settings.timeouts,
        )
        self._revisions = RevisionSaver(self._pipeline, timeout_ms=self._settings.timeouts.mutation_ms)

    @property
    def settings(self) -> WorkbenchSettings:
        return self._settings

    @property
    def client(self) -> WorkbenchClient:
        return self._client

    @property
    def pipeline(self) -> RunPipeline:
        return self._pipeline

    @property
    def notifier(self) -> BackgroundNotifier:
        return self._notifier

    @property
    def admin_ops(self) -> AdminOpsService:
        return self._admin_ops

    # ------------------------------------------------------------------
    # invocations
    # ------------------------------------------------------------------
    async def invoke(
        self,
        action_id: str,
        params: dict[str, Any],
        *,
        background: bool = False,
        timeout_ms: int | None = None,
        conversation_id: str | None = None,
        context: InvocationContext | None = None,
        idempotency_key: str | None = None,
        confirmed: bool = False,
    ) -> ActionOutcome:
        kwargs: dict[str, Any] = {"conversation_id": conversation_id, "context": context}
        if idempotency_key:
            kwargs["idempotency_key"] = idempotency_key
        if confirmed and requires_confirmation(action_id):
            kwargs["confirmation_token"] = new_confirmation_token()
        wait_ms = timeout_ms if timeout_ms is not None else self._settings.timeouts.for_action(action_id)

        if not background:
            return await self._pipeline.run_to_outcome(action_id, params, timeout_ms=wait_ms, **kwargs)

        job = await self._notifier.start_background(action_id, params, self._log_settled, timeout_ms=wait_ms, **kwargs)
        return job.outcome

    @staticmethod
    def _log_settled(outcome: ActionOutcome) -> None:
        logger.info("background run %s settled as %s", outcome.run_id, outcome.status)

    async def save_revision(
        self,
        action_id: str,
        content: Any,
        *,
        base_artifact_id: str,
        expected_latest_artifact_id: str | None = None,
        conversation_id: str | None = None,
        context: InvocationContext | None = None,
        idempotency_key: str | None = None,
    ) -> ActionOutcome:
        return await self._revisions.save(
            action_id,
            content,
            base_artifact_id=base_artifact_id,
            expected_latest_artifact_id=expected_latest_artifact_id,
            context=context,
            conversation_id=conversation_id,
            idempotency_key=idempotency_key,
        )

    # ------------------------------------------------------------------
    # run inspection and control (these raise WorkbenchError)
    # ------------------------------------------------------------------
    async def get_run(self, run_id: int) -> RunStatus:
        return await self._client.get_run(run_id)

    async def list_runs(
        self,
        *,
        conversation_id: str | None = None,
        state: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        return await self._client.list_runs(conversation_id=conversation_id or None, state=state or None, limit=limit)

    async def list_run_artifacts(self, run_id: int) -> list[Artifact]:
        return await self._client.list_run_artifacts(run_id)

    async def get_artifact(self, artifact_id: str) -> Artifact:
        return await self._client.get_artifact(artifact_id)

    async def list_artifacts(
        self,
        *,
        conversation_id: str | None = None,
        run_id: int | None = None,
        limit: int | None = None,
    ) -> list[Artifact]:
        return await self._client.list_artifacts(conversation_id=conversation_id, run_id=run_id, limit=limit)

    async def cancel_run(self, run_id: int) -> None:
        await self._client.cancel_run(run_id)

    async def retry_run(self, run_id: int) -> None:
        await self._client.retry_run(run_id)

    async def submit_input(self, run_id: int, value: Any) -> None:
        await self._client.submit_input(run_id, value)

    # ------------------------------------------------------------------
    # browse sessions
    # ------------------------------------------------------------------
    def open_browse_session(
        self,
        entity_type: str,
        *,
        filters: dict[str, Any] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        conversation_id: str | None = None,
    ) -> tuple[str, ListAccumulator]:
        accumulator = ListAccumulator(
            self._pipeline,
            entity_type=entity_type,
            filters=filters,
            page_size=page_size,
            timeout_ms=self._settings.timeouts.list_ms,
            conversation_id=conversation_id,
        )
        session_id = self._repository.next_session_id()
        self._repository.save_session(session_id, accumulator)
        return session_id, accumulator

    def get_browse_session(self, session_id: str) -> ListAccumulator | None:
        session = self._repository.get_session(session_id)
        return session if isinstance(session, ListAccumulator) else None

    # ------------------------------------------------------------------
    # CSV imports
    # ------------------------------------------------------------------
    async def start_import(
        self,
        entity_type: str,
        payload: bytes,
        *,
        filename: str | None = None,
        defaults: Any = None,
        conversation_id: str | None = None,
    ) -> JobRecord:
        job_id = self._repository.next_job_id()
        record = JobRecord(job_id=job_id, action_id=f"admin.import.{entity_type}", filename=filename)
        self._repository.save_job(record)

        def on_settled(outcome: ActionOutcome) -> None:
            self._record_settlement(job_id, outcome)

        job = await self._admin_ops.start_csv_import(
            entity_type,
            payload,
            on_settled,
            filename=filename,
            defaults=defaults,
            conversation_id=conversation_id,
        )
        return self._record_start(record, job)

    def _record_start(self, record: JobRecord, job: BackgroundJob) -> JobRecord:
        record.action_id = job.action_id
        record.content = job.outcome.content
        if job.handle is None:
            record.status = "failed"
            record.error = job.outcome.error.message if job.outcome.error else job.outcome.content
        else:
            record.run_id = job.handle.run_id
            record.status = "running"
        self._repository.save_job(record)
        return record

    def _record_settlement(self, job_id: str, outcome: ActionOutcome) -> None:
        record = self._repository.get_job(job_id)
        if record is None:
            return
        record.status = outcome.status
        record.content = outcome.content
        record.error = outcome.error.message if outcome.error else None
        if outcome.run_id is not None:
            record.run_id = outcome.run_id
        self._repository.save_job(record)

    def list_jobs(self) -> list[JobRecord]:
        return self._repository.list_jobs()

    def get_job(self, job_id: str) -> JobRecord | None:
        return self._repository.get_job(job_id)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def drain(self) -> None:
        await self._notifier.drain()

    def reset(self) -> None:
        self._repository.reset()

    async def aclose(self) -> None:
        await self._notifier.drain()
        await self._client.aclose()


def build_workbench_service(
    settings: WorkbenchSettings | None = None,
    *,
    credentials: CredentialProvider | None = None,
) -> WorkbenchService:
    settings = settings or WorkbenchSettings.from_env()
    client = WorkbenchClient(
        settings.base_url,
        credentials=credentials or StaticCredentialProvider(settings.api_token),
        timeout=settings.http_timeout_s,
    )
    return WorkbenchService(client, settings=settings)


_service: WorkbenchService | None = None


def configure_workbench_service(service: WorkbenchService) -> None:
    """Install the service used by the gateway routes."""

    global _service
    _service = service


def get_workbench_service() -> WorkbenchService:
    """Return the configured service, building one from the environment on first use."""

    global _service
    if _service is None:
        _service = build_workbench_service()
    return _service


def reset_workbench_state() -> None:
    """Clear browse sessions and job records (used by tests)."""

    if _service is not None:
        _service.reset()

