"""HTTP client for the durable-run workbench backend."""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from workbench.core.errors import BackendResponseError, ErrorKind, TransportError, WorkbenchError
from workbench.core.schema import (
    ArtifactPayload,
    PresignUploadResponse,
    RunPayload,
    StartInvocationResponse,
)
from workbench.domain import Artifact, RunHandle, RunStatus

from .credentials import CredentialProvider, StaticCredentialProvider

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def to_artifact(payload: ArtifactPayload) -> Artifact:
    return Artifact(
        artifact_id=payload.artifact_id,
        type=payload.type,
        schema_version=payload.schema_version,
        content=payload.content,
        summary=payload.summary,
        title=payload.title,
        extra=dict(payload.model_extra or {}),
    )


class WorkbenchClient:
    """Thin async wrapper around the ``/workbench`` REST surface.

    Every method either returns a parsed value or raises a
    :class:`~workbench.core.errors.WorkbenchError`. Non-2xx answers become
    :class:`BackendResponseError` so callers can map the status code to the
    error kind that fits their operation.
    """

    def __init__(
        self,
        base_url: str,
        *,
        credentials: CredentialProvider | None = None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials or StaticCredentialProvider("")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self._base_url}/workbench{path}"

    async def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        try:
            token = await self._credentials.get_token()
        except WorkbenchError:
            raise
        except Exception as exc:
            logger.warning("could not obtain bearer token: %s", exc)
            raise WorkbenchError(
                f"could not obtain bearer token: {exc}", kind=ErrorKind.UNAUTHORIZED
            ) from exc
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                self._url(path),
                json=json,
                params=params,
                headers=await self._headers(headers),
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise BackendResponseError(response.status_code, response.text, path=path)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise WorkbenchError(
                f"backend returned invalid JSON for {response.request.url.path}",
                body=response.text,
            ) from exc

    @staticmethod
    def _parse(model: type[M], data: Any, *, kind: ErrorKind) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise WorkbenchError(
                f"unexpected {model.__name__} payload: {exc.error_count()} validation error(s)",
                kind=kind,
            ) from exc

    def _artifacts(self, data: Any) -> list[Artifact]:
        if isinstance(data, dict):
            data = data.get("items") or data.get("artifacts") or []
        if not isinstance(data, list):
            raise WorkbenchError("artifact listing is not an array", kind=ErrorKind.OBSERVATION_FAILED)
        return [to_artifact(self._parse(ArtifactPayload, item, kind=ErrorKind.OBSERVATION_FAILED)) for item in data]

    # ------------------------------------------------------------------
    # invocations and runs
    # ------------------------------------------------------------------
    async def start_invocation(
        self,
        *,
        action_id: str,
        params: dict[str, Any],
        conversation_id: str,
        plugin_id: str,
        idempotency_key: str,
        confirmation_id: str | None = None,
        request_id: str | None = None,
    ) -> RunHandle:
        body: dict[str, Any] = {
            "action_id": action_id,
            "params": params,
            "conversation_id": conversation_id,
            "plugin_id": plugin_id,
        }
        if confirmation_id:
            body["confirmation_id"] = confirmation_id

        headers = {"Idempotency-Key": idempotency_key}
        if request_id:
            headers["X-Request-Id"] = request_id

        response = await self._request("POST", "/invocations", json=body, headers=headers)
        started = self._parse(StartInvocationResponse, self._json(response), kind=ErrorKind.INVOCATION_FAILED)
        return RunHandle(invocation_id=started.invocation_id, run_id=started.run_id)

    async def get_run(self, run_id: int) -> RunStatus:
        response = await self._request("GET", f"/runs/{int(run_id)}")
        run = self._parse(RunPayload, self._json(response), kind=ErrorKind.OBSERVATION_FAILED)
        return RunStatus(run_id=run.run_id, state=run.state, failure_reason=run.failure_reason)

    async def list_runs(self, **filters: Any) -> list[dict[str, Any]]:
        params = {key: value for key, value in filters.items() if value is not None}
        data = self._json(await self._request("GET", "/runs", params=params or None))
        if isinstance(data, dict):
            data = data.get("items") or []
        return [item for item in data or [] if isinstance(item, dict)]

    async def list_run_artifacts(self, run_id: int) -> list[Artifact]:
        response = await self._request("GET", f"/runs/{int(run_id)}/artifacts")
        return self._artifacts(self._json(response))

    async def get_artifact(self, artifact_id: str) -> Artifact:
        response = await self._request("GET", f"/artifacts/{quote(str(artifact_id), safe='')}")
        return to_artifact(self._parse(ArtifactPayload, self._json(response), kind=ErrorKind.OBSERVATION_FAILED))

    async def list_artifacts(
        self,
        *,
        conversation_id: str | None = None,
        run_id: int | None = None,
        limit: int | None = None,
    ) -> list[Artifact]:
        params: dict[str, Any] = {}
        if conversation_id:
            params["conversation_id"] = conversation_id
        if run_id is not None:
            params["run_id"] = int(run_id)
        if limit is not None:
            params["limit"] = int(limit)
        response = await self._request("GET", "/artifacts", params=params or None)
        return self._artifacts(self._json(response))

    async def submit_input(self, run_id: int, value: Any) -> None:
        await self._request("POST", f"/runs/{int(run_id)}/input", json={"input": value})

    async def cancel_run(self, run_id: int) -> None:
        await self._request("POST", f"/runs/{int(run_id)}/cancel")

    async def retry_run(self, run_id: int) -> None:
        await self._request("POST", f"/runs/{int(run_id)}/retry")

    async def stream_run_event_lines(self, run_id: int, *, last_event_id: int | None = None) -> AsyncIterator[str]:
        """Yield the raw ``text/event-stream`` lines of a run's event stream."""

        extra = {"Accept": "text/event-stream"}
        if last_event_id is not None:
            extra["Last-Event-ID"] = str(last_event_id)
        headers = await self._headers(extra)
        path = f"/runs/{int(run_id)}/events/stream"
        try:
            async with self._client.stream("GET", self._url(path), headers=headers) as response:
                if response.status_code < 200 or response.status_code >= 300:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise BackendResponseError(response.status_code, body, path=path)
                async for line in response.aiter_lines():
                    yield line
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {path} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # object store
    # ------------------------------------------------------------------
    async def presign_upload(
        self,
        *,
        content_type: str,
        filename: str,
        purpose: str,
        sha256: str,
    ) -> PresignUploadResponse:
        body = {"content_type": content_type, "filename": filename, "purpose": purpose, "sha256": sha256}
        response = await self._request("POST", "/object-store/presign-upload", json=body)
        return self._parse(PresignUploadResponse, self._json(response), kind=ErrorKind.UPLOAD_FAILED)

    async def put_object(self, upload_url: str, required_headers: dict[str, str], payload: bytes) -> None:
        """PUT ``payload`` to a presigned URL, echoing only the required headers."""

        try:
            response = await self._client.put(upload_url, content=payload, headers=dict(required_headers))
        except httpx.HTTPError as exc:
            raise TransportError(f"object upload failed: {exc}") from exc
        if response.status_code < 200 or response.status_code >= 300:
            raise BackendResponseError(response.status_code, response.text, path="object-store upload")

    async def fetch_url(self, url: str) -> httpx.Response:
        """GET an arbitrary URL (conversation file links) without backend credentials."""

        try:
            return await self._client.get(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
