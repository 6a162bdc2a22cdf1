"""Presign-then-PUT staging of payloads referenced by object key."""
from __future__ import annotations

import logging
from typing import Callable

from workbench.core.errors import BackendResponseError, UploadFailed, WorkbenchError, preview_body
from workbench.core.hashing import sha256_bytes
from workbench.core.schema import PresignUploadResponse
from workbench.domain import ObjectReference

from .workbench_api import WorkbenchClient

logger = logging.getLogger(__name__)


class ObjectUploader:
    """Stages bytes in the object store and returns an :class:`ObjectReference`.

    The hash sent to presign is always the hash of the bytes that are PUT.
    Nothing here retries; callers decide what to do with an
    :class:`UploadFailed`.
    """

    def __init__(self, client: WorkbenchClient) -> None:
        self._client = client

    async def presign(
        self,
        *,
        purpose: str,
        media_type: str,
        sha256: str,
        filename: str,
    ) -> PresignUploadResponse:
        try:
            return await self._client.presign_upload(
                content_type=media_type, filename=filename, purpose=purpose, sha256=sha256
            )
        except BackendResponseError as exc:
            logger.warning("presign for %s failed with HTTP %s", filename, exc.status_code)
            raise UploadFailed(
                f"presign failed: HTTP {exc.status_code}: {preview_body(exc.body)}",
                status_code=exc.status_code,
                body=exc.body,
            ) from exc
        except WorkbenchError as exc:
            raise UploadFailed(f"presign failed: {exc.message}") from exc

    async def upload(self, upload_url: str, required_headers: dict[str, str], payload: bytes) -> None:
        try:
            await self._client.put_object(upload_url, required_headers, payload)
        except BackendResponseError as exc:
            logger.warning("object upload failed with HTTP %s", exc.status_code)
            raise UploadFailed(
                f"upload failed: HTTP {exc.status_code}: {preview_body(exc.body)}",
                status_code=exc.status_code,
                body=exc.body,
            ) from exc
        except WorkbenchError as exc:
            raise UploadFailed(f"upload failed: {exc.message}") from exc

    async def stage(
        self,
        payload: bytes,
        *,
        purpose: str,
        media_type: str,
        filename: str,
        sensitivity: str,
    ) -> ObjectReference:
        digest = sha256_bytes(payload)
        presigned = await self.presign(purpose=purpose, media_type=media_type, sha256=digest, filename=filename)
        await self.upload(presigned.upload_url, presigned.required_headers, payload)
        return ObjectReference(
            object_key=presigned.object_key,
            sha256=digest,
            media_type=media_type,
            sensitivity=sensitivity,
            purpose=purpose,
        )

    async def stage_text(
        self,
        text: str,
        *,
        purpose: str,
        media_type: str,
        filename: str,
        sensitivity: str,
        transform: Callable[[str, str], str] | None = None,
    ) -> ObjectReference:
        """Stage ``text``, optionally rewriting it with what the presign revealed.

        ``transform(text, object_key)`` may depend on the object key of the
        first presign. When it changes the text, the original presign is
        discarded and the rewritten bytes are hashed and presigned again.
        """

        payload = text.encode("utf-8")
        digest = sha256_bytes(payload)
        presigned = await self.presign(purpose=purpose, media_type=media_type, sha256=digest, filename=filename)

        if transform is not None:
            rewritten = transform(text, presigned.object_key)
            if rewritten != text:
                payload = rewritten.encode("utf-8")
                digest = sha256_bytes(payload)
                presigned = await self.presign(
                    purpose=purpose, media_type=media_type, sha256=digest, filename=filename
                )

        await self.upload(presigned.upload_url, presigned.required_headers, payload)
        return ObjectReference(
            object_key=presigned.object_key,
            sha256=digest,
            media_type=media_type,
            sensitivity=sensitivity,
            purpose=purpose,
        )
