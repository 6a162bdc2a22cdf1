from __future__ import annotations

from enum import Enum

from workbench.domain import ErrorInfo

BODY_PREVIEW_LIMIT = 500


class ErrorKind(str, Enum):
    CONVERSATION_UNSAVED = "WorkbenchConversationUnsaved"
    UNAUTHORIZED = "WorkbenchUnauthorized"
    FORBIDDEN = "WorkbenchForbidden"
    PLUGIN_DISABLED = "WorkbenchPluginDisabled"
    INVOCATION_FAILED = "WorkbenchInvocationFailed"
    CONFLICT = "WorkbenchConflict"
    RUN_FAILED = "WorkbenchRunFailed"
    OBSERVATION_FAILED = "WorkbenchObservationFailed"
    UPLOAD_FAILED = "WorkbenchUploadFailed"
    INVALID_PARAMS = "WorkbenchInvalidParams"
    LIST_CONTRACT_VIOLATION = "WorkbenchListContractViolation"
    TRANSPORT = "WorkbenchTransportError"


class WorkbenchError(RuntimeError):
    """Raised inside the client; converted to a typed result at each public operation."""

    kind: ErrorKind = ErrorKind.INVOCATION_FAILED

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.status_code = status_code
        self.body = preview_body(body) if body else None

    @property
    def message(self) -> str:
        return str(self)

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind.value, message=self.message)


class BackendResponseError(WorkbenchError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str, *, path: str = "") -> None:
        detail = preview_body(body) or str(status_code)
        super().__init__(detail, status_code=status_code, body=body)
        self.path = path


class ConversationUnsaved(WorkbenchError):
    kind = ErrorKind.CONVERSATION_UNSAVED


class UploadFailed(WorkbenchError):
    kind = ErrorKind.UPLOAD_FAILED


class InvalidParams(WorkbenchError):
    kind = ErrorKind.INVALID_PARAMS


class ListContractViolation(WorkbenchError):
    kind = ErrorKind.LIST_CONTRACT_VIOLATION


class TransportError(WorkbenchError):
    kind = ErrorKind.TRANSPORT


def preview_body(body: str | None, limit: int = BODY_PREVIEW_LIMIT) -> str:
    if not body:
        return ""
    return body[:limit]
