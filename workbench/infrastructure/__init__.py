"""Infrastructure layer exports."""

from .credentials import CachedCredentialProvider, CredentialProvider, StaticCredentialProvider
from .events import RunEventLog, iter_run_events, parse_event_stream
from .sessions import InMemorySessionRepository, SessionRepository
from .uploads import ObjectUploader
from .workbench_api import WorkbenchClient

__all__ = [
    "CachedCredentialProvider",
    "CredentialProvider",
    "InMemorySessionRepository",
    "ObjectUploader",
    "RunEventLog",
    "SessionRepository",
    "StaticCredentialProvider",
    "WorkbenchClient",
    "iter_run_events",
    "parse_event_stream",
]
