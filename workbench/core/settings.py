"""Environment configuration for the workbench client."""
from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_BACKEND_BASE_URL = "http://127.0.0.1:18000"
DEFAULT_PLUGIN_ID = "admin.ops.v1"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class TimeoutPolicy:
    """Bounded wait, in milliseconds, per class of action."""

    list_ms: int = 15_000
    mutation_ms: int = 15_000
    bulk_delete_ms: int = 15_000
    bulk_delete_browse_ms: int = 25_000
    sql_patch_preview_ms: int = 15_000
    sql_patch_execute_ms: int = 20_000
    import_ms: int = 35 * 60_000

    @classmethod
    def from_env(cls) -> "TimeoutPolicy":
        defaults = cls()
        return cls(
            list_ms=_env_int("WORKBENCH_TIMEOUT_LIST_MS", defaults.list_ms),
            mutation_ms=_env_int("WORKBENCH_TIMEOUT_MUTATION_MS", defaults.mutation_ms),
            bulk_delete_ms=_env_int("WORKBENCH_TIMEOUT_BULK_DELETE_MS", defaults.bulk_delete_ms),
            bulk_delete_browse_ms=_env_int(
                "WORKBENCH_TIMEOUT_BULK_DELETE_BROWSE_MS", defaults.bulk_delete_browse_ms
            ),
            sql_patch_preview_ms=_env_int(
                "WORKBENCH_TIMEOUT_SQL_PATCH_PREVIEW_MS", defaults.sql_patch_preview_ms
            ),
            sql_patch_execute_ms=_env_int(
                "WORKBENCH_TIMEOUT_SQL_PATCH_EXECUTE_MS", defaults.sql_patch_execute_ms
            ),
            import_ms=_env_int("WORKBENCH_TIMEOUT_IMPORT_MS", defaults.import_ms),
        )

    def for_action(self, action_id: str) -> int:
        parts = action_id.split(".")
        verb = parts[1] if len(parts) > 1 else ""
        if verb in {"list", "entity"}:
            return self.list_ms
        if verb == "import":
            return self.import_ms
        if verb == "bulk_delete":
            return self.bulk_delete_ms if parts[-1] == "execute" else self.list_ms
        if verb == "sql_patch":
            return self.sql_patch_execute_ms if parts[-1] == "execute" else self.sql_patch_preview_ms
        return self.mutation_ms


@dataclass(frozen=True)
class WorkbenchSettings:
    base_url: str = DEFAULT_BACKEND_BASE_URL
    api_token: str = ""
    http_timeout_s: float = 30.0
    plugin_id: str = DEFAULT_PLUGIN_ID
    cors_origins: tuple[str, ...] = ("http://localhost:3000", "http://127.0.0.1:3000")
    timeouts: TimeoutPolicy = field(default_factory=TimeoutPolicy)

    @classmethod
    def from_env(cls) -> "WorkbenchSettings":
        base_url = (
            os.getenv("WORKBENCH_API_BASE_URL")
            or os.getenv("AITUTOR_API_BASE_URL")
            or DEFAULT_BACKEND_BASE_URL
        ).rstrip("/")

        origins_env = os.getenv("API_CORS_ORIGINS", "")
        origins = tuple(origin.strip() for origin in origins_env.split(",") if origin.strip())

        kwargs: dict[str, object] = {
            "base_url": base_url,
            "api_token": (os.getenv("WORKBENCH_API_TOKEN") or "").strip(),
            "http_timeout_s": _env_float("WORKBENCH_HTTP_TIMEOUT_S", 30.0),
            "plugin_id": os.getenv("WORKBENCH_PLUGIN_ID") or DEFAULT_PLUGIN_ID,
            "timeouts": TimeoutPolicy.from_env(),
        }
        if origins:
            kwargs["cors_origins"] = origins
        return cls(**kwargs)  # type: ignore[arg-type]
