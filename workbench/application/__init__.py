"""Application services."""

from .accumulator import BrowseState, ListAccumulator
from .admin_ops import AdminOpsService
from .invocations import InvocationIssuer, RunPipeline, RunResult
from .revisions import RevisionSaver
from .workbench import (
    WorkbenchService,
    build_workbench_service,
    configure_workbench_service,
    get_workbench_service,
    reset_workbench_state,
)

__all__ = [
    "AdminOpsService",
    "BrowseState",
    "InvocationIssuer",
    "ListAccumulator",
    "RunPipeline",
    "RevisionSaver",
    "RunResult",
    "WorkbenchService",
    "build_workbench_service",
    "configure_workbench_service",
    "get_workbench_service",
    "reset_workbench_state",
]
