from __future__ import annotations

import logging
import os
import sys

_CONFIGURED = False


def setup_logging(level: int | str | None = None) -> None:
    """Configure root logging once; later calls are no-ops.

    Handlers installed by the host (uvicorn, pytest) are left untouched.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = level if level is not None else (os.getenv("WORKBENCH_LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=resolved,
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
            stream=sys.stdout,
        )
    _CONFIGURED = True
