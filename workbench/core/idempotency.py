"""Idempotency keys and confirmation tokens for invocations.

A retried attempt of the same logical effect must reuse its key so the
backend can deduplicate it; a deliberate new attempt mints a fresh one.
"""
from __future__ import annotations

import uuid

from workbench.domain import InvocationContext


def message_idempotency_key(plugin_id: str, action_id: str, context: InvocationContext) -> str:
    """Stable key derived from the message that triggered the action."""

    return f"admin-ops:{plugin_id}:{action_id}:{context.message_id}"


def fresh_idempotency_key(action_id: str) -> str:
    """Key for a new attempt started directly by a user."""

    return f"ui:{action_id}:{uuid.uuid4()}"


def new_confirmation_token() -> str:
    return f"confirm:{uuid.uuid4().hex}"
