"""
Request context management using ContextVars.

Carries the request ID across async boundaries (including the fan-out
tasks of a dispatch) for log correlation.
"""

from __future__ import annotations

import contextvars
import uuid

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id",
    default=None,
)


def get_request_id() -> str | None:
    """Get current request ID from context."""
    return request_id_var.get()


def set_request_id(request_id: str) -> contextvars.Token[str | None]:
    """Set request ID in context, returning the token needed to reset it."""
    return request_id_var.set(request_id)


def reset_request_id(token: contextvars.Token[str | None]) -> None:
    request_id_var.reset(token)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid.uuid4())
