"""
===============================================================================
CRC CARD — fleetauth/context.py (Request-scoped correlation context)
===============================================================================

Responsibilities:
  - Keep request-scoped context in ContextVars (async-safe).
  - Carry the correlation id used by logs, audit records and error bodies.
  - Provide minimal helpers: set_request_context(), get_correlation_id(),
    get_context_dict(), clear_context().

Collaborators:
  - crosscutting.middleware: sets request_id/method/path per request.
  - crosscutting.logger: enriches every record with get_context_dict().
  - audit.emit_audit_event: stamps correlation_id on audit events.

Constraints:
  - Only primitive str values (safe JSON serialization).
  - Empty strings mean "not available".
===============================================================================
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Final
from uuid import uuid4

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
http_method_var: ContextVar[str] = ContextVar("http_method", default="")
http_path_var: ContextVar[str] = ContextVar("http_path", default="")

_CTX_REQUEST_ID: Final[str] = "request_id"
_CTX_METHOD: Final[str] = "method"
_CTX_PATH: Final[str] = "path"


def set_request_context(
    *, request_id: str = "", method: str = "", path: str = ""
) -> None:
    """Set the minimal request context."""
    request_id_var.set(request_id or "")
    http_method_var.set(method or "")
    http_path_var.set(path or "")


def get_correlation_id() -> str:
    """
    Return the current correlation id.

    Outside a request (jobs, tests) a fresh id is generated and bound so that
    every record of the same unit of work shares it.
    """
    current = request_id_var.get()
    if current:
        return current
    generated = str(uuid4())
    request_id_var.set(generated)
    return generated


def get_context_dict() -> dict[str, str]:
    """Current context as a dict, omitting empty keys."""
    ctx: dict[str, str] = {}

    if val := request_id_var.get():
        ctx[_CTX_REQUEST_ID] = val
    if val := http_method_var.get():
        ctx[_CTX_METHOD] = val
    if val := http_path_var.get():
        ctx[_CTX_PATH] = val

    return ctx


def clear_context() -> None:
    """Reset the context at the end of a request to avoid leaks between requests."""
    request_id_var.set("")
    http_method_var.set("")
    http_path_var.set("")
