"""
===============================================================================
CRC CARD — fleetauth/audit.py (Audit emission)
===============================================================================

Responsibilities:
  - Build audit events with a consistent shape (actor/action/resource/decision).
  - Stamp every event with the current correlation id.
  - Persist through AuditEventRepository (domain port).
  - Best-effort: a failing sink never breaks the business flow.

Collaborators:
  - fleetauth.domain.audit.AuditEvent
  - fleetauth.domain.repositories.AuditEventRepository
  - fleetauth.context.get_correlation_id
  - fleetauth.crosscutting.logger.logger

Security:
  - Metadata is sanitized to serializable values; raw secrets are never passed in.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from .context import get_correlation_id
from .crosscutting.logger import logger
from .domain.audit import AuditDecision, AuditEvent
from .domain.repositories import AuditEventRepository

# Audited actions
AUTH_LOGIN = "auth.login"
AUTH_REFRESH = "auth.refresh"
AUTH_LOGOUT = "auth.logout"
TOKEN_REVOKE = "token.revoke"
POLICY_ISSUE = "policy.issue"
OVERRIDE_GRANT = "supervisor.override.grant"
OVERRIDE_REVOKE = "supervisor.override.revoke"
AUTHZ_DENY = "authz.deny"


def actor_for(identity_id: str | None, *, device_id: str | None = None) -> str:
    """
    Stable actor identifier.

    Format:
      - identity:{id}@device:{device_id}
      - identity:{id}
      - anonymous
    """
    if not identity_id:
        return "anonymous"
    if device_id:
        return f"identity:{identity_id}@device:{device_id}"
    return f"identity:{identity_id}"


def _sanitize(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value

    if isinstance(value, dict):
        return {str(k): _sanitize(v) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_sanitize(v) for v in value]

    return str(value)


def emit_audit_event(
    repository: AuditEventRepository | None,
    *,
    action: str,
    actor: str,
    resource: str,
    decision: AuditDecision,
    metadata: dict[str, Any] | None = None,
) -> None:
    """
    Emit an audit event.

    Key rule:
      - If repository is None or the write fails, nothing is raised.
    """
    if repository is None:
        return

    event = AuditEvent(
        id=uuid4(),
        actor=actor,
        action=action,
        resource=resource,
        decision=decision,
        correlation_id=get_correlation_id(),
        metadata=_sanitize(metadata or {}),
        created_at=datetime.now(timezone.utc),
    )

    try:
        repository.record_event(event)
    except Exception as exc:
        # Best-effort: log and move on.
        logger.warning(
            "Audit event write failed",
            extra={"action": action, "error": str(exc)},
        )
