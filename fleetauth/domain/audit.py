"""
===============================================================================
CRC CARD — domain/audit.py
===============================================================================

Module:
    Audit models (domain)

Responsibilities:
    - Define the audit record (AuditEvent): actor, action, resource, decision,
      correlation id.
    - Keep the audit contract independent from any sink.

Collaborators:
    - domain.repositories.AuditEventRepository: stores and lists events.
    - fleetauth/audit.py: emits events.

Notes:
    - Audit is append-only.
    - metadata is free-form (dict) and never holds secrets.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class AuditDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(slots=True)
class AuditEvent:
    """Engine audit event."""

    id: UUID
    actor: str
    action: str
    resource: str
    decision: AuditDecision
    correlation_id: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
