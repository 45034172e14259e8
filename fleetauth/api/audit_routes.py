"""
Audit read endpoint (organization auditors).

GET /audit/events requires audit:read at ORGANIZATION scope.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..container import get_audit_repository
from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES
from ..domain.entities import ScopeLevel, TokenClaims
from ..domain.repositories import AuditEventRepository
from .dependencies import require_permission
from .schemas import AuditEventResponse

router = APIRouter(prefix="/audit", tags=["audit"], responses=OPENAPI_ERROR_RESPONSES)


@router.get("/events", response_model=list[AuditEventResponse])
def list_audit_events(
    actor: Optional[str] = Query(None, max_length=256),
    action: Optional[str] = Query(None, max_length=128),
    limit: int = Query(100, ge=1, le=500),
    _claims: TokenClaims = Depends(
        require_permission("audit", "read", ScopeLevel.ORGANIZATION)
    ),
    repository: AuditEventRepository = Depends(get_audit_repository),
):
    return [
        AuditEventResponse(
            id=str(event.id),
            actor=event.actor,
            action=event.action,
            resource=event.resource,
            decision=event.decision.value,
            correlation_id=event.correlation_id,
            metadata=event.metadata,
            created_at=event.created_at,
        )
        for event in repository.list_events(actor=actor, action=action, limit=limit)
    ]
