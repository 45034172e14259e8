"""
===============================================================================
CRC CARD — api/supervisor_routes.py (Supervisor override)
===============================================================================

Responsibilities:
  - POST /supervisor/override/login   supervisor PIN -> override token
  - POST /supervisor/override/revoke  drop the override (own or supervised session)
  - GET  /supervisor/override/status  confirm an override token is still live
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..application.usecases import GrantOverrideUseCase, RevokeOverrideUseCase
from ..container import (
    get_grant_override_use_case,
    get_override_service,
    get_revoke_override_use_case,
)
from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES
from ..domain.entities import TokenClaims, TokenKind
from ..identity.override import SupervisorOverrideService
from .dependencies import client_ip, require_token
from .schemas import (
    OverrideLoginRequest,
    OverrideResponse,
    OverrideRevokeRequest,
    OverrideRevokeResponse,
    OverrideStatusResponse,
    to_override_response,
)

router = APIRouter(
    prefix="/supervisor/override",
    tags=["supervisor"],
    responses=OPENAPI_ERROR_RESPONSES,
)


@router.post("/login", response_model=OverrideResponse)
def override_login(
    req: OverrideLoginRequest,
    request: Request,
    claims: TokenClaims = Depends(require_token()),
    use_case: GrantOverrideUseCase = Depends(get_grant_override_use_case),
):
    grant = use_case.execute(
        claims, req.supervisor_pin, ip_address=client_ip(request)
    )
    return to_override_response(grant.token)


@router.post("/revoke", response_model=OverrideRevokeResponse)
def override_revoke(
    req: OverrideRevokeRequest | None = None,
    claims: TokenClaims = Depends(require_token()),
    use_case: RevokeOverrideUseCase = Depends(get_revoke_override_use_case),
):
    session_id = (req.session_id if req else None) or claims.session_id
    jti = use_case.execute(claims, session_id)
    return OverrideRevokeResponse(revoked=jti is not None, session_id=session_id)


@router.get("/status", response_model=OverrideStatusResponse)
def override_status(
    claims: TokenClaims = Depends(require_token(TokenKind.OVERRIDE)),
    overrides: SupervisorOverrideService = Depends(get_override_service),
):
    session = overrides.active_session(claims.session_id)
    return OverrideStatusResponse(session_id=session.id, override_until=claims.expires_at)
