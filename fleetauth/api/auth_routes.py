"""
===============================================================================
CRC CARD — api/auth_routes.py (Session authentication)
===============================================================================

Responsibilities:
  - POST /auth/login    device + user + PIN -> access/refresh pair
  - POST /auth/refresh  rotate-on-use refresh
  - POST /auth/logout   end session, revoke its tokens
  - GET  /auth/whoami   identity + session + override state

Patterns:
  - Adapter / Presentation Layer: HTTP <-> use case; no decision logic.
  - Engine errors propagate to api/exception_handlers.py.

Collaborators:
  - application.usecases.auth
  - api.dependencies.require_token
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..application.usecases import (
    LoginInput,
    LoginUseCase,
    LogoutUseCase,
    RefreshUseCase,
    WhoAmIUseCase,
)
from ..container import (
    get_login_use_case,
    get_logout_use_case,
    get_refresh_use_case,
    get_whoami_use_case,
)
from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES
from ..domain.entities import TokenClaims
from .dependencies import client_ip, require_token
from .schemas import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    TokenResponse,
    WhoAmIResponse,
    to_identity_response,
    to_login_response,
    to_session_response,
    to_token_response,
)

router = APIRouter(prefix="/auth", tags=["auth"], responses=OPENAPI_ERROR_RESPONSES)


@router.post("/login", response_model=LoginResponse)
def login(
    req: LoginRequest,
    request: Request,
    use_case: LoginUseCase = Depends(get_login_use_case),
):
    """Authenticate a user on a device with their PIN."""
    result = use_case.execute(
        LoginInput(
            device_id=req.device_id,
            user_id=req.user_id,
            secret=req.pin,
            ip_address=client_ip(request),
        )
    )
    return to_login_response(result.tokens, result.identity)


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    req: RefreshRequest,
    use_case: RefreshUseCase = Depends(get_refresh_use_case),
):
    """Exchange a refresh token for a new pair. Each refresh token works once."""
    return to_token_response(use_case.execute(req.refresh_token))


@router.post("/logout", status_code=204)
def logout(
    claims: TokenClaims = Depends(require_token()),
    use_case: LogoutUseCase = Depends(get_logout_use_case),
):
    use_case.execute(claims)


@router.get("/whoami", response_model=WhoAmIResponse)
def whoami(
    claims: TokenClaims = Depends(require_token()),
    use_case: WhoAmIUseCase = Depends(get_whoami_use_case),
):
    result = use_case.execute(claims)
    return WhoAmIResponse(
        identity=to_identity_response(result.identity),
        session=to_session_response(result.session),
        override_active=result.override_active,
    )
