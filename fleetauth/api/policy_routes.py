"""
===============================================================================
CRC CARD — api/policy_routes.py (Signed device policies)
===============================================================================

Responsibilities:
  - GET /policy/public-key           pinned verification key (public)
  - GET /policy/{device_id}          signed policy for a device
  - GET /policy/{device_id}/issues   recent issue history

Notes:
  - /policy/public-key is declared before /policy/{device_id} so the literal
    path wins.
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from ..application.usecases import FetchPolicyUseCase
from ..container import get_fetch_policy_use_case, get_policy_signer
from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES
from ..domain.entities import TokenClaims
from ..identity.policy import PolicySigner
from .dependencies import client_ip, require_token
from .schemas import PolicyIssueResponse, PolicyResponse, PublicKeyResponse

router = APIRouter(prefix="/policy", tags=["policy"], responses=OPENAPI_ERROR_RESPONSES)


@router.get("/public-key", response_model=PublicKeyResponse)
def public_key(signer: PolicySigner = Depends(get_policy_signer)):
    return PublicKeyResponse(**signer.public_key_info())


@router.get("/{device_id}", response_model=PolicyResponse)
def fetch_policy(
    device_id: str,
    request: Request,
    claims: TokenClaims = Depends(require_token()),
    use_case: FetchPolicyUseCase = Depends(get_fetch_policy_use_case),
):
    result = use_case.execute(claims, device_id, ip_address=client_ip(request))
    signed = result.policy
    return PolicyResponse(
        version=signed.version,
        policy=signed.payload,
        signature=signed.signature,
        kid=signed.kid,
        from_cache=result.from_cache,
    )


@router.get("/{device_id}/issues", response_model=list[PolicyIssueResponse])
def policy_issues(
    device_id: str,
    limit: int = Query(10, ge=1, le=100),
    claims: TokenClaims = Depends(require_token()),
    use_case: FetchPolicyUseCase = Depends(get_fetch_policy_use_case),
):
    return [
        PolicyIssueResponse(
            version=issue.version,
            kid=issue.kid,
            issued_at=issue.issued_at,
            expires_at=issue.expires_at,
        )
        for issue in use_case.history(claims, device_id, limit)
    ]
