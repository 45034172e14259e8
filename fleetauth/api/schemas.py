"""
HTTP DTOs (pydantic). Transport-only shapes; no decision logic.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ..domain.entities import Identity, IssuedToken, Session, TokenPair

# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------


class LoginRequest(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=128)
    user_id: str = Field(..., min_length=1, max_length=128)
    pin: str = Field(..., min_length=4, max_length=64)

    @field_validator("device_id", "user_id")
    @classmethod
    def strip_ids(cls, v: str) -> str:
        return v.strip()


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1, max_length=4096)


class OverrideLoginRequest(BaseModel):
    supervisor_pin: str = Field(..., min_length=4, max_length=64)


class OverrideRevokeRequest(BaseModel):
    session_id: Optional[str] = Field(default=None, max_length=128)


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    id: str
    kind: str
    team_id: Optional[str]
    display_name: str


class SessionResponse(BaseModel):
    id: str
    device_id: str
    team_id: Optional[str]
    started_at: datetime
    expires_at: datetime
    override_until: Optional[datetime] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int
    session_id: str


class LoginResponse(TokenResponse):
    identity: IdentityResponse


class WhoAmIResponse(BaseModel):
    identity: IdentityResponse
    session: SessionResponse
    override_active: bool


class OverrideResponse(BaseModel):
    override_token: str
    token_type: str = "bearer"
    expires_in: int
    override_until: datetime
    session_id: str


class OverrideRevokeResponse(BaseModel):
    revoked: bool
    session_id: str


class OverrideStatusResponse(BaseModel):
    session_id: str
    override_until: datetime


class PolicyResponse(BaseModel):
    version: int
    policy: dict[str, Any]
    signature: str
    kid: str
    alg: str = "EdDSA"
    from_cache: bool


class PolicyIssueResponse(BaseModel):
    version: int
    kid: str
    issued_at: datetime
    expires_at: datetime


class PublicKeyResponse(BaseModel):
    kid: str
    alg: str
    public_key: str


class AuditEventResponse(BaseModel):
    id: str
    actor: str
    action: str
    resource: str
    decision: str
    correlation_id: Optional[str]
    metadata: dict[str, Any]
    created_at: Optional[datetime]


# -----------------------------------------------------------------------------
# Mappers
# -----------------------------------------------------------------------------


def to_identity_response(identity: Identity) -> IdentityResponse:
    return IdentityResponse(
        id=identity.id,
        kind=identity.kind.value,
        team_id=identity.team_id,
        display_name=identity.display_name,
    )


def to_session_response(session: Session) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        device_id=session.device_id,
        team_id=session.team_id,
        started_at=session.started_at,
        expires_at=session.expires_at,
        override_until=session.override_until,
    )


def to_token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(**_token_fields(pair))


def _token_fields(pair: TokenPair) -> dict[str, Any]:
    return {
        "access_token": pair.access.token,
        "refresh_token": pair.refresh.token,
        "expires_in": pair.access.expires_in,
        "refresh_expires_in": pair.refresh.expires_in,
        "session_id": pair.access.claims.session_id,
    }


def to_login_response(pair: TokenPair, identity: Identity) -> LoginResponse:
    return LoginResponse(**_token_fields(pair), identity=to_identity_response(identity))


def to_override_response(token: IssuedToken) -> OverrideResponse:
    return OverrideResponse(
        override_token=token.token,
        expires_in=token.expires_in,
        override_until=token.claims.expires_at,
        session_id=token.claims.session_id,
    )
