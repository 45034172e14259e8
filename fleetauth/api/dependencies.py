"""
===============================================================================
CRC CARD — api/dependencies.py
===============================================================================

Module:
    FastAPI gating dependencies (Token Verifier -> Permission Resolver)

Responsibilities:
    - Extract the bearer token from `Authorization: Bearer <token>`.
    - require_token(kind): verify kind, integrity, expiry and revocation; the
      subject must still be an active identity.
    - require_permission(resource, action, level): require_token() plus a
      resolver check in the caller's own scope at the given level.

Collaborators:
    - identity.tokens.TokenService
    - identity.permissions.PermissionResolver
    - container (factories)

Notes:
    - Plain (sync) dependencies: store calls may block, so FastAPI runs them
      in its threadpool.
===============================================================================
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Header, Request

from ..container import (
    get_identity_directory,
    get_permission_resolver,
    get_token_service,
)
from ..crosscutting.error_responses import unauthorized
from ..crosscutting.exceptions import TokenRevokedError
from ..domain.entities import ScopeContext, ScopeLevel, TokenClaims, TokenKind
from ..domain.repositories import IdentityDirectory
from ..identity.permissions import PermissionResolver
from ..identity.tokens import TokenService


def extract_bearer_token(authorization: str | None) -> str | None:
    """Token from `Authorization: Bearer <token>`, or None."""
    if not authorization:
        return None
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def require_token(kind: TokenKind = TokenKind.ACCESS) -> Callable:
    """Dependency: a valid, unrevoked token of the given kind."""

    def dependency(
        request: Request,
        authorization: str | None = Header(None, alias="Authorization"),
        tokens: TokenService = Depends(get_token_service),
        directory: IdentityDirectory = Depends(get_identity_directory),
    ) -> TokenClaims:
        token = extract_bearer_token(authorization)
        if not token:
            raise unauthorized("Missing bearer token")

        claims = tokens.verify(token, kind)
        identity = directory.lookup_identity(claims.subject)
        if identity is None or not identity.is_active:
            raise TokenRevokedError("Identity is disabled")

        request.state.claims = claims
        return claims

    return dependency


def require_permission(
    resource: str, action: str, level: ScopeLevel = ScopeLevel.TEAM
) -> Callable:
    """Dependency: require_token() + (resource, action) in the caller's scope."""

    def dependency(
        claims: TokenClaims = Depends(require_token()),
        resolver: PermissionResolver = Depends(get_permission_resolver),
        directory: IdentityDirectory = Depends(get_identity_directory),
    ) -> TokenClaims:
        identity = directory.lookup_identity(claims.subject)
        context = ScopeContext(
            level=level,
            user_id=claims.subject,
            team_id=claims.team_id or getattr(identity, "team_id", None),
            region_id=getattr(identity, "region_id", None),
            organization_id=getattr(identity, "organization_id", None),
        )
        resolver.require(claims.subject, resource, action, context)
        return claims

    return dependency
