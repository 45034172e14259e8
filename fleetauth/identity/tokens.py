"""
===============================================================================
CRC CARD — identity/tokens.py
===============================================================================

Module:
    Token Issuer/Verifier (JWT, HS256)

Responsibilities:
    - Mint access / refresh / override tokens, each with a fresh jti, the
      session id and a kind-specific TTL.
    - Verify signature, issuer/audience, expiry and kind, then consult the
      revocation ledger.
    - Rotate refresh tokens on use: the presented jti is consumed with an
      atomic insert-if-absent, so concurrent replays yield exactly one winner.
    - Revoke by jti with a reason.

Collaborators:
    - PyJWT
    - domain.repositories.RevocationLedger
    - domain.services.Clock (wall clock; exp is a wall-clock claim)
    - crosscutting.exceptions: TOKEN_EXPIRED / TOKEN_REVOKED / TOKEN_INVALID

Design decisions:
    - Refresh tokens use their own secret, so a leaked access secret cannot
      mint refresh tokens.
    - Claims: sub, typ, jti, sid, iat, exp, iss, aud, dev, team, ovr.
    - Tokens and secrets are never logged.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import jwt

from ..crosscutting.config import Settings
from ..crosscutting.exceptions import (
    TokenExpiredError,
    TokenInvalidError,
    TokenRevokedError,
)
from ..crosscutting.logger import logger
from ..domain.entities import IssuedToken, TokenClaims, TokenKind, TokenPair
from ..domain.repositories import RevocationLedger
from ..domain.services import Clock

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

JWT_ALGORITHM: str = "HS256"

CLAIM_SUB: str = "sub"
CLAIM_TYP: str = "typ"
CLAIM_JTI: str = "jti"
CLAIM_SID: str = "sid"
CLAIM_IAT: str = "iat"
CLAIM_EXP: str = "exp"
CLAIM_ISS: str = "iss"
CLAIM_AUD: str = "aud"
CLAIM_DEVICE: str = "dev"
CLAIM_TEAM: str = "team"
CLAIM_OVERRIDE: str = "ovr"

_REQUIRED_CLAIMS = [CLAIM_SUB, CLAIM_TYP, CLAIM_JTI, CLAIM_SID, CLAIM_IAT, CLAIM_EXP]

REASON_ROTATED = "rotated"
REASON_LOGOUT = "logout"
REASON_OVERRIDE_REVOKED = "override_revoked"
REASON_SESSION_ENDED = "session_ended"


@dataclass(frozen=True, slots=True)
class TokenSettings:
    """Token settings snapshot."""

    access_secret: str
    refresh_secret: str
    issuer: str
    audience: str
    access_ttl: timedelta
    refresh_ttl: timedelta
    override_ttl: timedelta

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenSettings":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            access_ttl=timedelta(minutes=settings.access_ttl_minutes),
            refresh_ttl=timedelta(minutes=settings.refresh_ttl_minutes),
            override_ttl=timedelta(minutes=settings.override_ttl_minutes),
        )


class TokenService:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      TokenService

    Responsibilities:
      - issue(), issue_pair(), verify(), rotate_refresh(), revoke()

    Collaborators:
      - RevocationLedger, Clock
    ----------------------------------------------------------------------------
    """

    def __init__(
        self, settings: TokenSettings, ledger: RevocationLedger, clock: Clock
    ) -> None:
        self._settings = settings
        self._ledger = ledger
        self._clock = clock

    # ------------------------------------------------------------------ issue

    def ttl_for(self, kind: TokenKind) -> timedelta:
        if kind == TokenKind.ACCESS:
            return self._settings.access_ttl
        if kind == TokenKind.REFRESH:
            return self._settings.refresh_ttl
        return self._settings.override_ttl

    def _secret_for(self, kind: TokenKind) -> str:
        if kind == TokenKind.REFRESH:
            return self._settings.refresh_secret
        return self._settings.access_secret

    def issue(
        self,
        kind: TokenKind,
        *,
        subject: str,
        session_id: str,
        device_id: Optional[str] = None,
        team_id: Optional[str] = None,
    ) -> IssuedToken:
        # JWT timestamps are whole seconds; truncate so claims round-trip exactly.
        now = self._clock.now().replace(microsecond=0)
        expires_at = now + self.ttl_for(kind)
        claims = TokenClaims(
            subject=subject,
            kind=kind,
            jti=str(uuid4()),
            issued_at=now,
            expires_at=expires_at,
            session_id=session_id,
            device_id=device_id,
            team_id=team_id,
            override=kind == TokenKind.OVERRIDE,
        )

        payload: dict[str, object] = {
            CLAIM_SUB: subject,
            CLAIM_TYP: kind.value,
            CLAIM_JTI: claims.jti,
            CLAIM_SID: session_id,
            CLAIM_IAT: int(now.timestamp()),
            CLAIM_EXP: int(expires_at.timestamp()),
            CLAIM_ISS: self._settings.issuer,
            CLAIM_AUD: self._settings.audience,
        }
        if device_id:
            payload[CLAIM_DEVICE] = device_id
        if team_id:
            payload[CLAIM_TEAM] = team_id
        if claims.override:
            payload[CLAIM_OVERRIDE] = True

        token = jwt.encode(payload, self._secret_for(kind), algorithm=JWT_ALGORITHM)
        return IssuedToken(token=token, claims=claims)

    def issue_pair(
        self,
        *,
        subject: str,
        session_id: str,
        device_id: Optional[str],
        team_id: Optional[str],
    ) -> TokenPair:
        return TokenPair(
            access=self.issue(
                TokenKind.ACCESS,
                subject=subject,
                session_id=session_id,
                device_id=device_id,
                team_id=team_id,
            ),
            refresh=self.issue(
                TokenKind.REFRESH,
                subject=subject,
                session_id=session_id,
                device_id=device_id,
                team_id=team_id,
            ),
        )

    # ------------------------------------------------------------------ verify

    def decode(self, token: str, kind: TokenKind) -> TokenClaims:
        """
        Validate integrity, expiry and kind. Does not consult the ledger.

        Time claims are checked against the injected clock, not the host clock.
        """
        if not token:
            raise TokenInvalidError()
        try:
            payload = jwt.decode(
                token,
                self._secret_for(kind),
                algorithms=[JWT_ALGORITHM],
                audience=self._settings.audience,
                issuer=self._settings.issuer,
                options={
                    "require": _REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as exc:
            raise TokenInvalidError() from exc

        if payload.get(CLAIM_TYP) != kind.value:
            raise TokenInvalidError("Unexpected token type")

        try:
            issued_at = datetime.fromtimestamp(int(payload[CLAIM_IAT]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload[CLAIM_EXP]), tz=timezone.utc)
        except (TypeError, ValueError) as exc:
            raise TokenInvalidError() from exc

        if self._clock.now() >= expires_at:
            raise TokenExpiredError()

        return TokenClaims(
            subject=str(payload[CLAIM_SUB]),
            kind=kind,
            jti=str(payload[CLAIM_JTI]),
            issued_at=issued_at,
            expires_at=expires_at,
            session_id=str(payload[CLAIM_SID]),
            device_id=payload.get(CLAIM_DEVICE),
            team_id=payload.get(CLAIM_TEAM),
            override=bool(payload.get(CLAIM_OVERRIDE, False)),
        )

    def verify(self, token: str, kind: TokenKind) -> TokenClaims:
        """
        A token is accepted iff it decodes, is unexpired and its jti is absent
        from the revocation ledger.
        """
        claims = self.decode(token, kind)
        if self._ledger.is_revoked(claims.jti):
            raise TokenRevokedError()
        return claims

    # ------------------------------------------------------------------ rotate / revoke

    def consume_refresh(self, refresh_token: str) -> TokenClaims:
        """
        Consume a refresh token exactly once.

        Raises:
            TokenRevokedError: already consumed or revoked (replay)
        """
        claims = self.decode(refresh_token, TokenKind.REFRESH)
        if not self._ledger.revoke_if_absent(
            claims.jti, claims.expires_at, REASON_ROTATED
        ):
            logger.warning(
                "Refresh token replay rejected",
                extra={"session_id": claims.session_id, "jti": claims.jti},
            )
            raise TokenRevokedError()
        return claims

    def rotate_refresh(self, refresh_token: str) -> tuple[TokenClaims, TokenPair]:
        """Consume the refresh token and mint a new pair in the same session."""
        claims = self.consume_refresh(refresh_token)
        pair = self.issue_pair(
            subject=claims.subject,
            session_id=claims.session_id,
            device_id=claims.device_id,
            team_id=claims.team_id,
        )
        return claims, pair

    def revoke(self, jti: str, expires_at: datetime, reason: str) -> None:
        self._ledger.revoke(jti, expires_at, reason)

    def revoke_claims(self, claims: TokenClaims, reason: str) -> None:
        self._ledger.revoke(claims.jti, claims.expires_at, reason)

    def sweep(self) -> int:
        return self._ledger.purge_expired(self._clock.now())
