"""
===============================================================================
CRC CARD — identity/override.py
===============================================================================

Module:
    Supervisor Override (time-boxed elevated context)

Responsibilities:
    - Verify the team supervisor PIN (same lockout ladder, separate key space).
    - Issue an override token bound to the caller's session; it is a distinct
      token kind, never a role change.
    - Keep at most one live override per session: granting again revokes the
      previous override token.
    - Revoke the override (ledger insert + session bookkeeping).

Collaborators:
    - identity.authenticator.Authenticator (verify_supervisor_pin)
    - identity.tokens.TokenService
    - domain.repositories.SessionStore
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..crosscutting.exceptions import TokenRevokedError
from ..crosscutting.logger import logger
from ..domain.entities import IssuedToken, Session, TokenClaims, TokenKind
from ..domain.repositories import SessionStore
from ..domain.services import Clock
from .authenticator import Authenticator
from .tokens import REASON_OVERRIDE_REVOKED, TokenService

REASON_OVERRIDE_SUPERSEDED = "override_superseded"


@dataclass(frozen=True, slots=True)
class OverrideGrant:
    token: IssuedToken
    session: Session


class SupervisorOverrideService:
    def __init__(
        self,
        *,
        authenticator: Authenticator,
        tokens: TokenService,
        sessions: SessionStore,
        clock: Clock,
    ) -> None:
        self._authenticator = authenticator
        self._tokens = tokens
        self._sessions = sessions
        self._clock = clock

    def active_session(self, session_id: str) -> Session:
        """The live session behind a token, or TokenRevokedError."""
        session = self._sessions.get_session(session_id)
        if session is None or not session.is_active:
            raise TokenRevokedError("Session ended")
        if self._clock.now() >= session.expires_at:
            raise TokenRevokedError("Session expired")
        return session

    def grant(
        self,
        caller: TokenClaims,
        *,
        supervisor_pin: str,
        ip_address: Optional[str] = None,
    ) -> OverrideGrant:
        """
        Raises:
            InvalidCredentialsError / LockedOutError / RateLimitedError:
                supervisor PIN rejected
            TokenRevokedError: the caller's session is no longer active
        """
        session = self.active_session(caller.session_id)
        self._authenticator.verify_supervisor_pin(
            device_id=session.device_id, pin=supervisor_pin, ip_address=ip_address
        )

        token = self._tokens.issue(
            TokenKind.OVERRIDE,
            subject=session.identity_id,
            session_id=session.id,
            device_id=session.device_id,
            team_id=session.team_id,
        )
        try:
            replaced = self._attach(session.id, token)
        except TokenRevokedError:
            # Session ended while the token was minted: it must never be usable.
            self._tokens.revoke(
                token.claims.jti, token.claims.expires_at, REASON_OVERRIDE_REVOKED
            )
            raise

        if replaced.override_jti:
            self._tokens.revoke(
                replaced.override_jti,
                replaced.override_until or token.claims.expires_at,
                REASON_OVERRIDE_SUPERSEDED,
            )
        logger.info(
            "Supervisor override granted",
            extra={
                "session_id": session.id,
                "device_id": session.device_id,
                "team_id": session.team_id,
                "override_until": token.claims.expires_at.isoformat(),
            },
        )
        return OverrideGrant(token=token, session=self._sessions.get_session(session.id))

    def revoke(self, session_id: str) -> Optional[str]:
        """
        Revoke the session's override. Returns the revoked jti, or None when
        no override was live.
        """
        while True:
            session = self._sessions.get_session(session_id)
            if session is None or not session.override_jti:
                return None
            if self._sessions.set_override(
                session_id,
                override_jti=None,
                override_until=None,
                expected_jti=session.override_jti,
            ):
                break

        jti = session.override_jti
        expires_at = session.override_until or self._clock.now()
        self._tokens.revoke(jti, expires_at, REASON_OVERRIDE_REVOKED)
        logger.info(
            "Supervisor override revoked",
            extra={"session_id": session_id, "device_id": session.device_id},
        )
        return jti

    # ------------------------------------------------------------------ internals

    def _attach(self, session_id: str, token: IssuedToken) -> Session:
        """
        Swap the token into the session's override slot. Returns the snapshot
        that was replaced; whoever swaps a jti out revokes it.
        """
        while True:
            current = self.active_session(session_id)
            if self._sessions.set_override(
                session_id,
                override_jti=token.claims.jti,
                override_until=token.claims.expires_at,
                expected_jti=current.override_jti,
            ):
                return current
