"""
Name: Session Authentication Use Cases (login / refresh / logout / whoami)

Responsibilities:
  - Login: authenticate device + user + PIN, open a session, mint the
    access/refresh pair with the session id embedded.
  - Refresh: rotate the refresh token exactly once inside a live session.
  - Logout: end the session and revoke every token bound to it.
  - WhoAmI: resolve the caller's identity, session and override state.
  - Emit audit records for every outcome.

Collaborators:
  - identity.authenticator.Authenticator
  - identity.tokens.TokenService
  - domain.repositories: IdentityDirectory, SessionStore, AuditEventRepository
  - audit.emit_audit_event
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from uuid import uuid4

from ...audit import (
    AUTH_LOGIN,
    AUTH_LOGOUT,
    AUTH_REFRESH,
    TOKEN_REVOKE,
    actor_for,
    emit_audit_event,
)
from ...crosscutting.exceptions import EngineError, TokenRevokedError
from ...crosscutting.logger import logger
from ...domain.audit import AuditDecision
from ...domain.entities import (
    Identity,
    Session,
    TokenClaims,
    TokenKind,
    TokenPair,
    VerifierScope,
)
from ...domain.repositories import (
    AuditEventRepository,
    IdentityDirectory,
    SessionStore,
)
from ...domain.services import Clock
from ...identity.authenticator import Authenticator
from ...identity.tokens import REASON_LOGOUT, REASON_ROTATED, TokenService


@dataclass
class LoginInput:
    device_id: str
    user_id: str
    secret: str
    scope: VerifierScope = VerifierScope.USER_PIN
    ip_address: str | None = None


@dataclass(frozen=True)
class LoginResult:
    identity: Identity
    session: Session
    tokens: TokenPair


@dataclass(frozen=True)
class WhoAmIResult:
    identity: Identity
    session: Session
    override_active: bool


class LoginUseCase:
    """R: Authenticate and open a session."""

    def __init__(
        self,
        *,
        authenticator: Authenticator,
        tokens: TokenService,
        sessions: SessionStore,
        clock: Clock,
        session_timeout: timedelta,
        audit_repository: AuditEventRepository | None = None,
    ):
        self.authenticator = authenticator
        self.tokens = tokens
        self.sessions = sessions
        self.clock = clock
        self.session_timeout = session_timeout
        self.audit_repository = audit_repository

    def execute(self, input_data: LoginInput) -> LoginResult:
        actor = actor_for(input_data.user_id, device_id=input_data.device_id)
        try:
            principal = self.authenticator.authenticate(
                device_id=input_data.device_id,
                principal_id=input_data.user_id,
                secret=input_data.secret,
                scope=input_data.scope,
                ip_address=input_data.ip_address,
            )
        except EngineError as exc:
            emit_audit_event(
                self.audit_repository,
                action=AUTH_LOGIN,
                actor=actor,
                resource=f"device:{input_data.device_id}",
                decision=AuditDecision.FAILURE,
                metadata={"code": exc.error_code, "ip": input_data.ip_address},
            )
            raise

        now = self.clock.now().replace(microsecond=0)
        session_id = str(uuid4())
        pair = self.tokens.issue_pair(
            subject=principal.identity.id,
            session_id=session_id,
            device_id=principal.device.id,
            team_id=principal.team_id,
        )
        session = Session(
            id=session_id,
            identity_id=principal.identity.id,
            device_id=principal.device.id,
            team_id=principal.team_id,
            started_at=now,
            expires_at=now + self.session_timeout,
            access_jti=pair.access.claims.jti,
            refresh_jti=pair.refresh.claims.jti,
        )
        self.sessions.create_session(session)

        emit_audit_event(
            self.audit_repository,
            action=AUTH_LOGIN,
            actor=actor,
            resource=f"session:{session_id}",
            decision=AuditDecision.SUCCESS,
            metadata={"team_id": principal.team_id, "ip": input_data.ip_address},
        )
        return LoginResult(identity=principal.identity, session=session, tokens=pair)


class RefreshUseCase:
    """R: Rotate-on-use refresh inside a live session."""

    def __init__(
        self,
        *,
        tokens: TokenService,
        sessions: SessionStore,
        directory: IdentityDirectory,
        clock: Clock,
        audit_repository: AuditEventRepository | None = None,
    ):
        self.tokens = tokens
        self.sessions = sessions
        self.directory = directory
        self.clock = clock
        self.audit_repository = audit_repository

    def execute(self, refresh_token: str) -> TokenPair:
        claims = self.tokens.decode(refresh_token, TokenKind.REFRESH)
        actor = actor_for(claims.subject, device_id=claims.device_id)

        session = self.sessions.get_session(claims.session_id)
        identity = self.directory.lookup_identity(claims.subject)
        if (
            session is None
            or not session.is_active
            or self.clock.now() >= session.expires_at
            or identity is None
            or not identity.is_active
        ):
            emit_audit_event(
                self.audit_repository,
                action=AUTH_REFRESH,
                actor=actor,
                resource=f"session:{claims.session_id}",
                decision=AuditDecision.FAILURE,
                metadata={"code": TokenRevokedError.error_code},
            )
            raise TokenRevokedError("Session is no longer active")

        try:
            _, pair = self.tokens.rotate_refresh(refresh_token)
        except TokenRevokedError:
            emit_audit_event(
                self.audit_repository,
                action=AUTH_REFRESH,
                actor=actor,
                resource=f"session:{claims.session_id}",
                decision=AuditDecision.FAILURE,
                metadata={"code": TokenRevokedError.error_code, "replay": True},
            )
            raise

        # The superseded access token must not outlive the rotation.
        if session.access_jti:
            self.tokens.revoke(
                session.access_jti,
                self.clock.now() + self.tokens.ttl_for(TokenKind.ACCESS),
                REASON_ROTATED,
            )
        if not self.sessions.update_tokens(
            session.id,
            access_jti=pair.access.claims.jti,
            refresh_jti=pair.refresh.claims.jti,
        ):
            # Logout committed mid-rotation: the new pair is never handed out.
            self.tokens.revoke_claims(pair.access.claims, REASON_LOGOUT)
            self.tokens.revoke_claims(pair.refresh.claims, REASON_LOGOUT)
            emit_audit_event(
                self.audit_repository,
                action=AUTH_REFRESH,
                actor=actor,
                resource=f"session:{session.id}",
                decision=AuditDecision.FAILURE,
                metadata={"code": TokenRevokedError.error_code},
            )
            raise TokenRevokedError("Session is no longer active")

        emit_audit_event(
            self.audit_repository,
            action=AUTH_REFRESH,
            actor=actor,
            resource=f"session:{session.id}",
            decision=AuditDecision.SUCCESS,
        )
        return pair


class LogoutUseCase:
    """R: End the session and revoke access, refresh and override tokens."""

    def __init__(
        self,
        *,
        tokens: TokenService,
        sessions: SessionStore,
        clock: Clock,
        audit_repository: AuditEventRepository | None = None,
    ):
        self.tokens = tokens
        self.sessions = sessions
        self.clock = clock
        self.audit_repository = audit_repository

    def execute(self, caller: TokenClaims) -> None:
        now = self.clock.now()
        revoked: list[str] = []

        self.tokens.revoke_claims(caller, REASON_LOGOUT)
        revoked.append(caller.jti)

        # The ended snapshot is final: ended sessions accept no new jtis.
        session = self.sessions.end_session(
            caller.session_id, ended_at=now, reason=REASON_LOGOUT
        )
        if session is not None:
            if session.access_jti and session.access_jti != caller.jti:
                self.tokens.revoke(
                    session.access_jti,
                    now + self.tokens.ttl_for(TokenKind.ACCESS),
                    REASON_LOGOUT,
                )
                revoked.append(session.access_jti)
            if session.refresh_jti:
                self.tokens.revoke(
                    session.refresh_jti,
                    now + self.tokens.ttl_for(TokenKind.REFRESH),
                    REASON_LOGOUT,
                )
                revoked.append(session.refresh_jti)
            if session.override_jti and session.override_until:
                self.tokens.revoke(
                    session.override_jti, session.override_until, REASON_LOGOUT
                )
                revoked.append(session.override_jti)

        actor = actor_for(caller.subject, device_id=caller.device_id)
        emit_audit_event(
            self.audit_repository,
            action=AUTH_LOGOUT,
            actor=actor,
            resource=f"session:{caller.session_id}",
            decision=AuditDecision.SUCCESS,
        )
        for jti in revoked:
            emit_audit_event(
                self.audit_repository,
                action=TOKEN_REVOKE,
                actor=actor,
                resource=f"token:{jti}",
                decision=AuditDecision.SUCCESS,
                metadata={"reason": REASON_LOGOUT},
            )
        logger.info(
            "Session ended",
            extra={"session_id": caller.session_id, "revoked_tokens": len(revoked)},
        )


class WhoAmIUseCase:
    def __init__(
        self,
        *,
        directory: IdentityDirectory,
        sessions: SessionStore,
        clock: Clock,
    ):
        self.directory = directory
        self.sessions = sessions
        self.clock = clock

    def execute(self, caller: TokenClaims) -> WhoAmIResult:
        identity = self.directory.lookup_identity(caller.subject)
        session: Optional[Session] = self.sessions.get_session(caller.session_id)
        if identity is None or session is None or not session.is_active:
            raise TokenRevokedError("Session is no longer active")
        return WhoAmIResult(
            identity=identity,
            session=session,
            override_active=session.override_active(self.clock.now()),
        )
