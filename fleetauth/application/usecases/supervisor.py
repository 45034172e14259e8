"""
Name: Supervisor Override Use Cases

Responsibilities:
  - Grant: supervisor PIN -> override token for the caller's session.
  - Revoke: drop the override on the caller's own session, or on another
    session when the caller holds supervisor_override:revoke over its team.
  - Audit grant/revoke outcomes.

Collaborators:
  - identity.override.SupervisorOverrideService
  - identity.permissions.PermissionResolver
"""

from __future__ import annotations

from typing import Optional

from ...audit import (
    OVERRIDE_GRANT,
    OVERRIDE_REVOKE,
    TOKEN_REVOKE,
    actor_for,
    emit_audit_event,
)
from ...crosscutting.exceptions import EngineError
from ...domain.audit import AuditDecision
from ...domain.entities import ScopeContext, ScopeLevel, TokenClaims
from ...domain.repositories import AuditEventRepository
from ...identity.override import OverrideGrant, SupervisorOverrideService
from ...identity.permissions import PermissionResolver
from ...identity.tokens import REASON_OVERRIDE_REVOKED


class GrantOverrideUseCase:
    def __init__(
        self,
        *,
        overrides: SupervisorOverrideService,
        audit_repository: AuditEventRepository | None = None,
    ):
        self.overrides = overrides
        self.audit_repository = audit_repository

    def execute(
        self, caller: TokenClaims, supervisor_pin: str, *, ip_address: str | None = None
    ) -> OverrideGrant:
        actor = actor_for(caller.subject, device_id=caller.device_id)
        try:
            grant = self.overrides.grant(
                caller, supervisor_pin=supervisor_pin, ip_address=ip_address
            )
        except EngineError as exc:
            emit_audit_event(
                self.audit_repository,
                action=OVERRIDE_GRANT,
                actor=actor,
                resource=f"session:{caller.session_id}",
                decision=AuditDecision.FAILURE,
                metadata={"code": exc.error_code, "ip": ip_address},
            )
            raise

        emit_audit_event(
            self.audit_repository,
            action=OVERRIDE_GRANT,
            actor=actor,
            resource=f"session:{caller.session_id}",
            decision=AuditDecision.SUCCESS,
            metadata={
                "team_id": caller.team_id,
                "override_until": grant.token.claims.expires_at.isoformat(),
            },
        )
        return grant


class RevokeOverrideUseCase:
    def __init__(
        self,
        *,
        overrides: SupervisorOverrideService,
        resolver: PermissionResolver,
        audit_repository: AuditEventRepository | None = None,
    ):
        self.overrides = overrides
        self.resolver = resolver
        self.audit_repository = audit_repository

    def execute(
        self, caller: TokenClaims, session_id: Optional[str] = None
    ) -> Optional[str]:
        """
        Returns the revoked override jti, or None if nothing was live.

        Raises:
            InsufficientPermissionsError: foreign session without the grant
            TokenRevokedError: the target session is not active
        """
        target_id = session_id or caller.session_id
        target = self.overrides.active_session(target_id)
        if target.id != caller.session_id:
            self.resolver.require(
                caller.subject,
                "supervisor_override",
                "revoke",
                ScopeContext(level=ScopeLevel.TEAM, team_id=target.team_id),
            )

        jti = self.overrides.revoke(target.id)
        actor = actor_for(caller.subject, device_id=caller.device_id)
        emit_audit_event(
            self.audit_repository,
            action=OVERRIDE_REVOKE,
            actor=actor,
            resource=f"session:{target.id}",
            decision=AuditDecision.SUCCESS,
            metadata={"revoked": jti is not None},
        )
        if jti is not None:
            emit_audit_event(
                self.audit_repository,
                action=TOKEN_REVOKE,
                actor=actor,
                resource=f"token:{jti}",
                decision=AuditDecision.SUCCESS,
                metadata={"reason": REASON_OVERRIDE_REVOKED},
            )
        return jti
