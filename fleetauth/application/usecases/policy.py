"""
Name: Fetch Policy Use Case

Responsibilities:
  - Resolve the target device and the scope the caller reads it in
    (own device: user-self scope; any other device: that device's team).
  - Authorize policy:read through the Permission Resolver.
  - Return the signed document (cached or freshly signed) and audit the issue.

Collaborators:
  - identity.permissions.PermissionResolver
  - identity.policy.PolicySigner
  - domain.repositories.IdentityDirectory
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from ...audit import POLICY_ISSUE, actor_for, emit_audit_event
from ...crosscutting.exceptions import IdentityNotFoundError
from ...domain.audit import AuditDecision
from ...domain.entities import (
    IdentityKind,
    PolicyIssue,
    ScopeContext,
    ScopeLevel,
    SignedPolicy,
    TokenClaims,
)
from ...domain.repositories import AuditEventRepository, IdentityDirectory
from ...identity.permissions import PermissionResolver
from ...identity.policy import PolicySigner

POLICY_RESOURCE = "policy"


@dataclass(frozen=True)
class FetchPolicyResult:
    policy: SignedPolicy
    from_cache: bool


class FetchPolicyUseCase:
    """R: Token Verifier -> Permission Resolver -> Policy Signer."""

    def __init__(
        self,
        *,
        directory: IdentityDirectory,
        resolver: PermissionResolver,
        signer: PolicySigner,
        audit_repository: AuditEventRepository | None = None,
    ):
        self.directory = directory
        self.resolver = resolver
        self.signer = signer
        self.audit_repository = audit_repository

    def _context_for(self, caller: TokenClaims, device_id: str) -> ScopeContext:
        device = self.directory.lookup_identity(device_id)
        if device is None or device.kind != IdentityKind.DEVICE:
            raise IdentityNotFoundError("Device not found")
        if caller.device_id == device_id:
            return ScopeContext(
                level=ScopeLevel.USER, user_id=caller.subject, team_id=device.team_id
            )
        return ScopeContext(
            level=ScopeLevel.TEAM,
            team_id=device.team_id,
            region_id=device.region_id,
            organization_id=device.organization_id,
        )

    def execute(
        self, caller: TokenClaims, device_id: str, *, ip_address: str | None = None
    ) -> FetchPolicyResult:
        context = self._context_for(caller, device_id)
        self.resolver.require(caller.subject, POLICY_RESOURCE, "read", context)

        signed, from_cache = self.signer.issue_for_device(
            device_id, ip_address=ip_address
        )
        if not from_cache:
            emit_audit_event(
                self.audit_repository,
                action=POLICY_ISSUE,
                actor=actor_for(caller.subject, device_id=caller.device_id),
                resource=f"device:{device_id}",
                decision=AuditDecision.SUCCESS,
                metadata={"version": signed.version, "kid": signed.kid},
            )
        return FetchPolicyResult(policy=signed, from_cache=from_cache)

    def history(self, caller: TokenClaims, device_id: str, limit: int = 10) -> List[PolicyIssue]:
        """Issue history for a device; same authorization as a read."""
        context = self._context_for(caller, device_id)
        self.resolver.require(caller.subject, POLICY_RESOURCE, "read", context)
        return self.signer.recent_issues(device_id, limit)
