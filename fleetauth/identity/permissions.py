"""
===============================================================================
CRC CARD — identity/permissions.py
===============================================================================

Module:
    Permission Resolver (roles + scope dominance + per-identity cache)

Responsibilities:
    - Hold the role catalogue as data: Role -> {(resource, action, scope_level)}.
    - Flatten role inheritance once at load; SYSTEM permissions never inherit.
    - Resolve (identity, resource, action, scope) with one generic comparator:
        SYSTEM > ORGANIZATION > REGION > TEAM > USER(self)
      First satisfying assignment wins; no match means deny.
    - Keep SYSTEM resources out of the dominance shortcut: only the designated
      system-administrator role, assigned at SYSTEM scope, reaches them.
    - Cache decisions per identity; assignment and role mutations invalidate
      synchronously (AssignmentService).

Collaborators:
    - domain.repositories: IdentityDirectory, AssignmentStore
    - infrastructure.cache.PermissionCache
    - fleetauth.audit (authz.deny records)

Notes:
    - Adding a role is a data change: nothing here branches on role names
      except the single system-administrator check.
===============================================================================
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, FrozenSet, Iterable, List, Optional
from uuid import uuid4

from ..audit import AUTHZ_DENY, actor_for, emit_audit_event
from ..crosscutting.exceptions import InsufficientPermissionsError
from ..crosscutting.logger import logger
from ..domain.audit import AuditDecision
from ..domain.entities import (
    Assignment,
    Identity,
    Permission,
    Role,
    ScopeContext,
    ScopeLevel,
)
from ..domain.repositories import AssignmentStore, AuditEventRepository, IdentityDirectory
from ..infrastructure.cache import PermissionCache

# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------


def _perms(*items: tuple[str, str, ScopeLevel]) -> FrozenSet[Permission]:
    return frozenset(Permission(r, a, s) for r, a, s in items)


U, T, R, O, S = (
    ScopeLevel.USER,
    ScopeLevel.TEAM,
    ScopeLevel.REGION,
    ScopeLevel.ORGANIZATION,
    ScopeLevel.SYSTEM,
)

DEFAULT_ROLES: List[Role] = [
    Role(
        name="TEAM_MEMBER",
        permissions=_perms(
            ("session", "read", U),
            ("policy", "read", U),
            ("telemetry", "write", U),
        ),
        description="Field operator",
    ),
    Role(
        name="FIELD_SUPERVISOR",
        inherits=("TEAM_MEMBER",),
        permissions=_perms(
            ("policy", "read", T),
            ("telemetry", "read", T),
            ("session", "revoke", T),
            ("supervisor_override", "grant", T),
            ("supervisor_override", "revoke", T),
        ),
        description="Supervises one team",
    ),
    Role(
        name="DEVICE_MANAGER",
        permissions=_perms(
            ("device", "read", T),
            ("device", "manage", T),
            ("policy", "read", T),
        ),
        description="Provisions devices for a team",
    ),
    Role(
        name="POLICY_ADMIN",
        permissions=_perms(
            ("policy", "read", O),
            ("policy", "manage", O),
            ("team", "read", O),
        ),
        description="Edits team policy configuration",
    ),
    Role(
        name="SUPPORT_AGENT",
        permissions=_perms(
            ("device", "read", R),
            ("session", "read", R),
            ("session", "revoke", R),
            ("telemetry", "read", R),
        ),
        description="Regional support",
    ),
    Role(
        name="REGIONAL_MANAGER",
        inherits=("FIELD_SUPERVISOR",),
        permissions=_perms(
            ("policy", "read", R),
            ("telemetry", "read", R),
            ("team", "read", R),
            ("team", "manage", R),
            ("user", "read", R),
        ),
        description="Manages every team in a region",
    ),
    Role(
        name="NATIONAL_SUPPORT_ADMIN",
        inherits=("SUPPORT_AGENT",),
        permissions=_perms(
            ("device", "read", O),
            ("device", "manage", O),
            ("session", "read", O),
            ("session", "revoke", O),
            ("telemetry", "read", O),
            ("user", "read", O),
            ("user", "manage", O),
            ("team", "read", O),
            ("supervisor_override", "revoke", O),
        ),
        description="Organization-wide cross-team support",
    ),
    Role(
        name="AUDITOR",
        permissions=_perms(
            ("audit", "read", O),
            ("policy", "read", O),
            ("session", "read", O),
        ),
        description="Read-only organization audit",
    ),
    Role(
        name="SYSTEM_ADMIN",
        inherits=("NATIONAL_SUPPORT_ADMIN", "POLICY_ADMIN", "AUDITOR"),
        permissions=_perms(
            ("signing_keys", "rotate", S),
            ("signing_keys", "read", S),
            ("rate_limits", "configure", S),
            ("feature_flags", "toggle", S),
            ("system_settings", "manage", S),
        ),
        description="Single system-administrator role",
    ),
]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class RoleRegistry:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      RoleRegistry

    Responsibilities:
      - Validate that SYSTEM permissions live only on the system-admin role
      - Flatten inheritance (cycle and unknown-parent detection)
      - Serve effective permission sets

    Collaborators:
      - PermissionResolver, AssignmentService
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        roles: Iterable[Role],
        *,
        system_admin_role: str,
        system_resources: FrozenSet[str],
    ) -> None:
        self.system_admin_role = system_admin_role
        self.system_resources = frozenset(system_resources)
        self._lock = threading.Lock()
        # Serializes copy -> replace -> flatten -> swap across writers.
        self._write_lock = threading.Lock()
        self._roles: Dict[str, Role] = {}
        self._effective: Dict[str, FrozenSet[Permission]] = {}
        self._load({role.name: role for role in roles})

    def is_system_permission(self, permission: Permission) -> bool:
        return (
            permission.scope_level == ScopeLevel.SYSTEM
            or permission.resource in self.system_resources
        )

    def get(self, name: str) -> Optional[Role]:
        with self._lock:
            return self._roles.get(name)

    def effective_permissions(self, name: str) -> FrozenSet[Permission]:
        with self._lock:
            return self._effective.get(name, frozenset())

    def role_names(self) -> List[str]:
        with self._lock:
            return sorted(self._roles)

    def replace_permissions(
        self, name: str, permissions: Iterable[Permission]
    ) -> Role:
        with self._write_lock:
            with self._lock:
                current = self._roles.get(name)
                roles = dict(self._roles)
            if current is None:
                raise ValueError(f"Unknown role: {name}")
            updated = replace(current, permissions=frozenset(permissions))
            roles[name] = updated
            self._load(roles)
            return updated

    # ------------------------------------------------------------------ internals

    def _load(self, roles: Dict[str, Role]) -> None:
        for role in roles.values():
            if role.name == self.system_admin_role:
                continue
            leaked = [p for p in role.permissions if self.is_system_permission(p)]
            if leaked:
                raise ValueError(
                    f"Role {role.name} declares SYSTEM permissions: "
                    + ", ".join(f"{p.resource}:{p.action}" for p in leaked)
                )

        effective: Dict[str, FrozenSet[Permission]] = {}

        def flatten(name: str, trail: tuple[str, ...]) -> FrozenSet[Permission]:
            if name in effective:
                return effective[name]
            if name in trail:
                raise ValueError(f"Role inheritance cycle: {' -> '.join(trail + (name,))}")
            role = roles.get(name)
            if role is None:
                raise ValueError(f"Unknown parent role: {name}")
            collected = set(role.permissions)
            for parent in role.inherits:
                collected |= {
                    p
                    for p in flatten(parent, trail + (name,))
                    if not self.is_system_permission(p)
                }
            effective[name] = frozenset(collected)
            return effective[name]

        for name in roles:
            flatten(name, ())

        with self._lock:
            self._roles = dict(roles)
            self._effective = effective


# ---------------------------------------------------------------------------
# Scope dominance
# ---------------------------------------------------------------------------


def assignment_covers(
    assignment: Assignment, identity: Identity, context: ScopeContext
) -> bool:
    """True if the assignment's scope instance contains the requested context."""
    if context.level > assignment.scope_level:
        return False

    level = assignment.scope_level
    if level == ScopeLevel.SYSTEM:
        return True
    if level == ScopeLevel.ORGANIZATION:
        org_id = assignment.scope_id or identity.organization_id
        return org_id is not None and context.organization_id == org_id
    if level == ScopeLevel.REGION:
        return assignment.scope_id is not None and context.region_id == assignment.scope_id
    if level == ScopeLevel.TEAM:
        return assignment.scope_id is not None and context.team_id == assignment.scope_id
    # USER: self only.
    owner = assignment.scope_id or identity.id
    return context.user_id == identity.id == owner


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class PermissionResolver:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      PermissionResolver

    Responsibilities:
      - check(): cached resolution, never a denial on cache miss
      - require(): check() or raise InsufficientPermissionsError
      - Emit authz.deny audit records

    Collaborators:
      - IdentityDirectory, AssignmentStore, RoleRegistry, PermissionCache
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        *,
        directory: IdentityDirectory,
        assignments: AssignmentStore,
        registry: RoleRegistry,
        cache: PermissionCache,
        audit_repository: AuditEventRepository | None = None,
    ) -> None:
        self._directory = directory
        self._assignments = assignments
        self._registry = registry
        self._cache = cache
        self._audit = audit_repository

    def check(
        self, identity_id: str, resource: str, action: str, context: ScopeContext
    ) -> bool:
        context = self._complete(context)
        key = (resource, action, context.cache_key())

        cached = self._cache.get(identity_id, key)
        if cached is not None:
            decision = cached
        else:
            # Generation is read before the assignments so a concurrent
            # invalidation makes the put below a no-op.
            generation = self._cache.generation(identity_id)
            identity = self._directory.lookup_identity(identity_id)
            if identity is None or not identity.is_active:
                self._deny(identity_id, resource, action, context, reason="identity")
                return False
            decision = self._resolve(identity, resource, action, context)
            self._cache.put(identity_id, key, decision, generation=generation)

        if not decision:
            self._deny(identity_id, resource, action, context, reason="no_grant")
        return decision

    def require(
        self, identity_id: str, resource: str, action: str, context: ScopeContext
    ) -> None:
        if not self.check(identity_id, resource, action, context):
            raise InsufficientPermissionsError()

    # ------------------------------------------------------------------ internals

    def _resolve(
        self, identity: Identity, resource: str, action: str, context: ScopeContext
    ) -> bool:
        system_resource = resource in self._registry.system_resources
        for assignment in self._assignments.list_assignments(identity.id):
            if not assignment_covers(assignment, identity, context):
                continue
            if system_resource or context.level == ScopeLevel.SYSTEM:
                if not self._may_reach_system(assignment, identity):
                    continue
            for permission in self._registry.effective_permissions(assignment.role):
                if permission.resource != resource or permission.action != action:
                    continue
                if context.level > permission.scope_level:
                    continue
                if permission.scope_level == ScopeLevel.USER and context.user_id != identity.id:
                    continue
                if self._registry.is_system_permission(permission) and not self._may_reach_system(
                    assignment, identity
                ):
                    continue
                return True
        return False

    def _may_reach_system(self, assignment: Assignment, identity: Identity) -> bool:
        return (
            assignment.role == self._registry.system_admin_role
            and assignment.scope_level == ScopeLevel.SYSTEM
            and not identity.is_device
        )

    def _complete(self, context: ScopeContext) -> ScopeContext:
        """Fill region/organization from the team directory when only team_id is known."""
        if context.team_id and (context.region_id is None or context.organization_id is None):
            team = self._directory.get_team(context.team_id)
            if team is not None:
                return replace(
                    context,
                    region_id=context.region_id or team.region_id,
                    organization_id=context.organization_id or team.organization_id,
                )
        return context

    def _deny(
        self,
        identity_id: str,
        resource: str,
        action: str,
        context: ScopeContext,
        *,
        reason: str,
    ) -> None:
        logger.info(
            "Permission denied",
            extra={
                "identity_id": identity_id,
                "resource": resource,
                "action": action,
                "scope_level": context.level.name,
            },
        )
        emit_audit_event(
            self._audit,
            action=AUTHZ_DENY,
            actor=actor_for(identity_id),
            resource=f"{resource}:{action}",
            decision=AuditDecision.DENY,
            metadata={
                "scope_level": context.level.name,
                "team_id": context.team_id,
                "region_id": context.region_id,
                "organization_id": context.organization_id,
                "reason": reason,
            },
        )


# ---------------------------------------------------------------------------
# Assignment mutations
# ---------------------------------------------------------------------------


class AssignmentService:
    """
    Role/assignment writes. Each mutation evicts the affected cache entries
    before it returns.
    """

    def __init__(
        self,
        *,
        directory: IdentityDirectory,
        assignments: AssignmentStore,
        registry: RoleRegistry,
        cache: PermissionCache,
    ) -> None:
        self._directory = directory
        self._assignments = assignments
        self._registry = registry
        self._cache = cache

    def assign_role(
        self,
        identity_id: str,
        role: str,
        scope_level: ScopeLevel,
        scope_id: Optional[str] = None,
    ) -> Assignment:
        """
        Raises:
            ValueError: unknown identity/role, or an assignment the model forbids
        """
        identity = self._directory.lookup_identity(identity_id)
        if identity is None:
            raise ValueError(f"Unknown identity: {identity_id}")
        if self._registry.get(role) is None:
            raise ValueError(f"Unknown role: {role}")

        is_admin_role = role == self._registry.system_admin_role
        if scope_level == ScopeLevel.SYSTEM:
            if identity.is_device:
                raise ValueError("Devices cannot hold SYSTEM assignments")
            if not is_admin_role:
                raise ValueError(f"Role {role} cannot be assigned at SYSTEM scope")
            scope_id = None
        elif is_admin_role:
            raise ValueError(f"Role {role} can only be assigned at SYSTEM scope")

        if scope_level in (ScopeLevel.TEAM, ScopeLevel.REGION) and not scope_id:
            raise ValueError(f"{scope_level.name} assignments need a scope_id")
        if scope_level == ScopeLevel.USER and scope_id not in (None, identity_id):
            raise ValueError("USER assignments can only target the identity itself")

        assignment = Assignment(
            id=str(uuid4()),
            identity_id=identity_id,
            role=role,
            scope_level=scope_level,
            scope_id=scope_id,
        )
        self._assignments.add_assignment(assignment)
        self._cache.invalidate(identity_id)
        logger.info(
            "Role assigned",
            extra={
                "identity_id": identity_id,
                "role": role,
                "scope_level": scope_level.name,
                "scope_id": scope_id,
            },
        )
        return assignment

    def revoke_assignment(self, assignment_id: str) -> Optional[Assignment]:
        removed = self._assignments.remove_assignment(assignment_id)
        if removed is not None:
            self._cache.invalidate(removed.identity_id)
            logger.info(
                "Role assignment revoked",
                extra={"identity_id": removed.identity_id, "role": removed.role},
            )
        return removed

    def set_role_permissions(
        self, role: str, permissions: Iterable[Permission]
    ) -> Role:
        updated = self._registry.replace_permissions(role, permissions)
        # Any identity may hold the role: evict every cached decision.
        self._cache.clear()
        logger.info(
            "Role permissions replaced",
            extra={"role": role, "permission_count": len(updated.permissions)},
        )
        return updated
