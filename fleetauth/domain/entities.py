"""
CRC — domain/entities.py

Name
- Engine entities (identities, verifiers, tokens, sessions, roles, scopes)

Responsibilities
- Represent engine state as plain dataclasses and enums.
- Encode small invariants that need no collaborator (is_active, scope order).

Collaborators
- domain.repositories: ports persist/return these types
- identity.*: authentication, tokens, policy and permission logic

Constraints
- No infrastructure imports, no I/O.
- Identifiers are opaque strings (devices are provisioned with string ids).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Optional


# ============================================================================
# Identities
# ============================================================================


class IdentityKind(str, Enum):
    DEVICE = "device"
    USER = "user"


class IdentityStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


@dataclass(slots=True)
class Identity:
    """
    R: A device or a human principal.

    A disabled identity authenticates to nothing.
    """

    id: str
    kind: IdentityKind
    team_id: Optional[str] = None
    region_id: Optional[str] = None
    organization_id: Optional[str] = None
    status: IdentityStatus = IdentityStatus.ACTIVE
    display_name: str = ""

    @property
    def is_active(self) -> bool:
        return self.status == IdentityStatus.ACTIVE

    @property
    def is_device(self) -> bool:
        return self.kind == IdentityKind.DEVICE


@dataclass(slots=True)
class Team:
    """Team directory record plus its policy overrides (time windows, GPS, ...)."""

    id: str
    name: str
    timezone: str = "UTC"
    region_id: Optional[str] = None
    organization_id: Optional[str] = None
    policy: dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Verifiers
# ============================================================================


class VerifierScope(str, Enum):
    USER_PIN = "user_pin"
    SUPERVISOR_PIN = "supervisor_pin"
    PASSWORD = "password"


@dataclass(slots=True)
class Verifier:
    """
    R: Memory-hard hash of a secret bound to exactly one owner.

    owner_id is the identity id, or the team id for supervisor PINs.
    """

    id: str
    owner_id: str
    scope: VerifierScope
    hash: str
    active: bool = True
    created_at: Optional[datetime] = None
    rotated_at: Optional[datetime] = None


# ============================================================================
# Lockout
# ============================================================================


@dataclass(frozen=True, slots=True)
class LockoutState:
    """
    Snapshot for one (identity, device) pair.

    Timestamps are monotonic seconds.
    """

    failure_count: int = 0
    first_failure_at: Optional[float] = None
    cooldown_until: Optional[float] = None

    def retry_after(self, now: float) -> float:
        if self.cooldown_until is None:
            return 0.0
        return max(0.0, self.cooldown_until - now)


class LockoutStatus(str, Enum):
    CLEAR = "clear"
    WARNING = "warning"
    LOCKED = "locked"


# ============================================================================
# Tokens & sessions
# ============================================================================


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    OVERRIDE = "override"


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Decoded, verified token content."""

    subject: str
    kind: TokenKind
    jti: str
    issued_at: datetime
    expires_at: datetime
    session_id: str
    device_id: Optional[str] = None
    team_id: Optional[str] = None
    override: bool = False


@dataclass(frozen=True, slots=True)
class IssuedToken:
    token: str
    claims: TokenClaims

    @property
    def expires_in(self) -> int:
        return int((self.claims.expires_at - self.claims.issued_at).total_seconds())


@dataclass(frozen=True, slots=True)
class TokenPair:
    access: IssuedToken
    refresh: IssuedToken


@dataclass(frozen=True, slots=True)
class RevocationEntry:
    jti: str
    revoked_at: datetime
    expires_at: datetime
    reason: str


@dataclass(slots=True)
class Session:
    """Session bookkeeping keyed by the sid embedded in every token."""

    id: str
    identity_id: str
    device_id: str
    team_id: Optional[str]
    started_at: datetime
    expires_at: datetime
    access_jti: Optional[str] = None
    refresh_jti: Optional[str] = None
    override_jti: Optional[str] = None
    override_until: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    def override_active(self, now: datetime) -> bool:
        return self.override_until is not None and now < self.override_until


# ============================================================================
# Authorization
# ============================================================================


class ScopeLevel(IntEnum):
    """Total order: a broader level dominates every narrower one."""

    USER = 1
    TEAM = 2
    REGION = 3
    ORGANIZATION = 4
    SYSTEM = 5


@dataclass(frozen=True, slots=True)
class ScopeContext:
    """The concrete scope a request operates in."""

    level: ScopeLevel
    user_id: Optional[str] = None
    team_id: Optional[str] = None
    region_id: Optional[str] = None
    organization_id: Optional[str] = None

    def cache_key(self) -> tuple:
        return (
            int(self.level),
            self.user_id,
            self.team_id,
            self.region_id,
            self.organization_id,
        )


@dataclass(frozen=True, slots=True)
class Permission:
    """(resource, action) pair granted up to scope_level."""

    resource: str
    action: str
    scope_level: ScopeLevel = ScopeLevel.TEAM


@dataclass(frozen=True, slots=True)
class Role:
    name: str
    permissions: frozenset[Permission] = frozenset()
    inherits: tuple[str, ...] = ()
    description: str = ""


@dataclass(frozen=True, slots=True)
class Assignment:
    """
    R: Binds an identity to a role within one scope instance.

    scope_id is the team/region/organization id; None at ORGANIZATION level means
    organization-wide for the identity's own organization, and is always None at
    SYSTEM level.
    """

    id: str
    identity_id: str
    role: str
    scope_level: ScopeLevel
    scope_id: Optional[str] = None


# ============================================================================
# Policy
# ============================================================================


@dataclass(frozen=True, slots=True)
class SignedPolicy:
    """Policy payload, its detached Ed25519 signature and the key id."""

    payload: dict[str, Any]
    signature: str
    kid: str

    @property
    def version(self) -> int:
        return int(self.payload["version"])

    @property
    def device_id(self) -> str:
        return str(self.payload["device_id"])


@dataclass(frozen=True, slots=True)
class PolicyIssue:
    id: str
    device_id: str
    version: int
    kid: str
    issued_at: datetime
    expires_at: datetime
    ip_address: Optional[str] = None
