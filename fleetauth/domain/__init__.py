"""
Domain layer: entities, audit model and ports (Protocols).

No infrastructure or framework imports live here.
"""

from .audit import AuditDecision, AuditEvent
from .entities import (
    Assignment,
    Identity,
    IdentityKind,
    IdentityStatus,
    IssuedToken,
    LockoutState,
    LockoutStatus,
    Permission,
    PolicyIssue,
    RevocationEntry,
    Role,
    ScopeContext,
    ScopeLevel,
    Session,
    SignedPolicy,
    Team,
    TokenClaims,
    TokenKind,
    TokenPair,
    Verifier,
    VerifierScope,
)
from .services import Clock

__all__ = [
    "Assignment",
    "AuditDecision",
    "AuditEvent",
    "Clock",
    "Identity",
    "IdentityKind",
    "IdentityStatus",
    "IssuedToken",
    "LockoutState",
    "LockoutStatus",
    "Permission",
    "PolicyIssue",
    "RevocationEntry",
    "Role",
    "ScopeContext",
    "ScopeLevel",
    "Session",
    "SignedPolicy",
    "Team",
    "TokenClaims",
    "TokenKind",
    "TokenPair",
    "Verifier",
    "VerifierScope",
]
