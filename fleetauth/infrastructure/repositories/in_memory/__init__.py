"""In-memory adapters (tests and local development)."""

from .audit_repository import InMemoryAuditEventRepository
from .credentials import InMemoryCredentialStore
from .directory import InMemoryAssignmentStore, InMemoryIdentityDirectory
from .lockout import InMemoryLockoutStore
from .policy_issues import InMemoryPolicyIssueRepository
from .revocation import InMemoryRevocationLedger
from .sessions import InMemorySessionStore

__all__ = [
    "InMemoryAssignmentStore",
    "InMemoryAuditEventRepository",
    "InMemoryCredentialStore",
    "InMemoryIdentityDirectory",
    "InMemoryLockoutStore",
    "InMemoryPolicyIssueRepository",
    "InMemoryRevocationLedger",
    "InMemorySessionStore",
]
