"""Store adapters: in-memory (tests/dev) and Redis (shared state)."""

from .in_memory import (
    InMemoryAssignmentStore,
    InMemoryAuditEventRepository,
    InMemoryCredentialStore,
    InMemoryIdentityDirectory,
    InMemoryLockoutStore,
    InMemoryPolicyIssueRepository,
    InMemoryRevocationLedger,
    InMemorySessionStore,
)
from .redis import RedisLockoutStore, RedisRevocationLedger, build_redis_client

__all__ = [
    "InMemoryAssignmentStore",
    "InMemoryAuditEventRepository",
    "InMemoryCredentialStore",
    "InMemoryIdentityDirectory",
    "InMemoryLockoutStore",
    "InMemoryPolicyIssueRepository",
    "InMemoryRevocationLedger",
    "InMemorySessionStore",
    "RedisLockoutStore",
    "RedisRevocationLedger",
    "build_redis_client",
]
