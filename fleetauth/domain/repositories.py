"""
CRC — domain/repositories.py

Name
- Engine Repository Interfaces (Protocols)

Responsibilities
- Define the storage contracts the engine consumes (ports).
- Keep identity/ logic independent from in-memory or Redis adapters.
- Make atomicity requirements explicit in the contract (insert-if-absent,
  atomic increment, atomic verifier rotation).

Collaborators
- domain.entities, domain.audit
- infrastructure.repositories.in_memory / infrastructure.repositories.redis

Constraints
- Every call is bounded by a store timeout; implementations raise
  StoreUnavailableError instead of blocking or answering optimistically.
- Implementations MUST match method signatures exactly.

Notes
- typing.Protocol for structural subtyping.
"""

from datetime import datetime
from typing import List, Optional, Protocol

from .audit import AuditEvent
from .entities import (
    Assignment,
    Identity,
    LockoutState,
    PolicyIssue,
    RevocationEntry,
    Session,
    Team,
    Verifier,
    VerifierScope,
)


class IdentityDirectory(Protocol):
    """
    R: Identity/Team directory (owned by the CRUD layer).

    The engine only reads from it.
    """

    def lookup_identity(self, identity_id: str) -> Optional[Identity]:
        ...

    def get_team(self, team_id: str) -> Optional[Team]:
        ...


class AssignmentStore(Protocol):
    """R: Role assignments per identity."""

    def list_assignments(self, identity_id: str) -> List[Assignment]:
        ...

    def add_assignment(self, assignment: Assignment) -> None:
        ...

    def remove_assignment(self, assignment_id: str) -> Optional[Assignment]:
        """Remove and return the assignment, or None if it did not exist."""
        ...


class CredentialStore(Protocol):
    """
    R: Verifier storage. Pure storage, no verification logic.

    At most one active verifier per (owner, scope).
    """

    def get_active_verifier(
        self, owner_id: str, scope: VerifierScope
    ) -> Optional[Verifier]:
        ...

    def rotate_verifier(
        self, owner_id: str, scope: VerifierScope, new_hash: str
    ) -> Verifier:
        """Atomically deactivate the current verifier and activate a new one."""
        ...


class LockoutStore(Protocol):
    """
    R: Keyed lockout state and coarse fixed-window counters.

    Every mutation is an atomic upsert per key.
    """

    def get_state(self, key: str) -> LockoutState:
        ...

    def register_failure(self, key: str, window_seconds: float) -> LockoutState:
        """Increment the failure counter (restarting it if the window elapsed)."""
        ...

    def start_cooldown(self, key: str, cooldown_seconds: float) -> LockoutState:
        """Extend cooldown_until; never shortens an existing cooldown."""
        ...

    def reset(self, key: str) -> None:
        ...

    def hit_window(self, key: str, window_seconds: float) -> tuple[int, float]:
        """Count one hit in a fixed window. Returns (count, seconds_left)."""
        ...

    def peek_window(self, key: str) -> tuple[int, float]:
        """Read a fixed-window count without counting a hit."""
        ...

    def purge_expired(self) -> int:
        ...


class RevocationLedger(Protocol):
    """
    R: Append-only set of revoked token identifiers.

    Entries are pruned once the underlying token would have expired anyway.
    """

    def revoke(self, jti: str, expires_at: datetime, reason: str) -> None:
        ...

    def revoke_if_absent(self, jti: str, expires_at: datetime, reason: str) -> bool:
        """Insert-if-absent. True only for the caller whose insert won."""
        ...

    def is_revoked(self, jti: str) -> bool:
        ...

    def get_entry(self, jti: str) -> Optional[RevocationEntry]:
        ...

    def purge_expired(self, now: datetime) -> int:
        ...


class SessionStore(Protocol):
    """R: Session metadata keyed by session id."""

    def create_session(self, session: Session) -> None:
        ...

    def get_session(self, session_id: str) -> Optional[Session]:
        ...

    def update_tokens(
        self, session_id: str, *, access_jti: str, refresh_jti: str
    ) -> bool:
        """False when the session is missing or already ended."""
        ...

    def set_override(
        self,
        session_id: str,
        *,
        override_jti: Optional[str],
        override_until: Optional[datetime],
        expected_jti: Optional[str] = None,
    ) -> bool:
        """
        Compare-and-set on the override slot: applies only while the current
        override jti equals expected_jti. An ended session accepts clearing only.
        """
        ...

    def end_session(
        self, session_id: str, *, ended_at: datetime, reason: str
    ) -> Optional[Session]:
        """End once; returns the final snapshot (None if unknown)."""
        ...


class PolicyIssueRepository(Protocol):
    """R: Per-device policy versions and issue history."""

    def next_version(self, device_id: str) -> int:
        """Atomically allocate the next (strictly increasing) version."""
        ...

    def record_issue(self, issue: PolicyIssue) -> None:
        ...

    def list_issues(self, device_id: str, limit: int = 10) -> List[PolicyIssue]:
        """Most recent first."""
        ...


class AuditEventRepository(Protocol):
    """R: Audit sink."""

    def record_event(self, event: AuditEvent) -> None:
        ...

    def list_events(
        self,
        *,
        actor: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        ...
