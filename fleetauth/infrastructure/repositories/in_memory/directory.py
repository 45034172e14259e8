# =============================================================================
# FILE: infrastructure/repositories/in_memory/directory.py
# =============================================================================
"""
In-memory Identity/Team directory and assignment store.

Stands in for the CRUD layer in tests and local development.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from ....domain.entities import Assignment, Identity, Team
from ._locking import bounded


class InMemoryIdentityDirectory:
    """Identities and teams, keyed by id."""

    def __init__(self, *, timeout_seconds: float = 2.0) -> None:
        self._identities: Dict[str, Identity] = {}
        self._teams: Dict[str, Team] = {}
        self._lock = threading.Lock()
        self._timeout = timeout_seconds

    def lookup_identity(self, identity_id: str) -> Optional[Identity]:
        with bounded(self._lock, self._timeout, "directory"):
            return self._identities.get(identity_id)

    def get_team(self, team_id: str) -> Optional[Team]:
        with bounded(self._lock, self._timeout, "directory"):
            return self._teams.get(team_id)

    # -------------------------------------------------------------------------
    # Provisioning helpers (CRUD layer / tests)
    # -------------------------------------------------------------------------
    def upsert_identity(self, identity: Identity) -> None:
        with bounded(self._lock, self._timeout, "directory"):
            self._identities[identity.id] = identity

    def upsert_team(self, team: Team) -> None:
        with bounded(self._lock, self._timeout, "directory"):
            self._teams[team.id] = team


class InMemoryAssignmentStore:
    """Role assignments, keyed by identity."""

    def __init__(self, *, timeout_seconds: float = 2.0) -> None:
        self._by_identity: Dict[str, List[Assignment]] = {}
        self._lock = threading.Lock()
        self._timeout = timeout_seconds
        self.read_count = 0

    def list_assignments(self, identity_id: str) -> List[Assignment]:
        with bounded(self._lock, self._timeout, "assignments"):
            self.read_count += 1
            return list(self._by_identity.get(identity_id, []))

    def add_assignment(self, assignment: Assignment) -> None:
        with bounded(self._lock, self._timeout, "assignments"):
            items = self._by_identity.setdefault(assignment.identity_id, [])
            items[:] = [a for a in items if a.id != assignment.id]
            items.append(assignment)

    def remove_assignment(self, assignment_id: str) -> Optional[Assignment]:
        with bounded(self._lock, self._timeout, "assignments"):
            for items in self._by_identity.values():
                for i, existing in enumerate(items):
                    if existing.id == assignment_id:
                        return items.pop(i)
            return None
