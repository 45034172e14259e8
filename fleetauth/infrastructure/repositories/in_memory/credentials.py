# =============================================================================
# FILE: infrastructure/repositories/in_memory/credentials.py
# =============================================================================
"""
In-memory verifier store.

Rotation swaps the active verifier under one lock, so no reader ever sees
two active verifiers (or none) for the same (owner, scope).
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from ....domain.entities import Verifier, VerifierScope
from ._locking import bounded


class InMemoryCredentialStore:
    def __init__(self, *, timeout_seconds: float = 2.0) -> None:
        self._verifiers: Dict[Tuple[str, VerifierScope], List[Verifier]] = {}
        self._lock = threading.Lock()
        self._timeout = timeout_seconds

    def get_active_verifier(
        self, owner_id: str, scope: VerifierScope
    ) -> Optional[Verifier]:
        with bounded(self._lock, self._timeout, "credentials"):
            for verifier in self._verifiers.get((owner_id, scope), []):
                if verifier.active:
                    return verifier
            return None

    def rotate_verifier(
        self, owner_id: str, scope: VerifierScope, new_hash: str
    ) -> Verifier:
        now = datetime.now(timezone.utc)
        with bounded(self._lock, self._timeout, "credentials"):
            history = self._verifiers.setdefault((owner_id, scope), [])
            history[:] = [
                replace(v, active=False, rotated_at=now) if v.active else v
                for v in history
            ]
            verifier = Verifier(
                id=str(uuid4()),
                owner_id=owner_id,
                scope=scope,
                hash=new_hash,
                active=True,
                created_at=now,
            )
            history.insert(0, verifier)
            return verifier

    def history(self, owner_id: str, scope: VerifierScope) -> List[Verifier]:
        """All verifiers for (owner, scope), newest first (for testing)."""
        with bounded(self._lock, self._timeout, "credentials"):
            return list(self._verifiers.get((owner_id, scope), []))
