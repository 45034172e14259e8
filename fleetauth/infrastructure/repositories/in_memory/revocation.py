# =============================================================================
# FILE: infrastructure/repositories/in_memory/revocation.py
# =============================================================================
"""
In-memory revocation ledger.

Insert-if-absent and lookups share one lock, so a revocation that returns
before a verification starts is always visible to it.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Optional

from ....domain.entities import RevocationEntry
from ....domain.services import Clock
from ._locking import bounded


class InMemoryRevocationLedger:
    def __init__(self, clock: Clock, *, timeout_seconds: float = 2.0) -> None:
        self._clock = clock
        self._entries: Dict[str, RevocationEntry] = {}
        self._lock = threading.Lock()
        self._timeout = timeout_seconds

    def revoke(self, jti: str, expires_at: datetime, reason: str) -> None:
        self.revoke_if_absent(jti, expires_at, reason)

    def revoke_if_absent(self, jti: str, expires_at: datetime, reason: str) -> bool:
        entry = RevocationEntry(
            jti=jti,
            revoked_at=self._clock.now(),
            expires_at=expires_at,
            reason=reason,
        )
        with bounded(self._lock, self._timeout, "revocation"):
            if jti in self._entries:
                return False
            self._entries[jti] = entry
            return True

    def is_revoked(self, jti: str) -> bool:
        with bounded(self._lock, self._timeout, "revocation"):
            return jti in self._entries

    def get_entry(self, jti: str) -> Optional[RevocationEntry]:
        with bounded(self._lock, self._timeout, "revocation"):
            return self._entries.get(jti)

    def purge_expired(self, now: datetime) -> int:
        with bounded(self._lock, self._timeout, "revocation"):
            expired = [jti for jti, e in self._entries.items() if e.expires_at <= now]
            for jti in expired:
                del self._entries[jti]
            return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
