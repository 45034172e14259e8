"""
============================================================
CRC CARD — infrastructure/cache.py
============================================================
Module: Permission decision cache (per identity, TTL + generation)

Responsibilities:
  - Memoize (identity, resource, action, scope) -> decision with a short TTL.
  - Scope entries per identity so one identity can be evicted as a unit.
  - Reject writes computed before an invalidation (generation check), so an
    in-flight resolution can never re-insert a stale grant.
  - Expose simple stats (hits/misses/invalidations).

Collaborators:
  - identity/permissions.py: PermissionResolver reads/writes, AssignmentService
    invalidates.
  - domain.services.Clock: monotonic TTL arithmetic.
  - threading.Lock for thread-safety.

Design Notes:
  - A miss always falls back to a full resolution, never to a denial.
  - Expiry uses monotonic time so wall-clock adjustments cannot extend a grant.
============================================================
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Dict, Hashable, Optional

from ..domain.services import Clock


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """
    Cached decision.

    Invariant:
      - expires_at is on the clock's monotonic scale.
    """

    decision: bool
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class PermissionCache:
    """
    Per-identity decision cache.

    Each identity owns an LRU bucket (OrderedDict) and a generation counter.
    invalidate() bumps the generation and drops the bucket; put() only stores
    when the caller's generation is still current.
    """

    def __init__(
        self,
        clock: Clock,
        *,
        ttl_seconds: float = 60.0,
        max_entries_per_identity: int = 512,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_entries_per_identity <= 0:
            raise ValueError("max_entries_per_identity must be > 0")

        self._clock = clock
        self._ttl = float(ttl_seconds)
        self._max_entries = int(max_entries_per_identity)

        self._buckets: Dict[str, "OrderedDict[Hashable, CacheEntry]"] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._lock = Lock()

        self._hits = 0
        self._misses = 0
        self._invalidations = 0

    def generation(self, identity_id: str) -> tuple[int, int]:
        with self._lock:
            return (self._epoch, self._generations.get(identity_id, 0))

    def get(self, identity_id: str, key: Hashable) -> Optional[bool]:
        now = self._clock.monotonic()
        with self._lock:
            bucket = self._buckets.get(identity_id)
            entry = bucket.get(key) if bucket else None
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                del bucket[key]
                self._misses += 1
                return None
            bucket.move_to_end(key, last=True)
            self._hits += 1
            return entry.decision

    def put(
        self,
        identity_id: str,
        key: Hashable,
        decision: bool,
        *,
        generation: tuple[int, int],
    ) -> bool:
        """Store decision. Returns False if the identity was invalidated meanwhile."""
        expires_at = self._clock.monotonic() + self._ttl
        with self._lock:
            if (self._epoch, self._generations.get(identity_id, 0)) != generation:
                return False
            bucket = self._buckets.setdefault(identity_id, OrderedDict())
            bucket[key] = CacheEntry(decision=decision, expires_at=expires_at)
            bucket.move_to_end(key, last=True)
            while len(bucket) > self._max_entries:
                bucket.popitem(last=False)
            return True

    def invalidate(self, identity_id: str) -> None:
        with self._lock:
            self._generations[identity_id] = self._generations.get(identity_id, 0) + 1
            self._buckets.pop(identity_id, None)
            self._invalidations += 1

    def clear(self) -> None:
        with self._lock:
            self._epoch += 1
            self._buckets.clear()

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "identities": len(self._buckets),
                "entries": sum(len(b) for b in self._buckets.values()),
                "hits": self._hits,
                "misses": self._misses,
                "invalidations": self._invalidations,
                "ttl_seconds": self._ttl,
            }
