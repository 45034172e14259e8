# =============================================================================
# FILE: infrastructure/repositories/redis/revocation.py
# =============================================================================
"""
Redis revocation ledger.

One key per revoked jti, written with SET NX EX so that insert-if-absent is a
single atomic command and the entry disappears when the token would have
expired anyway (purge is native TTL).
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Optional

from redis import Redis

from ....domain.entities import RevocationEntry
from ....domain.services import Clock
from ._errors import store_call

_PREFIX = "fleetauth:revoked:"


class RedisRevocationLedger:
    def __init__(self, client: Redis, clock: Clock) -> None:
        self._redis = client
        self._clock = clock

    def revoke(self, jti: str, expires_at: datetime, reason: str) -> None:
        self.revoke_if_absent(jti, expires_at, reason)

    def revoke_if_absent(self, jti: str, expires_at: datetime, reason: str) -> bool:
        now = self._clock.now()
        ttl = max(1, int(math.ceil((expires_at - now).total_seconds())))
        value = json.dumps(
            {
                "reason": reason,
                "revoked_at": now.isoformat(),
                "expires_at": expires_at.isoformat(),
            }
        )
        with store_call("revocation", "revoke_if_absent"):
            created = self._redis.set(f"{_PREFIX}{jti}", value, ex=ttl, nx=True)
        return bool(created)

    def is_revoked(self, jti: str) -> bool:
        with store_call("revocation", "is_revoked"):
            return bool(self._redis.exists(f"{_PREFIX}{jti}"))

    def get_entry(self, jti: str) -> Optional[RevocationEntry]:
        with store_call("revocation", "get_entry"):
            raw = self._redis.get(f"{_PREFIX}{jti}")
        if raw is None:
            return None
        data = json.loads(raw)
        return RevocationEntry(
            jti=jti,
            revoked_at=datetime.fromisoformat(data["revoked_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            reason=data["reason"],
        )

    def purge_expired(self, now: datetime) -> int:
        # Redis expires keys natively.
        return 0
