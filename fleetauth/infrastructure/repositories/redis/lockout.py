# =============================================================================
# FILE: infrastructure/repositories/redis/lockout.py
# =============================================================================
"""
===============================================================================
CRC CARD — Redis lockout store
===============================================================================

Responsibilities:
  - Share lockout counters and cooldowns across API processes.
  - Keep failure counting linearizable per key (HINCRBY in a MULTI block).
  - Let Redis expire stale counters, cooldowns and windows natively.

Key layout (prefix "fleetauth:lockout:"):
  - {key}            hash {count, first, window}  expires window after the later of
                     first failure and cooldown end
  - {key}:cooldown   string               PX = remaining cooldown
  - win:{key}        integer counter      EX = fixed window

Collaborators:
  - redis-py (Redis client, pipelines, WATCH transactions)
  - domain.services.Clock (maps wall timestamps onto the monotonic scale)
===============================================================================
"""

from __future__ import annotations

import math

from redis import Redis

from ....domain.entities import LockoutState
from ....domain.services import Clock
from ._errors import store_call

_PREFIX = "fleetauth:lockout:"


class RedisLockoutStore:
    def __init__(self, client: Redis, clock: Clock) -> None:
        self._redis = client
        self._clock = clock

    # ------------------------------------------------------------------ keys

    @staticmethod
    def _state_key(key: str) -> str:
        return f"{_PREFIX}{key}"

    @staticmethod
    def _cooldown_key(key: str) -> str:
        return f"{_PREFIX}{key}:cooldown"

    @staticmethod
    def _window_key(key: str) -> str:
        return f"{_PREFIX}win:{key}"

    # ------------------------------------------------------------------ API

    def get_state(self, key: str) -> LockoutState:
        with store_call("lockout", "get_state"):
            pipe = self._redis.pipeline(transaction=True)
            pipe.hmget(self._state_key(key), "count", "first")
            pipe.pttl(self._cooldown_key(key))
            (count, first), cooldown_ms = pipe.execute()
        return self._to_state(count, first, cooldown_ms)

    def register_failure(self, key: str, window_seconds: float) -> LockoutState:
        state_key = self._state_key(key)
        window_ms = int(math.ceil(window_seconds * 1000))
        with store_call("lockout", "register_failure"):
            pipe = self._redis.pipeline(transaction=True)
            pipe.hincrby(state_key, "count", 1)
            pipe.hsetnx(state_key, "first", repr(self._clock.now().timestamp()))
            pipe.hset(state_key, "window", window_ms)
            pipe.pttl(state_key)
            pipe.hget(state_key, "first")
            pipe.pttl(self._cooldown_key(key))
            count, _, _, ttl_ms, first, cooldown_ms = pipe.execute()
            if ttl_ms is None or ttl_ms < 0:
                self._redis.pexpire(state_key, window_ms)
        return self._to_state(count, first, cooldown_ms)

    def start_cooldown(self, key: str, cooldown_seconds: float) -> LockoutState:
        cooldown_key = self._cooldown_key(key)
        state_key = self._state_key(key)
        cooldown_ms = int(math.ceil(cooldown_seconds * 1000))

        def _extend(pipe) -> None:
            current = pipe.pttl(cooldown_key)
            window_ms = int(pipe.hget(state_key, "window") or 0)
            pipe.multi()
            if current is None or current < cooldown_ms:
                pipe.set(cooldown_key, "1", px=cooldown_ms)
                if window_ms:
                    pipe.pexpire(state_key, cooldown_ms + window_ms)

        with store_call("lockout", "start_cooldown"):
            self._redis.transaction(_extend, cooldown_key, state_key)
        return self.get_state(key)

    def reset(self, key: str) -> None:
        with store_call("lockout", "reset"):
            self._redis.delete(self._state_key(key), self._cooldown_key(key))

    def hit_window(self, key: str, window_seconds: float) -> tuple[int, float]:
        window_key = self._window_key(key)
        with store_call("lockout", "hit_window"):
            pipe = self._redis.pipeline(transaction=True)
            pipe.set(window_key, 0, ex=max(1, int(math.ceil(window_seconds))), nx=True)
            pipe.incr(window_key)
            pipe.pttl(window_key)
            _, count, ttl_ms = pipe.execute()
        return int(count), max(0.0, (ttl_ms or 0) / 1000.0)

    def peek_window(self, key: str) -> tuple[int, float]:
        with store_call("lockout", "peek_window"):
            pipe = self._redis.pipeline(transaction=True)
            pipe.get(self._window_key(key))
            pipe.pttl(self._window_key(key))
            count, ttl_ms = pipe.execute()
        if count is None:
            return 0, 0.0
        return int(count), max(0.0, (ttl_ms or 0) / 1000.0)

    def purge_expired(self) -> int:
        # Redis expires keys natively.
        return 0

    # ------------------------------------------------------------------ mapping

    def _to_state(self, count, first, cooldown_ms) -> LockoutState:
        if not count:
            return LockoutState()
        mono_now = self._clock.monotonic()
        first_failure_at = None
        if first is not None:
            elapsed = self._clock.now().timestamp() - float(first)
            first_failure_at = mono_now - max(0.0, elapsed)
        cooldown_until = None
        if cooldown_ms is not None and cooldown_ms > 0:
            cooldown_until = mono_now + cooldown_ms / 1000.0
        return LockoutState(
            failure_count=int(count),
            first_failure_at=first_failure_at,
            cooldown_until=cooldown_until,
        )
