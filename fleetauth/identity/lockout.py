"""
===============================================================================
CRC CARD — identity/lockout.py
===============================================================================

Module:
    Rate/Lockout Tracker

Responsibilities:
    - Per (identity, device) state machine CLEAR -> WARNING(n<limit) -> LOCKED.
    - Escalating cooldown: base * 2**(n - limit), capped at max.
    - Reject while LOCKED with retry_after, before any verifier comparison.
    - Coarse fixed-window counters (per IP / per device) independent of the
      per-identity state.

Collaborators:
    - domain.repositories.LockoutStore (in-memory or Redis)
    - domain.services.Clock
    - crosscutting.exceptions: LockedOutError, RateLimitedError

Rules:
    - Store failures propagate as StoreUnavailableError: a lockout check that
      cannot be confirmed rejects the attempt.
===============================================================================
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..crosscutting.config import Settings
from ..crosscutting.exceptions import LockedOutError, RateLimitedError
from ..crosscutting.logger import logger
from ..domain.entities import LockoutState, LockoutStatus
from ..domain.repositories import LockoutStore
from ..domain.services import Clock


def lockout_key(identity_id: str, device_id: str) -> str:
    return f"{identity_id}|{device_id}"


@dataclass(frozen=True, slots=True)
class LockoutPolicy:
    max_attempts: int = 5
    base_cooldown_seconds: int = 300
    max_cooldown_seconds: int = 3600
    window_seconds: int = 900

    @classmethod
    def from_settings(cls, settings: Settings) -> "LockoutPolicy":
        return cls(
            max_attempts=settings.lockout_max_attempts,
            base_cooldown_seconds=settings.lockout_base_cooldown_seconds,
            max_cooldown_seconds=settings.lockout_max_cooldown_seconds,
            window_seconds=settings.lockout_window_seconds,
        )

    def backoff(self, failures: int) -> int:
        """Cooldown for the given consecutive failure count (0 below the limit)."""
        if failures < self.max_attempts:
            return 0
        exponent = failures - self.max_attempts
        # Cap the exponent before shifting; the result is capped anyway.
        cooldown = self.base_cooldown_seconds * (2 ** min(exponent, 32))
        return min(cooldown, self.max_cooldown_seconds)


class LockoutTracker:
    """Per (identity, device) failure tracking."""

    def __init__(self, store: LockoutStore, clock: Clock, policy: LockoutPolicy) -> None:
        self._store = store
        self._clock = clock
        self.policy = policy

    def state(self, identity_id: str, device_id: str) -> LockoutState:
        return self._store.get_state(lockout_key(identity_id, device_id))

    def status(self, identity_id: str, device_id: str) -> LockoutStatus:
        state = self.state(identity_id, device_id)
        if state.retry_after(self._clock.monotonic()) > 0:
            return LockoutStatus.LOCKED
        if state.failure_count == 0:
            return LockoutStatus.CLEAR
        return LockoutStatus.WARNING

    def check(self, identity_id: str, device_id: str) -> None:
        """Raise LockedOutError while a cooldown is active."""
        state = self.state(identity_id, device_id)
        remaining = state.retry_after(self._clock.monotonic())
        if remaining > 0:
            raise LockedOutError(retry_after=max(1, math.ceil(remaining)))

    def record_failure(self, identity_id: str, device_id: str) -> LockoutState:
        key = lockout_key(identity_id, device_id)
        state = self._store.register_failure(key, self.policy.window_seconds)
        cooldown = self.policy.backoff(state.failure_count)
        if cooldown > 0:
            state = self._store.start_cooldown(key, cooldown)
            logger.warning(
                "Lockout engaged",
                extra={
                    "identity_id": identity_id,
                    "device_id": device_id,
                    "failure_count": state.failure_count,
                    "cooldown_seconds": cooldown,
                },
            )
        return state

    def record_success(self, identity_id: str, device_id: str) -> None:
        self._store.reset(lockout_key(identity_id, device_id))

    def sweep(self) -> int:
        return self._store.purge_expired()


class AttemptCounter:
    """
    Coarse fixed-window counter for login, PIN and supervisor endpoints.

    Blunts distributed guessing that spreads attempts across identities.
    """

    def __init__(self, store: LockoutStore, *, window_seconds: int) -> None:
        self._store = store
        self._window = window_seconds

    def hit(self, key: str, *, limit: int) -> None:
        count, seconds_left = self._store.hit_window(f"rl:{key}", self._window)
        if count > limit:
            logger.warning(
                "Rate limit exceeded", extra={"counter": key, "count": count}
            )
            raise RateLimitedError(retry_after=max(1, math.ceil(seconds_left)))

    def check(self, key: str, *, limit: int) -> None:
        """Reject once `limit` hits are already on the window; counts nothing."""
        count, seconds_left = self._store.peek_window(f"rl:{key}")
        if count >= limit:
            logger.warning(
                "Rate limit exceeded", extra={"counter": key, "count": count}
            )
            raise RateLimitedError(retry_after=max(1, math.ceil(seconds_left)))
