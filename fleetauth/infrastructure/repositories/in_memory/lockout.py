# =============================================================================
# FILE: infrastructure/repositories/in_memory/lockout.py
# =============================================================================
"""
In-memory lockout state and coarse fixed-window counters.

Timestamps come from the injected clock's monotonic() source. A failure
counter goes stale once window_seconds have elapsed since the later of its
first failure and the end of its last cooldown.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, Tuple

from ....domain.entities import LockoutState
from ....domain.services import Clock
from ._locking import bounded


def _anchor(state: LockoutState) -> float:
    return max(state.first_failure_at or 0.0, state.cooldown_until or 0.0)


class InMemoryLockoutStore:
    def __init__(self, clock: Clock, *, timeout_seconds: float = 2.0) -> None:
        self._clock = clock
        self._states: Dict[str, Tuple[LockoutState, float]] = {}
        self._windows: Dict[str, Tuple[int, float, float]] = {}
        self._lock = threading.Lock()
        self._timeout = timeout_seconds

    def get_state(self, key: str) -> LockoutState:
        now = self._clock.monotonic()
        with bounded(self._lock, self._timeout, "lockout"):
            return self._current(key, now)

    def register_failure(self, key: str, window_seconds: float) -> LockoutState:
        now = self._clock.monotonic()
        with bounded(self._lock, self._timeout, "lockout"):
            state = self._current(key, now)
            if state.failure_count == 0:
                state = LockoutState(failure_count=1, first_failure_at=now)
            else:
                state = replace(state, failure_count=state.failure_count + 1)
            self._states[key] = (state, float(window_seconds))
            return state

    def start_cooldown(self, key: str, cooldown_seconds: float) -> LockoutState:
        now = self._clock.monotonic()
        until = now + float(cooldown_seconds)
        with bounded(self._lock, self._timeout, "lockout"):
            entry = self._states.get(key)
            state, window = entry if entry else (LockoutState(), 0.0)
            if state.cooldown_until is None or state.cooldown_until < until:
                state = replace(state, cooldown_until=until)
            self._states[key] = (state, window)
            return state

    def reset(self, key: str) -> None:
        with bounded(self._lock, self._timeout, "lockout"):
            self._states.pop(key, None)

    def hit_window(self, key: str, window_seconds: float) -> tuple[int, float]:
        now = self._clock.monotonic()
        with bounded(self._lock, self._timeout, "lockout"):
            count, started, window = self._windows.get(key, (0, now, window_seconds))
            if now - started >= window:
                count, started, window = 0, now, window_seconds
            count += 1
            self._windows[key] = (count, started, window)
            return count, max(0.0, started + window - now)

    def peek_window(self, key: str) -> tuple[int, float]:
        now = self._clock.monotonic()
        with bounded(self._lock, self._timeout, "lockout"):
            entry = self._windows.get(key)
            if entry is None or now - entry[1] >= entry[2]:
                return 0, 0.0
            count, started, window = entry
            return count, max(0.0, started + window - now)

    def purge_expired(self) -> int:
        now = self._clock.monotonic()
        removed = 0
        with bounded(self._lock, self._timeout, "lockout"):
            for key in list(self._states):
                if self._is_stale(key, now):
                    del self._states[key]
                    removed += 1
            for key, (_, started, window) in list(self._windows.items()):
                if now - started >= window:
                    del self._windows[key]
                    removed += 1
        return removed

    # ------------------------------------------------------------------ internals

    def _is_stale(self, key: str, now: float) -> bool:
        state, window = self._states[key]
        if state.cooldown_until is not None and now < state.cooldown_until:
            return False
        return now - _anchor(state) > window

    def _current(self, key: str, now: float) -> LockoutState:
        if key not in self._states:
            return LockoutState()
        if self._is_stale(key, now):
            del self._states[key]
            return LockoutState()
        return self._states[key][0]
