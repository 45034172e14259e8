"""
Name: Lockout Tracker Tests

Responsibilities:
  - Backoff ladder (doubling, capped)
  - CLEAR -> WARNING -> LOCKED transitions and reset on success
  - Concurrent failures never under-count
  - Coarse fixed-window counters
"""

import threading

import pytest

from fleetauth.crosscutting.exceptions import LockedOutError, RateLimitedError
from fleetauth.domain.entities import LockoutStatus
from fleetauth.identity.lockout import AttemptCounter, LockoutPolicy, lockout_key

pytestmark = pytest.mark.unit


class TestLockoutPolicy:
    def test_no_cooldown_below_limit(self):
        policy = LockoutPolicy(max_attempts=5, base_cooldown_seconds=300)
        assert [policy.backoff(n) for n in range(5)] == [0, 0, 0, 0, 0]

    def test_doubles_from_limit_and_caps(self):
        policy = LockoutPolicy(
            max_attempts=5, base_cooldown_seconds=300, max_cooldown_seconds=3600
        )
        assert policy.backoff(5) == 300
        assert policy.backoff(6) == 600
        assert policy.backoff(7) == 1200
        assert policy.backoff(8) == 2400
        assert policy.backoff(9) == 3600
        assert policy.backoff(500) == 3600

    def test_ladder_is_non_decreasing(self):
        policy = LockoutPolicy()
        values = [policy.backoff(n) for n in range(40)]
        assert values == sorted(values)


class TestLockoutTracker:
    def test_state_machine(self, tracker):
        assert tracker.status("u1", "d1") == LockoutStatus.CLEAR

        for _ in range(4):
            tracker.record_failure("u1", "d1")
        assert tracker.status("u1", "d1") == LockoutStatus.WARNING
        tracker.check("u1", "d1")

        state = tracker.record_failure("u1", "d1")
        assert state.failure_count == 5
        assert tracker.status("u1", "d1") == LockoutStatus.LOCKED

    def test_check_raises_with_retry_after(self, tracker, clock):
        for _ in range(5):
            tracker.record_failure("u1", "d1")
        clock.advance(100)

        with pytest.raises(LockedOutError) as exc_info:
            tracker.check("u1", "d1")
        assert exc_info.value.retry_after == 200

    def test_cooldown_expires(self, tracker, clock):
        for _ in range(5):
            tracker.record_failure("u1", "d1")
        clock.advance(301)

        tracker.check("u1", "d1")
        assert tracker.status("u1", "d1") == LockoutStatus.WARNING

    def test_next_failure_after_cooldown_escalates(self, tracker, clock):
        for _ in range(5):
            tracker.record_failure("u1", "d1")
        clock.advance(301)

        tracker.record_failure("u1", "d1")
        with pytest.raises(LockedOutError) as exc_info:
            tracker.check("u1", "d1")
        assert exc_info.value.retry_after == 600

    def test_success_resets_counter(self, tracker):
        for _ in range(3):
            tracker.record_failure("u1", "d1")
        tracker.record_success("u1", "d1")

        assert tracker.state("u1", "d1").failure_count == 0
        assert tracker.status("u1", "d1") == LockoutStatus.CLEAR

    def test_window_elapsed_restarts_count(self, tracker, clock):
        for _ in range(4):
            tracker.record_failure("u1", "d1")
        clock.advance(901)

        state = tracker.record_failure("u1", "d1")
        assert state.failure_count == 1

    def test_pairs_are_independent(self, tracker):
        for _ in range(5):
            tracker.record_failure("u1", "d1")

        tracker.check("u1", "d2")
        tracker.check("u2", "d1")
        assert lockout_key("u1", "d1") != lockout_key("u1", "d2")

    def test_concurrent_failures_are_all_counted(self, tracker):
        barrier = threading.Barrier(8)

        def fail():
            barrier.wait()
            for _ in range(5):
                tracker.record_failure("u1", "d1")

        threads = [threading.Thread(target=fail) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert tracker.state("u1", "d1").failure_count == 40

    def test_sweep_drops_stale_state(self, tracker, clock):
        tracker.record_failure("u1", "d1")
        clock.advance(1000)
        assert tracker.sweep() == 1


class TestAttemptCounter:
    def test_allows_up_to_limit(self, lockout_store):
        counter = AttemptCounter(lockout_store, window_seconds=60)
        for _ in range(3):
            counter.hit("login:ip:10.0.0.1", limit=3)

        with pytest.raises(RateLimitedError) as exc_info:
            counter.hit("login:ip:10.0.0.1", limit=3)
        assert exc_info.value.retry_after == 60

    def test_window_resets(self, lockout_store, clock):
        counter = AttemptCounter(lockout_store, window_seconds=60)
        for _ in range(3):
            counter.hit("pin:d1", limit=3)
        clock.advance(60)

        counter.hit("pin:d1", limit=3)

    def test_keys_are_independent(self, lockout_store):
        counter = AttemptCounter(lockout_store, window_seconds=60)
        counter.hit("login:ip:a", limit=1)
        counter.hit("login:ip:b", limit=1)

    def test_check_reads_without_counting(self, lockout_store, clock):
        counter = AttemptCounter(lockout_store, window_seconds=60)
        for _ in range(5):
            counter.check("pin:d1", limit=2)
        counter.hit("pin:d1", limit=2)
        counter.hit("pin:d1", limit=2)
        clock.advance(15)

        with pytest.raises(RateLimitedError) as exc_info:
            counter.check("pin:d1", limit=2)
        assert exc_info.value.retry_after == 45
