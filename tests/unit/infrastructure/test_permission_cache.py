"""
Name: Permission Cache Tests

Responsibilities:
  - TTL expiry on the monotonic clock
  - Per-identity invalidation and generation-guarded writes
  - LRU bound per identity
"""

import pytest

from fleetauth.infrastructure.cache import PermissionCache

pytestmark = pytest.mark.unit


class TestPermissionCache:
    def test_miss_then_hit(self, permission_cache):
        assert permission_cache.get("u1", "k") is None

        gen = permission_cache.generation("u1")
        assert permission_cache.put("u1", "k", True, generation=gen)
        assert permission_cache.get("u1", "k") is True

        stats = permission_cache.stats
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_false_decisions_are_cached(self, permission_cache):
        permission_cache.put("u1", "k", False, generation=permission_cache.generation("u1"))
        assert permission_cache.get("u1", "k") is False

    def test_entries_expire(self, permission_cache, clock):
        permission_cache.put("u1", "k", True, generation=permission_cache.generation("u1"))
        clock.advance(60)
        assert permission_cache.get("u1", "k") is None

    def test_invalidate_drops_only_that_identity(self, permission_cache):
        for identity in ("u1", "u2"):
            permission_cache.put(
                identity, "k", True, generation=permission_cache.generation(identity)
            )

        permission_cache.invalidate("u1")

        assert permission_cache.get("u1", "k") is None
        assert permission_cache.get("u2", "k") is True

    def test_put_after_invalidation_is_rejected(self, permission_cache):
        stale = permission_cache.generation("u1")
        permission_cache.invalidate("u1")

        assert permission_cache.put("u1", "k", True, generation=stale) is False
        assert permission_cache.get("u1", "k") is None

    def test_put_after_clear_is_rejected(self, permission_cache):
        stale = permission_cache.generation("u1")
        permission_cache.clear()

        assert permission_cache.put("u1", "k", True, generation=stale) is False

    def test_bucket_is_bounded(self, clock):
        cache = PermissionCache(clock, ttl_seconds=60, max_entries_per_identity=2)
        gen = cache.generation("u1")
        for key in ("a", "b", "c"):
            cache.put("u1", key, True, generation=gen)

        assert cache.get("u1", "a") is None
        assert cache.get("u1", "b") is True
        assert cache.get("u1", "c") is True

    @pytest.mark.parametrize(
        "kwargs", [{"ttl_seconds": 0}, {"max_entries_per_identity": 0}]
    )
    def test_invalid_configuration(self, clock, kwargs):
        with pytest.raises(ValueError):
            PermissionCache(clock, **kwargs)
