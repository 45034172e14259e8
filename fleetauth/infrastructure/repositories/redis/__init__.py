"""Redis adapters for state shared across API processes."""

from redis import Redis

from .lockout import RedisLockoutStore
from .revocation import RedisRevocationLedger


def build_redis_client(redis_url: str, *, timeout_seconds: float) -> Redis:
    """Client whose every call is bounded by the store timeout."""
    return Redis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=timeout_seconds,
        socket_connect_timeout=timeout_seconds,
    )


__all__ = ["RedisLockoutStore", "RedisRevocationLedger", "build_redis_client"]
