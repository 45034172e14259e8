"""Map redis-py failures onto the engine's fail-closed store error."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from redis.exceptions import RedisError

from ....crosscutting.exceptions import StoreUnavailableError
from ....crosscutting.logger import logger


@contextmanager
def store_call(store: str, op: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        logger.error(
            "Redis store call failed",
            extra={"store": store, "op": op, "error": str(exc)},
        )
        raise StoreUnavailableError(
            f"{store} store unavailable", original_error=exc
        ) from exc
