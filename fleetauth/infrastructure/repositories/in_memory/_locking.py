"""Bounded lock acquisition shared by the in-memory stores."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from ....crosscutting.exceptions import StoreUnavailableError


@contextmanager
def bounded(lock: threading.Lock, timeout: float, store: str) -> Iterator[None]:
    """Hold lock for the block, or raise StoreUnavailableError after timeout."""
    if not lock.acquire(timeout=timeout):
        raise StoreUnavailableError(f"{store} store timed out")
    try:
        yield
    finally:
        lock.release()
