"""
===============================================================================
CRC CARD — domain/services.py
===============================================================================

Module:
    External service ports (Protocols)

Responsibilities:
    - Clock: monotonic "now" for TTL arithmetic and wall-clock "server now"
      for anything embedded in tokens or policies.

Collaborators:
    - infrastructure/clock.py: SystemClock
    - tests: FakeClock

Rules:
    - Interfaces only.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class Clock(Protocol):
    """Time source contract."""

    def monotonic(self) -> float:
        """Seconds from an arbitrary origin; never goes backwards."""
        ...

    def now(self) -> datetime:
        """Timezone-aware UTC wall clock."""
        ...
