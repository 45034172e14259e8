"""
System clock adapter.

monotonic() drives TTL arithmetic (cooldowns, cache deadlines); now() is the
UTC wall clock embedded in tokens and policy time anchors.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
