"""
Name: Background Maintenance Tasks

Responsibilities:
  - sweep_revocations(): prune ledger entries whose token expired anyway.
  - sweep_lockouts(): drop lockout/counter state that can no longer matter.

Notes:
  - Plain callables so any scheduler (cron, worker loop) can run them.
  - Store failures propagate; the scheduler decides whether to retry.
"""

from __future__ import annotations

from ..crosscutting.logger import logger
from ..identity.lockout import LockoutTracker
from ..identity.tokens import TokenService


def sweep_revocations(tokens: TokenService) -> int:
    removed = tokens.sweep()
    logger.info("Revocation sweep finished", extra={"removed": removed})
    return removed


def sweep_lockouts(tracker: LockoutTracker) -> int:
    removed = tracker.sweep()
    logger.info("Lockout sweep finished", extra={"removed": removed})
    return removed
