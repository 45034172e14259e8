"""
Application layer: use cases, maintenance tasks and the local demo seed.
"""

from .maintenance import sweep_lockouts, sweep_revocations

__all__ = ["sweep_lockouts", "sweep_revocations"]
