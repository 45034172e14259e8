"""
===============================================================================
CRC CARD — identity/credentials.py
===============================================================================

Module:
    Verifier hashing (Argon2id)

Responsibilities:
    - Hash PINs/passwords with a memory-hard function (per-hash random salt).
    - Verify in constant time; never raise on mismatch.
    - Report when a stored hash uses outdated parameters (rehash on login).
    - Run a dummy verification so unknown principals cost the same time as
      known ones.

Collaborators:
    - argon2-cffi PasswordHasher
    - crosscutting.config.Settings: argon2 parameters
    - identity.authenticator: consumes verify()/dummy_verify()

Rules:
    - Plaintext secrets are never stored or logged.
===============================================================================
"""

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from ..crosscutting.config import Settings

_DUMMY_SECRET = "fleetauth-dummy-secret"


class VerifierHasher:
    """Thin wrapper over PasswordHasher configured from Settings."""

    def __init__(self, hasher: PasswordHasher | None = None) -> None:
        self._hasher = hasher or PasswordHasher()
        self._dummy_hash = self._hasher.hash(_DUMMY_SECRET)

    @classmethod
    def from_settings(cls, settings: Settings) -> "VerifierHasher":
        return cls(
            PasswordHasher(
                time_cost=settings.argon2_time_cost,
                memory_cost=settings.argon2_memory_cost,
                parallelism=settings.argon2_parallelism,
                hash_len=settings.argon2_hash_len,
                salt_len=settings.argon2_salt_len,
            )
        )

    def hash(self, secret: str) -> str:
        return self._hasher.hash(secret)

    def verify(self, secret: str, verifier_hash: str) -> bool:
        try:
            return self._hasher.verify(verifier_hash, secret)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, verifier_hash: str) -> bool:
        try:
            return self._hasher.check_needs_rehash(verifier_hash)
        except InvalidHashError:
            return True

    def dummy_verify(self, secret: str) -> None:
        """Spend one verification on a throwaway hash; the result is discarded."""
        self.verify(secret or "", self._dummy_hash)
