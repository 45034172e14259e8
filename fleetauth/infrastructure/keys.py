"""
===============================================================================
CRC CARD — infrastructure/keys.py
===============================================================================

Module:
    Policy signing key loader (Ed25519)

Responsibilities:
    - Decode POLICY_SIGN_PRIVATE_BASE64 (32-byte seed, or 64-byte seed+public
      where only the first 32 bytes are used).
    - Expose sign() and the base64 public key devices pin.
    - Generate an ephemeral key outside production so local runs work.

Collaborators:
    - cryptography (Ed25519PrivateKey)
    - identity/policy.py: PolicySigner
    - container.py: loads the key once at startup

Rules:
    - Any failure raises SigningKeyUnavailableError. It is a startup
      condition, never a per-request one.
===============================================================================
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from ..crosscutting.exceptions import SigningKeyUnavailableError
from ..crosscutting.logger import logger

SEED_BYTES = 32
EXPANDED_KEY_BYTES = 64


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


@dataclass(frozen=True)
class PolicySigningKey:
    kid: str
    private_key: Ed25519PrivateKey

    @property
    def public_key(self) -> Ed25519PublicKey:
        return self.private_key.public_key()

    def public_key_bytes(self) -> bytes:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def public_key_base64(self) -> str:
        return base64.b64encode(self.public_key_bytes()).decode("ascii")

    def sign(self, message: bytes) -> str:
        """Detached signature, base64url without padding."""
        return b64url_encode(self.private_key.sign(message))


def load_public_key(public_key_base64: str) -> Ed25519PublicKey:
    """Device side: rebuild the pinned public key."""
    try:
        raw = base64.b64decode(public_key_base64, validate=True)
        return Ed25519PublicKey.from_public_bytes(raw)
    except (binascii.Error, ValueError) as exc:
        raise SigningKeyUnavailableError(
            "Policy public key is malformed", original_error=exc
        ) from exc


def verify_signature(public_key: Ed25519PublicKey, message: bytes, signature: str) -> bool:
    try:
        public_key.verify(b64url_decode(signature), message)
        return True
    except (InvalidSignature, binascii.Error, ValueError):
        return False


def load_policy_signing_key(
    private_key_base64: str, *, kid: str, allow_ephemeral: bool
) -> PolicySigningKey:
    """
    Build the signing key from its base64 form.

    Raises:
        SigningKeyUnavailableError: missing key (unless allow_ephemeral) or
        malformed material.
    """
    encoded = (private_key_base64 or "").strip()
    if not encoded:
        if not allow_ephemeral:
            raise SigningKeyUnavailableError("POLICY_SIGN_PRIVATE_BASE64 is not set")
        logger.warning(
            "Policy signing key not configured; using an ephemeral key",
            extra={"kid": kid},
        )
        return PolicySigningKey(kid=kid, private_key=Ed25519PrivateKey.generate())

    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SigningKeyUnavailableError(
            "Policy signing key is not valid base64", original_error=exc
        ) from exc

    if len(raw) not in (SEED_BYTES, EXPANDED_KEY_BYTES):
        raise SigningKeyUnavailableError(
            f"Policy signing key must be {SEED_BYTES} or {EXPANDED_KEY_BYTES} bytes"
        )

    private_key = Ed25519PrivateKey.from_private_bytes(raw[:SEED_BYTES])
    return PolicySigningKey(kid=kid, private_key=private_key)
