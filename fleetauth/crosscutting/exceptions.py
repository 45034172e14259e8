# fleetauth/crosscutting/exceptions.py
"""
===============================================================================
MODULE: Typed engine exceptions (internal errors)
===============================================================================

Goal
----
Keep internal errors coherent, with:
- a stable error_code (the client-facing taxonomy)
- an error_id for correlation with logs
- a human message that never leaks secrets or which factor failed

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Component:
  EngineError + subclasses

Responsibilities:
  - Standardize engine errors that are later mapped to HTTP
  - Carry retry_after for throttling errors
  - Generate error_id for tracing

Collaborators:
  - api/exception_handlers.py (maps to AppHTTPException)
  - crosscutting/logger.py
===============================================================================
"""

from __future__ import annotations

from uuid import uuid4


class EngineError(Exception):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      EngineError

    Responsibilities:
      - Base for every engine error
      - Provide error_code + error_id + message (+ retry_after)

    Collaborators:
      - api/exception_handlers.py
    ----------------------------------------------------------------------------
    """

    error_code: str = "ENGINE_ERROR"
    default_message: str = "Engine error"

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after: int | None = None,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message or self.default_message
        self.retry_after = retry_after
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
class InvalidCredentialsError(EngineError):
    """Bad device, identity or secret. The cause is never distinguished."""

    error_code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class LockedOutError(EngineError):
    """Cooldown active for the (identity, device) pair."""

    error_code = "LOCKED_OUT"
    default_message = "Too many failed attempts"


class RateLimitedError(EngineError):
    """Coarse per-IP/per-device counter exhausted."""

    error_code = "RATE_LIMITED"
    default_message = "Too many requests"


# ---------------------------------------------------------------------------
# Tokens (terminal, never retried)
# ---------------------------------------------------------------------------
class TokenError(EngineError):
    error_code = "TOKEN_INVALID"
    default_message = "Invalid token"


class TokenExpiredError(TokenError):
    error_code = "TOKEN_EXPIRED"
    default_message = "Token expired"


class TokenRevokedError(TokenError):
    error_code = "TOKEN_REVOKED"
    default_message = "Token revoked"


class TokenInvalidError(TokenError):
    error_code = "TOKEN_INVALID"
    default_message = "Invalid token"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------
class InsufficientPermissionsError(EngineError):
    error_code = "INSUFFICIENT_PERMISSIONS"
    default_message = "Insufficient permissions"


class IdentityNotFoundError(EngineError):
    error_code = "IDENTITY_NOT_FOUND"
    default_message = "Identity not found"


# ---------------------------------------------------------------------------
# Server-side conditions
# ---------------------------------------------------------------------------
class PolicyConfigError(EngineError):
    """Issuance preconditions unmet. Nothing was signed."""

    error_code = "POLICY_CONFIG_ERROR"
    default_message = "Policy configuration error"

    def __init__(self, message: str | None = None, *, problems=None, **kwargs):
        super().__init__(message, **kwargs)
        self.problems: list[str] = list(problems or [])


class SigningKeyUnavailableError(EngineError):
    """Fatal at startup: the policy signing key cannot be loaded."""

    error_code = "SIGNING_KEY_UNAVAILABLE"
    default_message = "Policy signing key unavailable"


class StoreUnavailableError(EngineError):
    """A store access timed out or failed. Callers fail closed."""

    error_code = "STORE_UNAVAILABLE"
    default_message = "State store unavailable"


# ---------------------------------------------------------------------------
# Device-side policy verification
# ---------------------------------------------------------------------------
class PolicyVerificationError(EngineError):
    error_code = "POLICY_REJECTED"
    default_message = "Policy rejected"


class PolicySignatureError(PolicyVerificationError):
    error_code = "POLICY_SIGNATURE_INVALID"
    default_message = "Policy signature does not verify"


class PolicyExpiredError(PolicyVerificationError):
    error_code = "POLICY_EXPIRED"
    default_message = "Policy expired"


class PolicyClockSkewError(PolicyVerificationError):
    error_code = "POLICY_CLOCK_SKEW"
    default_message = "Policy time anchor outside tolerated skew"


class PolicyStaleVersionError(PolicyVerificationError):
    error_code = "POLICY_STALE_VERSION"
    default_message = "Policy version is not newer than the accepted one"
