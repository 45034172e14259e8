"""
===============================================================================
CRC CARD — identity/authenticator.py
===============================================================================

Module:
    Authenticator (device + principal + secret)

Responsibilities:
    - Reject unknown/disabled devices and principals, and principals not bound
      to the device's team, with one uniform INVALID_CREDENTIALS.
    - Consult the lockout tracker first: while LOCKED, fail fast with
      retry_after and never touch the verifier.
    - Apply coarse per-IP counters before any lookup, a per-device counter,
      and a per-device counter of failed PINs.
    - Compare the secret against the active verifier (Argon2, constant time),
      recording failures and resetting the counter on success.
    - Rehash verifiers created with outdated Argon2 parameters.
    - Verify supervisor PINs against the team's supervisor verifier, reusing
      the same lockout ladder under a separate key space.

Collaborators:
    - domain.repositories: IdentityDirectory, CredentialStore
    - identity.lockout: LockoutTracker, AttemptCounter
    - identity.credentials: VerifierHasher
    - crosscutting.logger (never logs the secret)

Notes:
    - Unknown principals pay for a dummy verification so response timing does
      not reveal which identities exist.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..crosscutting.config import Settings
from ..crosscutting.exceptions import InvalidCredentialsError
from ..crosscutting.logger import logger
from ..domain.entities import Identity, IdentityKind, Verifier, VerifierScope
from ..domain.repositories import CredentialStore, IdentityDirectory
from .credentials import VerifierHasher
from .lockout import AttemptCounter, LockoutTracker


@dataclass(frozen=True, slots=True)
class CounterLimits:
    login: int = 30
    pin: int = 10
    supervisor: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "CounterLimits":
        return cls(
            login=settings.login_rate_limit_max,
            pin=settings.pin_rate_limit_max,
            supervisor=settings.supervisor_rate_limit_max,
        )


@dataclass(frozen=True, slots=True)
class AuthenticatedPrincipal:
    """Handle returned on success; consumed by the token issuer."""

    identity: Identity
    device: Identity

    @property
    def team_id(self) -> Optional[str]:
        return self.device.team_id


def supervisor_subject(team_id: str) -> str:
    return f"supervisor:{team_id}"


class Authenticator:
    def __init__(
        self,
        *,
        directory: IdentityDirectory,
        credentials: CredentialStore,
        hasher: VerifierHasher,
        lockout: LockoutTracker,
        counter: AttemptCounter,
        limits: CounterLimits | None = None,
    ) -> None:
        self._directory = directory
        self._credentials = credentials
        self._hasher = hasher
        self._lockout = lockout
        self._counter = counter
        self._limits = limits or CounterLimits()

    # ------------------------------------------------------------------ login

    def authenticate(
        self,
        *,
        device_id: str,
        principal_id: str,
        secret: str,
        scope: VerifierScope = VerifierScope.USER_PIN,
        ip_address: str | None = None,
    ) -> AuthenticatedPrincipal:
        """
        Verify device + principal + secret.

        Raises:
            InvalidCredentialsError: any bad factor (cause never distinguished)
            LockedOutError: cooldown active for (principal, device)
            RateLimitedError: coarse counter exhausted
            StoreUnavailableError: a store could not answer in time
        """
        if ip_address:
            self._counter.hit(f"login:ip:{ip_address}", limit=self._limits.login)

        device = self._active_device(device_id)
        if device is None:
            logger.info("Login rejected", extra={"device_id": device_id, "reason": "device"})
            self._hasher.dummy_verify(secret)
            raise InvalidCredentialsError()

        self._lockout.check(principal_id, device_id)

        self._counter.hit(f"login:device:{device_id}", limit=self._limits.login)
        # Only failed PINs count against the device.
        pin_counter = f"pin:{device_id}" if scope == VerifierScope.USER_PIN else None
        if pin_counter:
            self._counter.check(pin_counter, limit=self._limits.pin)

        identity = self._directory.lookup_identity(principal_id)
        verifier = self._verifier_for(identity, device, scope)
        if verifier is None:
            self._hasher.dummy_verify(secret)
            self._fail(principal_id, device_id, reason="principal", counter=pin_counter)

        if not self._hasher.verify(secret, verifier.hash):
            self._fail(principal_id, device_id, reason="secret", counter=pin_counter)

        self._lockout.record_success(principal_id, device_id)
        self._maybe_rehash(verifier, secret)

        logger.info(
            "Login verified",
            extra={"identity_id": principal_id, "device_id": device_id},
        )
        return AuthenticatedPrincipal(identity=identity, device=device)

    # ------------------------------------------------------------------ supervisor

    def verify_supervisor_pin(
        self,
        *,
        device_id: str,
        pin: str,
        ip_address: str | None = None,
    ) -> Verifier:
        """
        Verify the team supervisor PIN for the device's team.

        Lockout key is (supervisor:{team_id}, device_id), so the ladder is the
        same one user PINs climb but never shares counters with them.
        """
        if ip_address:
            self._counter.hit(
                f"supervisor:ip:{ip_address}", limit=self._limits.supervisor
            )

        device = self._active_device(device_id)
        if device is None or not device.team_id:
            self._hasher.dummy_verify(pin)
            raise InvalidCredentialsError()

        subject = supervisor_subject(device.team_id)
        self._lockout.check(subject, device_id)

        verifier = self._credentials.get_active_verifier(
            device.team_id, VerifierScope.SUPERVISOR_PIN
        )
        if verifier is None:
            self._hasher.dummy_verify(pin)
            self._fail(subject, device_id, reason="no_supervisor_pin")

        if not self._hasher.verify(pin, verifier.hash):
            self._fail(subject, device_id, reason="supervisor_pin")

        self._lockout.record_success(subject, device_id)
        self._maybe_rehash(verifier, pin)
        return verifier

    # ------------------------------------------------------------------ internals

    def _active_device(self, device_id: str) -> Optional[Identity]:
        device = self._directory.lookup_identity(device_id)
        if device is None or not device.is_active or device.kind != IdentityKind.DEVICE:
            return None
        return device

    def _verifier_for(
        self, identity: Optional[Identity], device: Identity, scope: VerifierScope
    ) -> Optional[Verifier]:
        if identity is None or not identity.is_active:
            return None
        if identity.kind != IdentityKind.USER:
            return None
        if identity.team_id != device.team_id:
            return None
        return self._credentials.get_active_verifier(identity.id, scope)

    def _fail(
        self,
        principal_id: str,
        device_id: str,
        *,
        reason: str,
        counter: str | None = None,
    ) -> None:
        state = self._lockout.record_failure(principal_id, device_id)
        if counter:
            self._counter.hit(counter, limit=self._limits.pin)
        logger.info(
            "Login rejected",
            extra={
                "identity_id": principal_id,
                "device_id": device_id,
                "reason": reason,
                "failure_count": state.failure_count,
            },
        )
        raise InvalidCredentialsError()

    def _maybe_rehash(self, verifier: Verifier, secret: str) -> None:
        if not self._hasher.needs_rehash(verifier.hash):
            return
        self._credentials.rotate_verifier(
            verifier.owner_id, verifier.scope, self._hasher.hash(secret)
        )
        logger.info(
            "Verifier rehashed",
            extra={"owner_id": verifier.owner_id, "scope": verifier.scope.value},
        )
