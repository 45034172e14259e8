"""
Name: Authenticator Tests

Responsibilities:
  - Uniform INVALID_CREDENTIALS for every bad factor
  - Lockout consulted before any verifier comparison
  - u1 on d1: 5 failures -> 6th attempt LOCKED_OUT even with the right PIN
  - Supervisor PIN verification and rehash-on-login
"""

from unittest.mock import MagicMock

import pytest
from argon2 import PasswordHasher

from fleetauth.crosscutting.exceptions import (
    InvalidCredentialsError,
    LockedOutError,
    RateLimitedError,
    StoreUnavailableError,
)
from fleetauth.domain.entities import Identity, IdentityKind, VerifierScope
from fleetauth.identity.authenticator import (
    Authenticator,
    CounterLimits,
    supervisor_subject,
)
from fleetauth.identity.credentials import VerifierHasher

from conftest import SUPERVISOR_PIN, USER_PIN

pytestmark = pytest.mark.unit


class TestAuthenticate:
    def test_success_returns_principal(self, authenticator):
        principal = authenticator.authenticate(
            device_id="d1", principal_id="u1", secret=USER_PIN
        )
        assert principal.identity.id == "u1"
        assert principal.device.id == "d1"
        assert principal.team_id == "t1"

    @pytest.mark.parametrize(
        "device_id,principal_id,secret",
        [
            ("d1", "u1", "000000"),  # wrong secret
            ("d1", "nobody", USER_PIN),  # unknown user
            ("d1", "u-disabled", USER_PIN),  # disabled user
            ("d1", "u2", USER_PIN),  # user from another team
            ("d1", "d2", USER_PIN),  # device used as principal
            ("unknown", "u1", USER_PIN),  # unknown device
            ("d-disabled", "u1", USER_PIN),  # disabled device
        ],
    )
    def test_every_bad_factor_is_invalid_credentials(
        self, authenticator, device_id, principal_id, secret
    ):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            authenticator.authenticate(
                device_id=device_id, principal_id=principal_id, secret=secret
            )
        assert exc_info.value.message == "Invalid credentials"

    def test_failure_is_recorded(self, authenticator, tracker):
        with pytest.raises(InvalidCredentialsError):
            authenticator.authenticate(device_id="d1", principal_id="u1", secret="nope")
        assert tracker.state("u1", "d1").failure_count == 1

    def test_unknown_principal_also_climbs_the_ladder(self, authenticator, tracker):
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                authenticator.authenticate(
                    device_id="d1", principal_id="ghost", secret=USER_PIN
                )
        with pytest.raises(LockedOutError):
            authenticator.authenticate(device_id="d1", principal_id="ghost", secret=USER_PIN)

    def test_success_resets_failures(self, authenticator, tracker):
        for _ in range(3):
            with pytest.raises(InvalidCredentialsError):
                authenticator.authenticate(device_id="d1", principal_id="u1", secret="x1x1")

        authenticator.authenticate(device_id="d1", principal_id="u1", secret=USER_PIN)
        assert tracker.state("u1", "d1").failure_count == 0

    def test_sixth_attempt_locked_out_even_with_correct_pin(self, authenticator):
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                authenticator.authenticate(
                    device_id="d1", principal_id="u1", secret="111111"
                )

        with pytest.raises(LockedOutError) as exc_info:
            authenticator.authenticate(device_id="d1", principal_id="u1", secret=USER_PIN)
        assert exc_info.value.retry_after > 0

    def test_locked_out_skips_verifier(self, directory, credentials, tracker, counter):
        hasher = MagicMock(spec=VerifierHasher)
        auth = Authenticator(
            directory=directory,
            credentials=credentials,
            hasher=hasher,
            lockout=tracker,
            counter=counter,
            limits=CounterLimits(login=100, pin=100, supervisor=100),
        )
        for _ in range(5):
            tracker.record_failure("u1", "d1")

        with pytest.raises(LockedOutError):
            auth.authenticate(device_id="d1", principal_id="u1", secret=USER_PIN)
        hasher.verify.assert_not_called()

    def test_lockout_is_per_device(self, authenticator, directory):
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                authenticator.authenticate(device_id="d1", principal_id="u1", secret="999999")

        # Same user, another device of the same team.
        directory.upsert_identity(
            Identity(id="d1b", kind=IdentityKind.DEVICE, team_id="t1", organization_id="o1")
        )
        principal = authenticator.authenticate(
            device_id="d1b", principal_id="u1", secret=USER_PIN
        )
        assert principal.device.id == "d1b"

    def test_lockout_store_timeout_fails_closed(self, directory, credentials, hasher, counter):
        tracker = MagicMock()
        tracker.check.side_effect = StoreUnavailableError()
        auth = Authenticator(
            directory=directory,
            credentials=credentials,
            hasher=hasher,
            lockout=tracker,
            counter=counter,
        )
        with pytest.raises(StoreUnavailableError):
            auth.authenticate(device_id="d1", principal_id="u1", secret=USER_PIN)

    def _limited(self, directory, credentials, hasher, tracker, counter, **limits):
        return Authenticator(
            directory=directory,
            credentials=credentials,
            hasher=hasher,
            lockout=tracker,
            counter=counter,
            limits=CounterLimits(**{"login": 100, "pin": 100, "supervisor": 100, **limits}),
        )

    def test_failed_pins_exhaust_device_counter(
        self, directory, credentials, hasher, tracker, counter
    ):
        auth = self._limited(directory, credentials, hasher, tracker, counter, pin=2)
        for _ in range(2):
            with pytest.raises(InvalidCredentialsError):
                auth.authenticate(device_id="d1", principal_id="u1", secret="000000")

        with pytest.raises(RateLimitedError):
            auth.authenticate(device_id="d1", principal_id="u1", secret=USER_PIN)

    def test_successful_logins_do_not_count_as_pin_failures(
        self, directory, credentials, hasher, tracker, counter
    ):
        auth = self._limited(directory, credentials, hasher, tracker, counter, pin=2)
        for _ in range(6):
            principal = auth.authenticate(device_id="d1", principal_id="u1", secret=USER_PIN)
            assert principal.identity.id == "u1"

    def test_ip_counter_covers_unknown_devices(
        self, directory, credentials, hasher, tracker, counter
    ):
        auth = self._limited(directory, credentials, hasher, tracker, counter, login=3)
        for n in range(3):
            with pytest.raises(InvalidCredentialsError):
                auth.authenticate(
                    device_id=f"bogus-{n}",
                    principal_id="u1",
                    secret=USER_PIN,
                    ip_address="10.0.0.9",
                )

        with pytest.raises(RateLimitedError):
            auth.authenticate(
                device_id="bogus-x", principal_id="u1", secret=USER_PIN, ip_address="10.0.0.9"
            )
        auth.authenticate(
            device_id="d1", principal_id="u1", secret=USER_PIN, ip_address="10.0.0.10"
        )

    def test_outdated_hash_is_rehashed(self, directory, credentials, tracker, counter):
        weak = PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)
        credentials.rotate_verifier("u1", VerifierScope.USER_PIN, weak.hash(USER_PIN))
        stronger = VerifierHasher(
            PasswordHasher(time_cost=2, memory_cost=16, parallelism=1)
        )
        auth = Authenticator(
            directory=directory,
            credentials=credentials,
            hasher=stronger,
            lockout=tracker,
            counter=counter,
        )

        auth.authenticate(device_id="d1", principal_id="u1", secret=USER_PIN)

        active = credentials.get_active_verifier("u1", VerifierScope.USER_PIN)
        assert not stronger.needs_rehash(active.hash)
        history = credentials.history("u1", VerifierScope.USER_PIN)
        assert sum(1 for v in history if v.active) == 1


class TestSupervisorPin:
    def test_correct_pin_returns_team_verifier(self, authenticator):
        verifier = authenticator.verify_supervisor_pin(device_id="d1", pin=SUPERVISOR_PIN)
        assert verifier.owner_id == "t1"
        assert verifier.scope == VerifierScope.SUPERVISOR_PIN

    def test_user_pin_is_not_a_supervisor_pin(self, authenticator):
        with pytest.raises(InvalidCredentialsError):
            authenticator.verify_supervisor_pin(device_id="d1", pin=USER_PIN)

    def test_team_without_supervisor_pin(self, authenticator):
        with pytest.raises(InvalidCredentialsError):
            authenticator.verify_supervisor_pin(device_id="d2", pin=SUPERVISOR_PIN)

    def test_supervisor_ladder_is_separate(self, authenticator, tracker):
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                authenticator.verify_supervisor_pin(device_id="d1", pin="000000")

        with pytest.raises(LockedOutError):
            authenticator.verify_supervisor_pin(device_id="d1", pin=SUPERVISOR_PIN)
        # User logins on the same device are unaffected.
        authenticator.authenticate(device_id="d1", principal_id="u1", secret=USER_PIN)
        assert tracker.state(supervisor_subject("t1"), "d1").failure_count == 5
