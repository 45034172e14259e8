"""
Name: Supervisor Override Tests

Responsibilities:
  - Grant requires a live session and the team supervisor PIN
  - A new grant supersedes (revokes) the previous override token
  - Revoke clears the session override and revokes its token
"""

from datetime import timedelta

import pytest

from fleetauth.crosscutting.exceptions import (
    InvalidCredentialsError,
    LockedOutError,
    TokenRevokedError,
)
from fleetauth.domain.entities import Session, TokenKind
from fleetauth.identity.override import (
    REASON_OVERRIDE_SUPERSEDED,
    SupervisorOverrideService,
)
from fleetauth.identity.tokens import REASON_OVERRIDE_REVOKED

from conftest import SUPERVISOR_PIN

pytestmark = pytest.mark.unit


@pytest.fixture
def overrides(authenticator, tokens, sessions, clock):
    return SupervisorOverrideService(
        authenticator=authenticator, tokens=tokens, sessions=sessions, clock=clock
    )


@pytest.fixture
def caller(tokens, sessions, clock):
    """Access claims of u1 logged in on d1 (session s1)."""
    now = clock.now()
    sessions.create_session(
        Session(
            id="s1",
            identity_id="u1",
            device_id="d1",
            team_id="t1",
            started_at=now,
            expires_at=now + timedelta(hours=8),
        )
    )
    access = tokens.issue(
        TokenKind.ACCESS, subject="u1", session_id="s1", device_id="d1", team_id="t1"
    )
    return access.claims


class TestGrant:
    def test_grant_issues_override_token(self, overrides, caller, tokens, clock):
        grant = overrides.grant(caller, supervisor_pin=SUPERVISOR_PIN)

        claims = tokens.verify(grant.token.token, TokenKind.OVERRIDE)
        assert claims.override is True
        assert claims.session_id == "s1"
        assert claims.device_id == "d1"
        assert grant.session.override_jti == claims.jti
        assert grant.session.override_active(clock.now())

    def test_wrong_pin_rejected(self, overrides, caller, sessions):
        with pytest.raises(InvalidCredentialsError):
            overrides.grant(caller, supervisor_pin="000000")
        assert sessions.get_session("s1").override_jti is None

    def test_wrong_pin_climbs_lockout_ladder(self, overrides, caller):
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                overrides.grant(caller, supervisor_pin="000000")
        with pytest.raises(LockedOutError):
            overrides.grant(caller, supervisor_pin=SUPERVISOR_PIN)

    def test_second_grant_supersedes_first(self, overrides, caller, tokens, ledger):
        first = overrides.grant(caller, supervisor_pin=SUPERVISOR_PIN)
        second = overrides.grant(caller, supervisor_pin=SUPERVISOR_PIN)

        with pytest.raises(TokenRevokedError):
            tokens.verify(first.token.token, TokenKind.OVERRIDE)
        assert ledger.get_entry(first.token.claims.jti).reason == REASON_OVERRIDE_SUPERSEDED
        tokens.verify(second.token.token, TokenKind.OVERRIDE)

    def test_ended_session_cannot_grant(self, overrides, caller, sessions, clock):
        sessions.end_session("s1", ended_at=clock.now(), reason="logout")
        with pytest.raises(TokenRevokedError):
            overrides.grant(caller, supervisor_pin=SUPERVISOR_PIN)

    def test_expired_session_cannot_grant(self, overrides, caller, clock):
        clock.advance(8 * 3600)
        with pytest.raises(TokenRevokedError):
            overrides.grant(caller, supervisor_pin=SUPERVISOR_PIN)

    def test_override_lapses_after_ttl(self, overrides, caller, sessions, clock):
        overrides.grant(caller, supervisor_pin=SUPERVISOR_PIN)
        clock.advance(120 * 60)
        assert not sessions.get_session("s1").override_active(clock.now())


class TestRevoke:
    def test_revoke_clears_override(self, overrides, caller, tokens, sessions, ledger):
        grant = overrides.grant(caller, supervisor_pin=SUPERVISOR_PIN)

        assert overrides.revoke("s1") == grant.token.claims.jti

        session = sessions.get_session("s1")
        assert session.override_jti is None
        assert session.override_until is None
        assert ledger.get_entry(grant.token.claims.jti).reason == REASON_OVERRIDE_REVOKED
        with pytest.raises(TokenRevokedError):
            tokens.verify(grant.token.token, TokenKind.OVERRIDE)

    def test_revoke_without_override_is_noop(self, overrides, caller):
        assert overrides.revoke("s1") is None

    def test_revoke_unknown_session_is_noop(self, overrides):
        assert overrides.revoke("missing") is None

    def test_grant_racing_revoke_never_outlives_it(
        self, overrides, caller, tokens, sessions, ledger, monkeypatch
    ):
        first = overrides.grant(caller, supervisor_pin=SUPERVISOR_PIN)
        set_override = sessions.set_override
        late = []

        def grant_lands_first(session_id, **kwargs):
            if kwargs["override_jti"] is None and not late:
                late.append(overrides.grant(caller, supervisor_pin=SUPERVISOR_PIN))
            return set_override(session_id, **kwargs)

        monkeypatch.setattr(sessions, "set_override", grant_lands_first)

        assert overrides.revoke("s1") is not None
        [second] = late

        assert overrides.revoke("s1") is None
        assert sessions.get_session("s1").override_jti is None
        for grant in (first, second):
            assert ledger.is_revoked(grant.token.claims.jti)
            with pytest.raises(TokenRevokedError):
                tokens.verify(grant.token.token, TokenKind.OVERRIDE)

    def test_grant_onto_session_ending_mid_attach_is_revoked(
        self, overrides, caller, sessions, ledger, clock, monkeypatch
    ):
        set_override = sessions.set_override
        attempted = []

        def logout_first(session_id, **kwargs):
            attempted.append(kwargs["override_jti"])
            sessions.end_session(session_id, ended_at=clock.now(), reason="logout")
            return set_override(session_id, **kwargs)

        monkeypatch.setattr(sessions, "set_override", logout_first)

        with pytest.raises(TokenRevokedError):
            overrides.grant(caller, supervisor_pin=SUPERVISOR_PIN)

        assert ledger.get_entry(attempted[0]).reason == REASON_OVERRIDE_REVOKED
        assert sessions.get_session("s1").override_jti is None
