"""
Name: Fetch Policy Use Case Tests

Responsibilities:
  - Own device is read in user-self scope, other devices in their team scope
  - policy:read denied without a grant (nothing signed)
  - Only fresh signatures are audited as policy.issue
"""

import pytest

from fleetauth.audit import POLICY_ISSUE
from fleetauth.application.usecases import FetchPolicyUseCase
from fleetauth.crosscutting.exceptions import (
    IdentityNotFoundError,
    InsufficientPermissionsError,
)
from fleetauth.domain.entities import ScopeLevel, TokenKind

pytestmark = pytest.mark.unit


@pytest.fixture
def fetch_policy(directory, resolver, signer, audit_repo):
    return FetchPolicyUseCase(
        directory=directory, resolver=resolver, signer=signer, audit_repository=audit_repo
    )


def _claims(tokens, subject, device_id, team_id="t1"):
    token = tokens.issue(
        TokenKind.ACCESS,
        subject=subject,
        session_id=f"s-{subject}",
        device_id=device_id,
        team_id=team_id,
    )
    return token.claims


class TestFetchPolicy:
    def test_member_reads_own_device(self, fetch_policy, assignment_service, tokens):
        assignment_service.assign_role("u1", "TEAM_MEMBER", ScopeLevel.TEAM, "t1")

        result = fetch_policy.execute(_claims(tokens, "u1", "d1"), "d1")

        assert result.policy.device_id == "d1"
        assert result.from_cache is False

    def test_member_cannot_read_other_device(self, fetch_policy, assignment_service, tokens, signer):
        assignment_service.assign_role("u1", "TEAM_MEMBER", ScopeLevel.TEAM, "t1")

        with pytest.raises(InsufficientPermissionsError):
            fetch_policy.execute(_claims(tokens, "u1", "d1"), "d2")
        assert signer.recent_issues("d2") == []

    def test_supervisor_reads_team_device(self, fetch_policy, assignment_service, tokens):
        assignment_service.assign_role("sup1", "FIELD_SUPERVISOR", ScopeLevel.TEAM, "t1")
        assert fetch_policy.execute(_claims(tokens, "sup1", None), "d1").policy.version == 1

    def test_supervisor_cannot_cross_teams(self, fetch_policy, assignment_service, tokens):
        assignment_service.assign_role("sup1", "FIELD_SUPERVISOR", ScopeLevel.TEAM, "t1")
        with pytest.raises(InsufficientPermissionsError):
            fetch_policy.execute(_claims(tokens, "sup1", None), "d2")

    def test_unknown_device(self, fetch_policy, tokens):
        with pytest.raises(IdentityNotFoundError):
            fetch_policy.execute(_claims(tokens, "u1", "d1"), "nope")

    def test_only_fresh_issues_are_audited(
        self, fetch_policy, assignment_service, tokens, audit_repo
    ):
        assignment_service.assign_role("u1", "TEAM_MEMBER", ScopeLevel.TEAM, "t1")
        claims = _claims(tokens, "u1", "d1")

        fetch_policy.execute(claims, "d1", ip_address="10.1.1.1")
        second = fetch_policy.execute(claims, "d1")

        assert second.from_cache is True
        [event] = audit_repo.list_events(action=POLICY_ISSUE)
        assert event.resource == "device:d1"
        assert event.metadata["version"] == 1

    def test_history_requires_same_grant(self, fetch_policy, assignment_service, tokens):
        assignment_service.assign_role("sup1", "FIELD_SUPERVISOR", ScopeLevel.TEAM, "t1")
        claims = _claims(tokens, "sup1", None)
        fetch_policy.execute(claims, "d1")

        assert [i.version for i in fetch_policy.history(claims, "d1")] == [1]
        with pytest.raises(InsufficientPermissionsError):
            fetch_policy.history(claims, "d2")
