"""
Name: HTTP Flow Tests (demo fleet end to end)

Responsibilities:
  - login -> whoami -> policy -> override -> refresh -> logout over HTTP
  - A fetched policy verifies on the device against the published key
  - Denials render as RFC7807 with the documented status codes

Notes:
  - The app runs its real lifespan against in-memory stores with the demo
    fleet seeded; Argon2 cost is lowered through the environment
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from fleetauth.api.main import create_app
from fleetauth.application.dev_seed_demo import DEMO
from fleetauth.container import reset_container
from fleetauth.domain.entities import SignedPolicy
from fleetauth.identity.policy import PolicyVerifier

pytestmark = pytest.mark.unit

_ENV = {
    "APP_ENV": "test",
    "DEV_SEED_DEMO": "true",
    "REDIS_URL": "",
    "POLICY_SIGN_PRIVATE_BASE64": "",
    "ARGON2_TIME_COST": "1",
    "ARGON2_MEMORY_COST": "8",
    "ARGON2_HASH_LEN": "16",
    "ARGON2_SALT_LEN": "8",
}


@pytest.fixture
def client(monkeypatch):
    for key, value in _ENV.items():
        monkeypatch.setenv(key, value)
    reset_container()
    with TestClient(create_app()) as test_client:
        yield test_client
    reset_container()


def _login(client, pin=DEMO.user_pin):
    return client.post(
        "/v1/auth/login",
        json={"device_id": DEMO.device_id, "user_id": DEMO.user_id, "pin": pin},
    )


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def login(client):
    response = _login(client)
    assert response.status_code == 200
    return response.json()


class TestHealth:
    def test_healthz(self, client):
        body = client.get("/healthz").json()
        assert body["ok"] is True
        assert body["store"] == "memory"


class TestSession:
    def test_login_returns_pair(self, login):
        assert login["token_type"] == "bearer"
        assert login["expires_in"] == 15 * 60
        assert login["identity"]["id"] == DEMO.user_id
        assert login["session_id"]

    def test_whoami(self, client, login):
        response = client.get("/v1/auth/whoami", headers=_bearer(login["access_token"]))

        assert response.status_code == 200
        body = response.json()
        assert body["identity"]["kind"] == "user"
        assert body["session"]["device_id"] == DEMO.device_id
        assert body["override_active"] is False

    def test_wrong_pin(self, client):
        response = _login(client, pin="000000")

        assert response.status_code == 401
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_lockout_after_five_failures(self, client):
        for _ in range(5):
            assert _login(client, pin="000000").status_code == 401

        response = _login(client)

        assert response.status_code == 423
        assert response.json()["code"] == "LOCKED_OUT"
        assert int(response.headers["retry-after"]) > 0

    def test_short_pin_is_a_validation_error(self, client):
        response = _login(client, pin="12")
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_missing_and_garbage_tokens(self, client):
        missing = client.get("/v1/auth/whoami")
        assert missing.status_code == 401
        assert missing.json()["code"] == "UNAUTHORIZED"

        garbage = client.get("/v1/auth/whoami", headers=_bearer("not-a-jwt"))
        assert garbage.status_code == 401
        assert garbage.json()["code"] == "TOKEN_INVALID"

    def test_refresh_token_is_not_an_access_token(self, client, login):
        response = client.get("/v1/auth/whoami", headers=_bearer(login["refresh_token"]))
        assert response.status_code == 401

    def test_refresh_rotates_once(self, client, login):
        first = client.post("/v1/auth/refresh", json={"refresh_token": login["refresh_token"]})
        assert first.status_code == 200
        assert first.json()["session_id"] == login["session_id"]

        old_access = client.get("/v1/auth/whoami", headers=_bearer(login["access_token"]))
        assert old_access.json()["code"] == "TOKEN_REVOKED"

        replay = client.post("/v1/auth/refresh", json={"refresh_token": login["refresh_token"]})
        assert replay.status_code == 401
        assert replay.json()["code"] == "TOKEN_REVOKED"

        new_access = first.json()["access_token"]
        assert client.get("/v1/auth/whoami", headers=_bearer(new_access)).status_code == 200

    def test_logout(self, client, login):
        headers = _bearer(login["access_token"])
        assert client.post("/v1/auth/logout", headers=headers).status_code == 204

        assert client.get("/v1/auth/whoami", headers=headers).status_code == 401
        refresh = client.post("/v1/auth/refresh", json={"refresh_token": login["refresh_token"]})
        assert refresh.status_code == 401


class TestPolicy:
    def test_public_key_is_public(self, client):
        body = client.get("/v1/policy/public-key").json()
        assert body["alg"] == "EdDSA"
        assert body["kid"] == "policy-signing-key"
        assert body["public_key"]

    def test_fetch_and_verify_on_device(self, client, login):
        headers = _bearer(login["access_token"])
        response = client.get(f"/v1/policy/{DEMO.device_id}", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["version"] == 1
        assert body["from_cache"] is False

        public_key = client.get("/v1/policy/public-key").json()["public_key"]
        verifier = PolicyVerifier(public_key, device_id=DEMO.device_id)
        payload = verifier.accept(
            SignedPolicy(payload=body["policy"], signature=body["signature"], kid=body["kid"]),
            local_now=datetime.now(timezone.utc),
        )
        assert payload["team_id"] == DEMO.team_id
        assert verifier.last_accepted_version == 1

    def test_second_fetch_is_cached(self, client, login):
        headers = _bearer(login["access_token"])
        client.get(f"/v1/policy/{DEMO.device_id}", headers=headers)
        again = client.get(f"/v1/policy/{DEMO.device_id}", headers=headers).json()

        assert again["from_cache"] is True
        assert again["version"] == 1

    def test_issue_history(self, client, login):
        headers = _bearer(login["access_token"])
        client.get(f"/v1/policy/{DEMO.device_id}", headers=headers)

        issues = client.get(f"/v1/policy/{DEMO.device_id}/issues", headers=headers).json()
        assert [issue["version"] for issue in issues] == [1]

    def test_unknown_device(self, client, login):
        response = client.get("/v1/policy/nope", headers=_bearer(login["access_token"]))
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_requires_token(self, client):
        assert client.get(f"/v1/policy/{DEMO.device_id}").status_code == 401


class TestSupervisorOverride:
    def _grant(self, client, login, pin=DEMO.supervisor_pin):
        return client.post(
            "/v1/supervisor/override/login",
            json={"supervisor_pin": pin},
            headers=_bearer(login["access_token"]),
        )

    def test_grant_status_revoke(self, client, login):
        grant = self._grant(client, login)
        assert grant.status_code == 200
        override = grant.json()
        assert override["session_id"] == login["session_id"]

        whoami = client.get("/v1/auth/whoami", headers=_bearer(login["access_token"]))
        assert whoami.json()["override_active"] is True

        status = client.get(
            "/v1/supervisor/override/status", headers=_bearer(override["override_token"])
        )
        assert status.status_code == 200
        assert status.json()["session_id"] == login["session_id"]

        revoke = client.post(
            "/v1/supervisor/override/revoke", headers=_bearer(login["access_token"])
        )
        assert revoke.json() == {"revoked": True, "session_id": login["session_id"]}

        after = client.get(
            "/v1/supervisor/override/status", headers=_bearer(override["override_token"])
        )
        assert after.status_code == 401
        assert after.json()["code"] == "TOKEN_REVOKED"

    def test_wrong_supervisor_pin(self, client, login):
        response = self._grant(client, login, pin="111111")
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_status_needs_override_token(self, client, login):
        response = client.get(
            "/v1/supervisor/override/status", headers=_bearer(login["access_token"])
        )
        assert response.status_code == 401


class TestAudit:
    def test_member_cannot_read_audit(self, client, login):
        response = client.get("/v1/audit/events", headers=_bearer(login["access_token"]))

        assert response.status_code == 403
        assert response.json()["code"] == "INSUFFICIENT_PERMISSIONS"
