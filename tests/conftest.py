"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Configure the test environment (no .env, APP_ENV=test)
  - Provide a deterministic FakeClock
  - Provide a seeded two-team fleet and fully wired engine services

Notes:
  - Argon2 runs with minimal cost parameters so hashing stays fast
  - Fixtures are function-scoped: every test gets fresh engine state
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from argon2 import PasswordHasher

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fleetauth.crosscutting import config as app_config  # noqa: E402

app_config.Settings.model_config["env_file"] = None

os.environ.setdefault("APP_ENV", "test")

from fleetauth.domain.entities import (  # noqa: E402
    Identity,
    IdentityKind,
    IdentityStatus,
    Team,
    VerifierScope,
)
from fleetauth.identity.authenticator import Authenticator, CounterLimits  # noqa: E402
from fleetauth.identity.credentials import VerifierHasher  # noqa: E402
from fleetauth.identity.lockout import (  # noqa: E402
    AttemptCounter,
    LockoutPolicy,
    LockoutTracker,
)
from fleetauth.identity.permissions import (  # noqa: E402
    DEFAULT_ROLES,
    AssignmentService,
    PermissionResolver,
    RoleRegistry,
)
from fleetauth.identity.policy import PolicyDefaults, PolicySigner  # noqa: E402
from fleetauth.identity.tokens import TokenService, TokenSettings  # noqa: E402
from fleetauth.infrastructure.cache import PermissionCache  # noqa: E402
from fleetauth.infrastructure.keys import load_policy_signing_key  # noqa: E402
from fleetauth.infrastructure.repositories import (  # noqa: E402
    InMemoryAssignmentStore,
    InMemoryAuditEventRepository,
    InMemoryCredentialStore,
    InMemoryIdentityDirectory,
    InMemoryLockoutStore,
    InMemoryPolicyIssueRepository,
    InMemoryRevocationLedger,
    InMemorySessionStore,
)

USER_PIN = "246810"
SUPERVISOR_PIN = "975311"
SYSTEM_RESOURCES = frozenset(
    {"signing_keys", "rate_limits", "feature_flags", "system_settings"}
)


def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )


class FakeClock:
    """Deterministic clock; advance() moves monotonic and wall time together."""

    def __init__(self, start: datetime | None = None) -> None:
        self._mono = 1_000.0
        self._now = start or datetime(2026, 1, 5, 10, 0, 0, tzinfo=timezone.utc)

    def monotonic(self) -> float:
        return self._mono

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._mono += seconds
        self._now += timedelta(seconds=seconds)


# ============================================================================
# Infrastructure
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hasher() -> VerifierHasher:
    return VerifierHasher(
        PasswordHasher(time_cost=1, memory_cost=8, parallelism=1, hash_len=16, salt_len=8)
    )


@pytest.fixture
def directory() -> InMemoryIdentityDirectory:
    """
    Two teams in one organization:
      t1 (region r1): device d1, users u1 + sup1
      t2 (region r2): device d2, user u2
    plus a disabled user and a disabled device in t1.
    """
    directory = InMemoryIdentityDirectory()
    directory.upsert_team(
        Team(id="t1", name="Team One", region_id="r1", organization_id="o1")
    )
    directory.upsert_team(
        Team(id="t2", name="Team Two", region_id="r2", organization_id="o1")
    )
    for identity_id, kind, team, region in (
        ("d1", IdentityKind.DEVICE, "t1", "r1"),
        ("d2", IdentityKind.DEVICE, "t2", "r2"),
        ("u1", IdentityKind.USER, "t1", "r1"),
        ("sup1", IdentityKind.USER, "t1", "r1"),
        ("u2", IdentityKind.USER, "t2", "r2"),
        ("admin", IdentityKind.USER, None, None),
    ):
        directory.upsert_identity(
            Identity(
                id=identity_id,
                kind=kind,
                team_id=team,
                region_id=region,
                organization_id="o1",
            )
        )
    directory.upsert_identity(
        Identity(
            id="u-disabled",
            kind=IdentityKind.USER,
            team_id="t1",
            organization_id="o1",
            status=IdentityStatus.DISABLED,
        )
    )
    directory.upsert_identity(
        Identity(
            id="d-disabled",
            kind=IdentityKind.DEVICE,
            team_id="t1",
            organization_id="o1",
            status=IdentityStatus.DISABLED,
        )
    )
    return directory


@pytest.fixture
def credentials(hasher: VerifierHasher) -> InMemoryCredentialStore:
    store = InMemoryCredentialStore()
    for owner in ("u1", "u2", "sup1", "u-disabled"):
        store.rotate_verifier(owner, VerifierScope.USER_PIN, hasher.hash(USER_PIN))
    store.rotate_verifier("t1", VerifierScope.SUPERVISOR_PIN, hasher.hash(SUPERVISOR_PIN))
    return store


@pytest.fixture
def lockout_store(clock: FakeClock) -> InMemoryLockoutStore:
    return InMemoryLockoutStore(clock)


@pytest.fixture
def ledger(clock: FakeClock) -> InMemoryRevocationLedger:
    return InMemoryRevocationLedger(clock)


@pytest.fixture
def sessions() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def audit_repo() -> InMemoryAuditEventRepository:
    return InMemoryAuditEventRepository()


@pytest.fixture
def assignments() -> InMemoryAssignmentStore:
    return InMemoryAssignmentStore()


# ============================================================================
# Engine services
# ============================================================================


@pytest.fixture
def lockout_policy() -> LockoutPolicy:
    return LockoutPolicy(
        max_attempts=5,
        base_cooldown_seconds=300,
        max_cooldown_seconds=3600,
        window_seconds=900,
    )


@pytest.fixture
def tracker(lockout_store, clock, lockout_policy) -> LockoutTracker:
    return LockoutTracker(lockout_store, clock, lockout_policy)


@pytest.fixture
def counter(lockout_store) -> AttemptCounter:
    return AttemptCounter(lockout_store, window_seconds=900)


@pytest.fixture
def authenticator(directory, credentials, hasher, tracker, counter) -> Authenticator:
    return Authenticator(
        directory=directory,
        credentials=credentials,
        hasher=hasher,
        lockout=tracker,
        counter=counter,
        limits=CounterLimits(login=100, pin=100, supervisor=100),
    )


@pytest.fixture
def token_settings() -> TokenSettings:
    return TokenSettings(
        access_secret="access-secret-for-tests-0123456789abcdef",
        refresh_secret="refresh-secret-for-tests-0123456789abcdef",
        issuer="fleetauth-backend",
        audience="fleetauth-client",
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
        override_ttl=timedelta(minutes=120),
    )


@pytest.fixture
def tokens(token_settings, ledger, clock) -> TokenService:
    return TokenService(token_settings, ledger, clock)


@pytest.fixture
def permission_cache(clock) -> PermissionCache:
    return PermissionCache(clock, ttl_seconds=60)


@pytest.fixture
def registry() -> RoleRegistry:
    return RoleRegistry(
        DEFAULT_ROLES,
        system_admin_role="SYSTEM_ADMIN",
        system_resources=SYSTEM_RESOURCES,
    )


@pytest.fixture
def resolver(directory, assignments, registry, permission_cache, audit_repo):
    return PermissionResolver(
        directory=directory,
        assignments=assignments,
        registry=registry,
        cache=permission_cache,
        audit_repository=audit_repo,
    )


@pytest.fixture
def assignment_service(directory, assignments, registry, permission_cache):
    return AssignmentService(
        directory=directory,
        assignments=assignments,
        registry=registry,
        cache=permission_cache,
    )


@pytest.fixture
def signing_key():
    return load_policy_signing_key("", kid="test-kid", allow_ephemeral=True)


@pytest.fixture
def policy_defaults() -> PolicyDefaults:
    return PolicyDefaults.from_settings(app_config.Settings())


@pytest.fixture
def signer(directory, signing_key, clock, policy_defaults) -> PolicySigner:
    return PolicySigner(
        directory=directory,
        issues=InMemoryPolicyIssueRepository(),
        signing_key=signing_key,
        clock=clock,
        defaults=policy_defaults,
    )
