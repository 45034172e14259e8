"""
Name: Dev Seed Demo (Local-only)

Responsibilities:
  - Provision a demo team, device, operator and supervisor PIN so a local
    run can exercise login -> policy -> override end to end.
  - Enforce safety guard: never in production.
  - Keep operations idempotent (safe to run multiple times).

CRC:
  Component: ensure_dev_demo
  Collaborators:
    - InMemoryIdentityDirectory (upsert_identity/upsert_team)
    - CredentialStore (get_active_verifier/rotate_verifier)
    - AssignmentService (assign_role)
    - VerifierHasher
    - Settings (dev_seed_demo/app_env)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..crosscutting.config import Settings
from ..crosscutting.logger import logger
from ..domain.entities import (
    Identity,
    IdentityKind,
    ScopeLevel,
    Team,
    VerifierScope,
)
from ..domain.repositories import AssignmentStore, CredentialStore
from ..identity.credentials import VerifierHasher
from ..identity.permissions import AssignmentService


class DirectoryWriter(Protocol):
    """R: Directory port needed by the seed task."""

    def lookup_identity(self, identity_id: str) -> Identity | None: ...

    def upsert_identity(self, identity: Identity) -> None: ...

    def upsert_team(self, team: Team) -> None: ...


@dataclass(frozen=True, slots=True)
class _DemoFleet:
    organization_id: str = "org-demo"
    region_id: str = "region-demo"
    team_id: str = "team-demo"
    device_id: str = "device-demo"
    user_id: str = "user-demo"
    user_pin: str = "123456"
    supervisor_pin: str = "654321"


DEMO = _DemoFleet()


def _assert_not_production(settings: Settings) -> None:
    if settings.is_production():
        raise RuntimeError(
            "FATAL: DEV_SEED_DEMO is enabled in production. "
            "Safety guard prevents seeding demo credentials."
        )


def _ensure_verifier(
    credentials: CredentialStore,
    hasher: VerifierHasher,
    *,
    owner_id: str,
    scope: VerifierScope,
    secret: str,
) -> None:
    if credentials.get_active_verifier(owner_id, scope) is not None:
        return
    credentials.rotate_verifier(owner_id, scope, hasher.hash(secret))
    logger.info(
        "Dev seed demo: verifier created",
        extra={"owner_id": owner_id, "scope": scope.value},
    )


def ensure_dev_demo(
    settings: Settings,
    *,
    directory: DirectoryWriter,
    credentials: CredentialStore,
    assignments: AssignmentStore,
    assignment_service: AssignmentService,
    hasher: VerifierHasher,
) -> bool:
    """
    Seed the demo fleet. Returns False when seeding is disabled.

    Raises:
        RuntimeError: DEV_SEED_DEMO enabled in production
    """
    if not settings.dev_seed_demo:
        return False
    _assert_not_production(settings)

    directory.upsert_team(
        Team(
            id=DEMO.team_id,
            name="Demo Team",
            region_id=DEMO.region_id,
            organization_id=DEMO.organization_id,
        )
    )
    for identity_id, kind, name in (
        (DEMO.device_id, IdentityKind.DEVICE, "Demo Device"),
        (DEMO.user_id, IdentityKind.USER, "Demo Operator"),
    ):
        if directory.lookup_identity(identity_id) is None:
            directory.upsert_identity(
                Identity(
                    id=identity_id,
                    kind=kind,
                    team_id=DEMO.team_id,
                    region_id=DEMO.region_id,
                    organization_id=DEMO.organization_id,
                    display_name=name,
                )
            )

    _ensure_verifier(
        credentials,
        hasher,
        owner_id=DEMO.user_id,
        scope=VerifierScope.USER_PIN,
        secret=DEMO.user_pin,
    )
    _ensure_verifier(
        credentials,
        hasher,
        owner_id=DEMO.team_id,
        scope=VerifierScope.SUPERVISOR_PIN,
        secret=DEMO.supervisor_pin,
    )

    if not assignments.list_assignments(DEMO.user_id):
        assignment_service.assign_role(
            DEMO.user_id, "TEAM_MEMBER", ScopeLevel.TEAM, DEMO.team_id
        )

    logger.info(
        "Dev seed demo: fleet ready",
        extra={"team_id": DEMO.team_id, "device_id": DEMO.device_id},
    )
    return True
