"""
===============================================================================
CRC CARD — fleetauth/container.py (Composition Root / manual DI)
===============================================================================

Responsibilities:
  - Compose stores, services and use cases following DIP.
  - Expose factories for FastAPI (Depends) and for maintenance jobs.
  - Keep singletons with lru_cache (one engine state per process).
  - Centralize runtime decisions based on Settings:
      * REDIS_URL set   -> Redis lockout store + revocation ledger
      * REDIS_URL empty -> in-memory adapters
      * production      -> the policy signing key must be configured

Collaborators:
  - crosscutting.config.get_settings
  - domain.repositories.* (ports)
  - infrastructure.* (adapters)
  - identity.* (engine services), application.usecases.* (use cases)

Notes:
  - No business logic here.
  - No FastAPI imports (factories only).
  - reset_container() clears every singleton (tests).
===============================================================================
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from redis import Redis

from .application.usecases import (
    FetchPolicyUseCase,
    GrantOverrideUseCase,
    LoginUseCase,
    LogoutUseCase,
    RefreshUseCase,
    RevokeOverrideUseCase,
    WhoAmIUseCase,
)
from .crosscutting.config import get_settings
from .domain.repositories import (
    AssignmentStore,
    AuditEventRepository,
    CredentialStore,
    LockoutStore,
    PolicyIssueRepository,
    RevocationLedger,
    SessionStore,
)
from .domain.services import Clock
from .identity.authenticator import Authenticator, CounterLimits
from .identity.credentials import VerifierHasher
from .identity.lockout import AttemptCounter, LockoutPolicy, LockoutTracker
from .identity.override import SupervisorOverrideService
from .identity.permissions import (
    DEFAULT_ROLES,
    AssignmentService,
    PermissionResolver,
    RoleRegistry,
)
from .identity.policy import PolicyDefaults, PolicySigner
from .identity.tokens import TokenService, TokenSettings
from .infrastructure.cache import PermissionCache
from .infrastructure.clock import SystemClock
from .infrastructure.keys import PolicySigningKey, load_policy_signing_key
from .infrastructure.repositories import (
    InMemoryAssignmentStore,
    InMemoryAuditEventRepository,
    InMemoryCredentialStore,
    InMemoryIdentityDirectory,
    InMemoryLockoutStore,
    InMemoryPolicyIssueRepository,
    InMemoryRevocationLedger,
    InMemorySessionStore,
    RedisLockoutStore,
    RedisRevocationLedger,
    build_redis_client,
)

# =============================================================================
# Clock & shared clients
# =============================================================================


@lru_cache(maxsize=1)
def get_clock() -> Clock:
    return SystemClock()


@lru_cache(maxsize=1)
def get_redis_client() -> Optional[Redis]:
    """Redis client, or None when REDIS_URL is empty."""
    settings = get_settings()
    if not settings.redis_url.strip():
        return None
    return build_redis_client(
        settings.redis_url, timeout_seconds=settings.store_timeout_seconds
    )


def _timeout() -> float:
    return get_settings().store_timeout_seconds


# =============================================================================
# Stores (singletons)
# =============================================================================


@lru_cache(maxsize=1)
def get_identity_directory() -> InMemoryIdentityDirectory:
    """Directory owned by the CRUD layer; in-memory stand-in."""
    return InMemoryIdentityDirectory(timeout_seconds=_timeout())


@lru_cache(maxsize=1)
def get_assignment_store() -> AssignmentStore:
    return InMemoryAssignmentStore(timeout_seconds=_timeout())


@lru_cache(maxsize=1)
def get_credential_store() -> CredentialStore:
    return InMemoryCredentialStore(timeout_seconds=_timeout())


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    return InMemorySessionStore(timeout_seconds=_timeout())


@lru_cache(maxsize=1)
def get_policy_issue_repository() -> PolicyIssueRepository:
    return InMemoryPolicyIssueRepository(timeout_seconds=_timeout())


@lru_cache(maxsize=1)
def get_audit_repository() -> AuditEventRepository:
    return InMemoryAuditEventRepository()


@lru_cache(maxsize=1)
def get_lockout_store() -> LockoutStore:
    client = get_redis_client()
    if client is not None:
        return RedisLockoutStore(client, get_clock())
    return InMemoryLockoutStore(get_clock(), timeout_seconds=_timeout())


@lru_cache(maxsize=1)
def get_revocation_ledger() -> RevocationLedger:
    client = get_redis_client()
    if client is not None:
        return RedisRevocationLedger(client, get_clock())
    return InMemoryRevocationLedger(get_clock(), timeout_seconds=_timeout())


# =============================================================================
# Engine services
# =============================================================================


@lru_cache(maxsize=1)
def get_verifier_hasher() -> VerifierHasher:
    return VerifierHasher.from_settings(get_settings())


@lru_cache(maxsize=1)
def get_lockout_tracker() -> LockoutTracker:
    return LockoutTracker(
        get_lockout_store(), get_clock(), LockoutPolicy.from_settings(get_settings())
    )


@lru_cache(maxsize=1)
def get_attempt_counter() -> AttemptCounter:
    return AttemptCounter(
        get_lockout_store(), window_seconds=get_settings().rate_limit_window_seconds
    )


@lru_cache(maxsize=1)
def get_authenticator() -> Authenticator:
    return Authenticator(
        directory=get_identity_directory(),
        credentials=get_credential_store(),
        hasher=get_verifier_hasher(),
        lockout=get_lockout_tracker(),
        counter=get_attempt_counter(),
        limits=CounterLimits.from_settings(get_settings()),
    )


@lru_cache(maxsize=1)
def get_token_service() -> TokenService:
    return TokenService(
        TokenSettings.from_settings(get_settings()),
        get_revocation_ledger(),
        get_clock(),
    )


@lru_cache(maxsize=1)
def get_permission_cache() -> PermissionCache:
    return PermissionCache(
        get_clock(), ttl_seconds=get_settings().permission_cache_ttl_seconds
    )


@lru_cache(maxsize=1)
def get_role_registry() -> RoleRegistry:
    settings = get_settings()
    return RoleRegistry(
        DEFAULT_ROLES,
        system_admin_role=settings.system_admin_role,
        system_resources=settings.get_system_resources(),
    )


@lru_cache(maxsize=1)
def get_permission_resolver() -> PermissionResolver:
    return PermissionResolver(
        directory=get_identity_directory(),
        assignments=get_assignment_store(),
        registry=get_role_registry(),
        cache=get_permission_cache(),
        audit_repository=get_audit_repository(),
    )


@lru_cache(maxsize=1)
def get_assignment_service() -> AssignmentService:
    return AssignmentService(
        directory=get_identity_directory(),
        assignments=get_assignment_store(),
        registry=get_role_registry(),
        cache=get_permission_cache(),
    )


@lru_cache(maxsize=1)
def get_policy_signing_key() -> PolicySigningKey:
    """
    Raises:
        SigningKeyUnavailableError: fatal at startup (see api.main lifespan)
    """
    settings = get_settings()
    return load_policy_signing_key(
        settings.policy_sign_private_base64,
        kid=settings.policy_key_id,
        allow_ephemeral=not settings.is_production(),
    )


@lru_cache(maxsize=1)
def get_policy_signer() -> PolicySigner:
    return PolicySigner(
        directory=get_identity_directory(),
        issues=get_policy_issue_repository(),
        signing_key=get_policy_signing_key(),
        clock=get_clock(),
        defaults=PolicyDefaults.from_settings(get_settings()),
    )


@lru_cache(maxsize=1)
def get_override_service() -> SupervisorOverrideService:
    return SupervisorOverrideService(
        authenticator=get_authenticator(),
        tokens=get_token_service(),
        sessions=get_session_store(),
        clock=get_clock(),
    )


# =============================================================================
# Use cases (new instance per request; collaborators are singletons)
# =============================================================================


def get_login_use_case() -> LoginUseCase:
    return LoginUseCase(
        authenticator=get_authenticator(),
        tokens=get_token_service(),
        sessions=get_session_store(),
        clock=get_clock(),
        session_timeout=timedelta(hours=get_settings().session_timeout_hours),
        audit_repository=get_audit_repository(),
    )


def get_refresh_use_case() -> RefreshUseCase:
    return RefreshUseCase(
        tokens=get_token_service(),
        sessions=get_session_store(),
        directory=get_identity_directory(),
        clock=get_clock(),
        audit_repository=get_audit_repository(),
    )


def get_logout_use_case() -> LogoutUseCase:
    return LogoutUseCase(
        tokens=get_token_service(),
        sessions=get_session_store(),
        clock=get_clock(),
        audit_repository=get_audit_repository(),
    )


def get_whoami_use_case() -> WhoAmIUseCase:
    return WhoAmIUseCase(
        directory=get_identity_directory(),
        sessions=get_session_store(),
        clock=get_clock(),
    )


def get_fetch_policy_use_case() -> FetchPolicyUseCase:
    return FetchPolicyUseCase(
        directory=get_identity_directory(),
        resolver=get_permission_resolver(),
        signer=get_policy_signer(),
        audit_repository=get_audit_repository(),
    )


def get_grant_override_use_case() -> GrantOverrideUseCase:
    return GrantOverrideUseCase(
        overrides=get_override_service(),
        audit_repository=get_audit_repository(),
    )


def get_revoke_override_use_case() -> RevokeOverrideUseCase:
    return RevokeOverrideUseCase(
        overrides=get_override_service(),
        resolver=get_permission_resolver(),
        audit_repository=get_audit_repository(),
    )


_SINGLETONS = (
    get_clock,
    get_redis_client,
    get_identity_directory,
    get_assignment_store,
    get_credential_store,
    get_session_store,
    get_policy_issue_repository,
    get_audit_repository,
    get_lockout_store,
    get_revocation_ledger,
    get_verifier_hasher,
    get_lockout_tracker,
    get_attempt_counter,
    get_authenticator,
    get_token_service,
    get_permission_cache,
    get_role_registry,
    get_permission_resolver,
    get_assignment_service,
    get_policy_signing_key,
    get_policy_signer,
    get_override_service,
)


def reset_container() -> None:
    """Drop every cached singleton (settings included)."""
    for factory in _SINGLETONS:
        factory.cache_clear()
    get_settings.cache_clear()
