"""
Name: Engine Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables at startup
  - Provide defaults that match the field deployment

Collaborators:
  - container.py: builds stores/services from these values
  - identity/*: TTLs, lockout ladder, policy parameters
  - api/main.py: validates production requirements in lifespan

Constraints:
  - No business logic, configuration only
  - Secrets are never logged

Notes:
  - Singleton via lru_cache (reset with get_settings.cache_clear() in tests)
  - Every limit is configurable per environment
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_SECRETS = {"dev-secret", "changeme", "change-me", "password", ""}

DEFAULT_SYSTEM_RESOURCES = "signing_keys,rate_limits,feature_flags,system_settings"


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Attributes:
        app_env: development/test/production
        jwt_access_secret: HMAC secret for access and override tokens
        jwt_refresh_secret: HMAC secret for refresh tokens
        access_ttl_minutes: Access token lifetime (default: 15)
        refresh_ttl_minutes: Refresh token lifetime (default: 7 days)
        override_ttl_minutes: Supervisor override token lifetime (default: 120)
        lockout_max_attempts: Consecutive failures before LOCKED (default: 5)
        lockout_base_cooldown_seconds: First cooldown step (default: 300)
        lockout_max_cooldown_seconds: Cooldown cap (default: 3600)
        policy_sign_private_base64: Ed25519 seed (32 bytes) or seed+public (64 bytes)
        max_clock_skew_sec: Tolerated device/server clock disagreement (default: 180)
        permission_cache_ttl_seconds: Decision cache TTL (default: 60)
        redis_url: Redis for lockout/revocation state (empty => in-memory)
        store_timeout_seconds: Bound for every store access (default: 2.0)
    """

    # Environment
    app_env: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    # Security - JWT
    jwt_access_secret: str = "dev-secret"
    jwt_refresh_secret: str = "dev-secret"
    jwt_issuer: str = "fleetauth-backend"
    jwt_audience: str = "fleetauth-client"
    access_ttl_minutes: int = 15
    refresh_ttl_minutes: int = 7 * 24 * 60
    override_ttl_minutes: int = 120
    session_timeout_hours: int = 8

    # Security - Argon2 verifiers
    argon2_time_cost: int = 3
    argon2_memory_cost: int = 65536
    argon2_parallelism: int = 1
    argon2_hash_len: int = 32
    argon2_salt_len: int = 16

    # Security - Lockout ladder (per identity+device)
    lockout_max_attempts: int = 5
    lockout_base_cooldown_seconds: int = 300
    lockout_max_cooldown_seconds: int = 3600
    lockout_window_seconds: int = 900

    # Security - Coarse counters (per IP / device)
    login_rate_limit_max: int = 30
    pin_rate_limit_max: int = 10
    supervisor_rate_limit_max: int = 10
    rate_limit_window_seconds: int = 900

    # Policy signing
    policy_sign_private_base64: str = ""
    policy_key_id: str = "policy-signing-key"
    policy_ttl_hours: int = 24
    max_clock_skew_sec: int = 180
    max_policy_age_sec: int = 86400
    policy_cache_anchor_window_sec: int = 90

    # Policy defaults (team config may override)
    gps_fix_interval_minutes: int = 3
    gps_min_displacement_m: int = 50
    gps_accuracy_threshold_m: int = 50
    gps_max_age_minutes: int = 10
    heartbeat_minutes: int = 10
    telemetry_batch_max: int = 50
    telemetry_retry_attempts: int = 5
    telemetry_upload_interval_minutes: int = 15
    policy_ui_blocked_message: str = (
        "Device use is outside the allowed working hours. Contact your supervisor."
    )

    # Authorization
    permission_cache_ttl_seconds: float = 60.0
    system_admin_role: str = "SYSTEM_ADMIN"
    system_resources: str = DEFAULT_SYSTEM_RESOURCES

    # Stores
    redis_url: str = ""
    store_timeout_seconds: float = 2.0

    # Dev Tools
    dev_seed_demo: bool = False

    @field_validator(
        "access_ttl_minutes",
        "refresh_ttl_minutes",
        "override_ttl_minutes",
        "lockout_max_attempts",
        "policy_ttl_hours",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("max_clock_skew_sec", "max_policy_age_sec")
    @classmethod
    def must_be_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @field_validator("store_timeout_seconds", "permission_cache_ttl_seconds")
    @classmethod
    def must_be_positive_float(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @model_validator(mode="after")
    def validate_lockout_ladder(self):
        if self.lockout_max_cooldown_seconds < self.lockout_base_cooldown_seconds:
            raise ValueError(
                "lockout_max_cooldown_seconds must be >= lockout_base_cooldown_seconds"
            )
        return self

    @model_validator(mode="after")
    def validate_security_requirements(self):
        if not self.is_production():
            return self

        for name in ("jwt_access_secret", "jwt_refresh_secret"):
            secret = (getattr(self, name) or "").strip()
            if secret in _INSECURE_SECRETS:
                raise ValueError(
                    f"{name.upper()} must be set to a strong, non-default value in production"
                )
            if len(secret) < 32:
                raise ValueError(f"{name.upper()} must be at least 32 characters")
        if self.jwt_access_secret == self.jwt_refresh_secret:
            raise ValueError("JWT access and refresh secrets must differ in production")
        if not self.policy_sign_private_base64.strip():
            raise ValueError("POLICY_SIGN_PRIVATE_BASE64 is required in production")
        return self

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    def get_system_resources(self) -> frozenset[str]:
        """Parse comma-separated SYSTEM-scoped resources."""
        return frozenset(
            item.strip() for item in self.system_resources.split(",") if item.strip()
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()
