"""
===============================================================================
CRC CARD — identity/policy.py
===============================================================================

Module:
    Policy Signer / Verifier (Ed25519 over canonical JSON)

Responsibilities:
    - Assemble the per-device policy document from the team configuration,
      engine defaults, a server time anchor and a strictly increasing version.
    - Validate the assembled payload, reporting every problem at once
      (POLICY_CONFIG_ERROR; nothing is signed on failure).
    - Sign the canonical serialization and record the issue.
    - Cache the signed document per device.
    - Device side: verify signature, time-anchor skew, expiry, age and
      version monotonicity.

Collaborators:
    - infrastructure.keys: PolicySigningKey, verify_signature
    - domain.repositories: IdentityDirectory, PolicyIssueRepository
    - domain.services.Clock
    - crosscutting.config.Settings: TTL, skew/age bounds, defaults

Cache rule:
    - A cached document is served until the earlier of its expires_at and
      server_now + anchor_window_seconds. Past that point it is re-signed with
      a fresh anchor and a bumped version, so a served anchor is never older
      than the window (which stays below the device skew tolerance).
===============================================================================
"""

from __future__ import annotations

import copy
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from ..crosscutting.config import Settings
from ..crosscutting.exceptions import (
    IdentityNotFoundError,
    PolicyClockSkewError,
    PolicyConfigError,
    PolicyExpiredError,
    PolicySignatureError,
    PolicyStaleVersionError,
)
from ..crosscutting.logger import logger
from ..domain.entities import IdentityKind, PolicyIssue, SignedPolicy, Team
from ..domain.repositories import IdentityDirectory, PolicyIssueRepository
from ..domain.services import Clock
from ..infrastructure.keys import PolicySigningKey, load_public_key, verify_signature

SIGNATURE_ALGORITHM = "EdDSA"

VALID_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
PIN_MODES = ("server_verify", "local_verify")

DEFAULT_ALLOWED_WINDOWS: List[Dict[str, Any]] = [
    {"days": ["Mon", "Tue", "Wed", "Thu", "Fri"], "start": "08:00", "end": "19:30"},
    {"days": ["Sat"], "start": "09:00", "end": "15:00"},
]


# ---------------------------------------------------------------------------
# Canonical form & timestamps
# ---------------------------------------------------------------------------


def canonical_json(payload: Dict[str, Any]) -> bytes:
    """Sorted keys, no whitespace, UTF-8. Signer and verifier share this."""
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def format_timestamp(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# ---------------------------------------------------------------------------
# Payload assembly
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PolicyDefaults:
    """Engine-wide defaults; a team's policy overrides them section by section."""

    ttl: timedelta
    max_clock_skew_sec: int
    max_policy_age_sec: int
    anchor_window_sec: int
    grace_minutes: int
    supervisor_override_minutes: int
    pin_min_length: int
    pin_retry_limit: int
    pin_cooldown_seconds: int
    gps: Dict[str, int]
    telemetry: Dict[str, int]
    blocked_message: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "PolicyDefaults":
        return cls(
            ttl=timedelta(hours=settings.policy_ttl_hours),
            max_clock_skew_sec=settings.max_clock_skew_sec,
            max_policy_age_sec=settings.max_policy_age_sec,
            anchor_window_sec=settings.policy_cache_anchor_window_sec,
            grace_minutes=10,
            supervisor_override_minutes=settings.override_ttl_minutes,
            pin_min_length=6,
            pin_retry_limit=settings.lockout_max_attempts,
            pin_cooldown_seconds=settings.lockout_base_cooldown_seconds,
            gps={
                "active_fix_interval_minutes": settings.gps_fix_interval_minutes,
                "min_displacement_m": settings.gps_min_displacement_m,
                "accuracy_threshold_m": settings.gps_accuracy_threshold_m,
                "max_age_minutes": settings.gps_max_age_minutes,
            },
            telemetry={
                "heartbeat_minutes": settings.heartbeat_minutes,
                "batch_max": settings.telemetry_batch_max,
                "retry_attempts": settings.telemetry_retry_attempts,
                "upload_interval_minutes": settings.telemetry_upload_interval_minutes,
            },
            blocked_message=settings.policy_ui_blocked_message,
        )


def _section(team: Team, name: str, base: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    override = team.policy.get(name)
    if isinstance(override, dict):
        merged.update(override)
    elif override is not None:
        # Keep the malformed value so validation reports it.
        return override
    return merged


def build_policy_payload(
    *,
    device_id: str,
    team: Team,
    version: int,
    server_now: datetime,
    defaults: PolicyDefaults,
) -> Dict[str, Any]:
    """Assemble the unsigned policy document."""
    session = _section(
        team,
        "session",
        {
            "allowed_windows": copy.deepcopy(DEFAULT_ALLOWED_WINDOWS),
            "grace_minutes": defaults.grace_minutes,
            "supervisor_override_minutes": defaults.supervisor_override_minutes,
        },
    )
    expires_at = server_now + defaults.ttl
    return {
        "version": version,
        "device_id": device_id,
        "team_id": team.id,
        "tz": team.timezone,
        "time_anchor": {
            "server_now_utc": format_timestamp(server_now),
            "max_clock_skew_sec": defaults.max_clock_skew_sec,
            "max_policy_age_sec": defaults.max_policy_age_sec,
        },
        "session": session,
        "pin": _section(
            team,
            "pin",
            {
                "mode": "server_verify",
                "min_length": defaults.pin_min_length,
                "retry_limit": defaults.pin_retry_limit,
                "cooldown_seconds": defaults.pin_cooldown_seconds,
            },
        ),
        "gps": _section(team, "gps", defaults.gps),
        "telemetry": _section(team, "telemetry", defaults.telemetry),
        "ui": _section(team, "ui", {"blocked_message": defaults.blocked_message}),
        "meta": {
            "issued_at": format_timestamp(server_now),
            "expires_at": format_timestamp(expires_at),
        },
    }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_hhmm(value: Any) -> bool:
    if not isinstance(value, str) or len(value) != 5 or value[2] != ":":
        return False
    hh, mm = value[:2], value[3:]
    return hh.isdigit() and mm.isdigit() and int(hh) < 24 and int(mm) < 60


def _validate_windows(windows: Any, errors: List[str]) -> None:
    if not isinstance(windows, list) or not windows:
        errors.append("Missing session.allowed_windows")
        return
    for i, window in enumerate(windows):
        if not isinstance(window, dict):
            errors.append(f"Invalid session.allowed_windows[{i}]")
            continue
        days = window.get("days")
        if not isinstance(days, list) or not days or any(d not in VALID_DAYS for d in days):
            errors.append(f"Invalid session.allowed_windows[{i}].days")
        start, end = window.get("start"), window.get("end")
        if not _is_hhmm(start) or not _is_hhmm(end):
            errors.append(f"Invalid session.allowed_windows[{i}] start/end")
        elif start >= end:
            errors.append(f"session.allowed_windows[{i}] start must precede end")


def validate_policy_payload(payload: Dict[str, Any]) -> List[str]:
    """Return every problem found; an empty list means the payload is valid."""
    errors: List[str] = []

    if not isinstance(payload.get("version"), int) or payload["version"] < 1:
        errors.append("Invalid version")
    if not payload.get("device_id"):
        errors.append("Missing device_id")
    if not payload.get("team_id"):
        errors.append("Missing team_id")
    if not isinstance(payload.get("tz"), str) or not payload["tz"].strip():
        errors.append("Missing tz")

    anchor = payload.get("time_anchor")
    if not isinstance(anchor, dict):
        errors.append("Missing time_anchor")
    else:
        if not isinstance(anchor.get("server_now_utc"), str):
            errors.append("Invalid time_anchor.server_now_utc")
        for field in ("max_clock_skew_sec", "max_policy_age_sec"):
            if not _is_number(anchor.get(field)) or anchor[field] < 0:
                errors.append(f"Invalid time_anchor.{field}")

    session = payload.get("session")
    if not isinstance(session, dict):
        errors.append("Missing session configuration")
    else:
        _validate_windows(session.get("allowed_windows"), errors)
        for field in ("grace_minutes", "supervisor_override_minutes"):
            if not _is_number(session.get(field)) or session[field] < 0:
                errors.append(f"Invalid session.{field}")

    pin = payload.get("pin")
    if not isinstance(pin, dict):
        errors.append("Missing pin configuration")
    else:
        if pin.get("mode") not in PIN_MODES:
            errors.append("Invalid pin mode")
        if not _is_number(pin.get("min_length")) or pin["min_length"] < 4:
            errors.append("Invalid pin min_length")
        if not _is_number(pin.get("retry_limit")) or pin["retry_limit"] < 1:
            errors.append("Invalid pin retry_limit")
        if not _is_number(pin.get("cooldown_seconds")) or pin["cooldown_seconds"] < 0:
            errors.append("Invalid pin cooldown_seconds")

    gps = payload.get("gps")
    if not isinstance(gps, dict):
        errors.append("Missing gps configuration")
    else:
        for field in ("active_fix_interval_minutes", "accuracy_threshold_m", "max_age_minutes"):
            if not _is_number(gps.get(field)) or gps[field] <= 0:
                errors.append(f"Invalid gps.{field}")
        if not _is_number(gps.get("min_displacement_m")) or gps["min_displacement_m"] < 0:
            errors.append("Invalid gps.min_displacement_m")

    telemetry = payload.get("telemetry")
    if not isinstance(telemetry, dict):
        errors.append("Missing telemetry configuration")
    else:
        for field in ("heartbeat_minutes", "batch_max"):
            if not _is_number(telemetry.get(field)) or telemetry[field] <= 0:
                errors.append(f"Invalid telemetry.{field}")
        for field in ("retry_attempts", "upload_interval_minutes"):
            if not _is_number(telemetry.get(field)) or telemetry[field] < 0:
                errors.append(f"Invalid telemetry.{field}")

    ui = payload.get("ui")
    if not isinstance(ui, dict):
        errors.append("Missing ui configuration")
    elif not isinstance(ui.get("blocked_message"), str) or not ui["blocked_message"].strip():
        errors.append("Invalid ui.blocked_message")

    meta = payload.get("meta")
    if not isinstance(meta, dict) or not meta.get("issued_at") or not meta.get("expires_at"):
        errors.append("Missing meta.issued_at/expires_at")

    return errors


# ---------------------------------------------------------------------------
# Signer (server side)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _CachedPolicy:
    signed: SignedPolicy
    deadline: float  # monotonic


class PolicySigner:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      PolicySigner

    Responsibilities:
      - issue_for_device(): cache hit, or assemble + validate + sign + record
      - invalidate(): drop one device (or all) from the cache
      - public_key_info() / recent_issues()

    Collaborators:
      - IdentityDirectory, PolicyIssueRepository, PolicySigningKey, Clock
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        *,
        directory: IdentityDirectory,
        issues: PolicyIssueRepository,
        signing_key: PolicySigningKey,
        clock: Clock,
        defaults: PolicyDefaults,
    ) -> None:
        self._directory = directory
        self._issues = issues
        self._key = signing_key
        self._clock = clock
        self._defaults = defaults
        self._cache: Dict[str, _CachedPolicy] = {}
        self._lock = threading.Lock()

    def issue_for_device(
        self, device_id: str, *, ip_address: Optional[str] = None
    ) -> Tuple[SignedPolicy, bool]:
        """
        Return (signed policy, served_from_cache).

        Raises:
            IdentityNotFoundError: unknown or inactive device
            PolicyConfigError: team missing or payload invalid (nothing signed)
        """
        device = self._directory.lookup_identity(device_id)
        if device is None or not device.is_active or device.kind != IdentityKind.DEVICE:
            raise IdentityNotFoundError("Device not found or inactive")

        cached = self._cached(device_id)
        if cached is not None:
            return cached, True

        team = self._directory.get_team(device.team_id) if device.team_id else None
        if team is None:
            raise PolicyConfigError(
                "Device team configuration is missing", problems=["Missing team"]
            )

        signed = self._sign_new(device_id, team, ip_address=ip_address)
        return signed, False

    def invalidate(self, device_id: Optional[str] = None) -> None:
        with self._lock:
            if device_id is None:
                self._cache.clear()
            else:
                self._cache.pop(device_id, None)

    def public_key_info(self) -> Dict[str, str]:
        return {
            "kid": self._key.kid,
            "alg": SIGNATURE_ALGORITHM,
            "public_key": self._key.public_key_base64(),
        }

    def recent_issues(self, device_id: str, limit: int = 10) -> List[PolicyIssue]:
        return self._issues.list_issues(device_id, limit)

    # ------------------------------------------------------------------ internals

    def _cached(self, device_id: str) -> Optional[SignedPolicy]:
        now = self._clock.monotonic()
        with self._lock:
            entry = self._cache.get(device_id)
            if entry is None:
                return None
            if now >= entry.deadline:
                del self._cache[device_id]
                return None
            return entry.signed

    def _sign_new(
        self, device_id: str, team: Team, *, ip_address: Optional[str]
    ) -> SignedPolicy:
        # Versions are allocated only for payloads that validate.
        server_now = self._clock.now().replace(microsecond=0)
        draft = build_policy_payload(
            device_id=device_id,
            team=team,
            version=1,
            server_now=server_now,
            defaults=self._defaults,
        )
        problems = validate_policy_payload(draft)
        if problems:
            logger.error(
                "Policy validation failed",
                extra={"device_id": device_id, "team_id": team.id, "problems": problems},
            )
            raise PolicyConfigError("; ".join(problems), problems=problems)

        version = self._issues.next_version(device_id)
        payload = dict(draft, version=version)
        signed = SignedPolicy(
            payload=payload,
            signature=self._key.sign(canonical_json(payload)),
            kid=self._key.kid,
        )

        expires_at = server_now + self._defaults.ttl
        self._issues.record_issue(
            PolicyIssue(
                id=str(uuid4()),
                device_id=device_id,
                version=version,
                kid=self._key.kid,
                issued_at=server_now,
                expires_at=expires_at,
                ip_address=ip_address,
            )
        )

        lifetime = min(
            self._defaults.ttl.total_seconds(), float(self._defaults.anchor_window_sec)
        )
        deadline = self._clock.monotonic() + lifetime
        with self._lock:
            current = self._cache.get(device_id)
            if current is None or current.signed.version < version:
                self._cache[device_id] = _CachedPolicy(signed=signed, deadline=deadline)

        logger.info(
            "Policy issued",
            extra={
                "device_id": device_id,
                "team_id": team.id,
                "policy_version": version,
                "kid": self._key.kid,
            },
        )
        return signed


# ---------------------------------------------------------------------------
# Verifier (device side)
# ---------------------------------------------------------------------------


class PolicyVerifier:
    """
    Device-side acceptance of signed policies.

    Holds the pinned public key and the last accepted version; accept() only
    advances that version after every check passed.
    """

    def __init__(
        self,
        public_key: Ed25519PublicKey | str,
        *,
        device_id: Optional[str] = None,
        last_accepted_version: int = 0,
    ) -> None:
        self._public_key = (
            load_public_key(public_key) if isinstance(public_key, str) else public_key
        )
        self._device_id = device_id
        self.last_accepted_version = last_accepted_version

    def verify(self, signed: SignedPolicy, *, local_now: datetime) -> Dict[str, Any]:
        payload = signed.payload
        if not verify_signature(self._public_key, canonical_json(payload), signed.signature):
            raise PolicySignatureError()

        if self._device_id is not None and payload.get("device_id") != self._device_id:
            raise PolicySignatureError("Policy was issued for another device")

        try:
            anchor = payload["time_anchor"]
            server_now = parse_timestamp(anchor["server_now_utc"])
            max_skew = float(anchor["max_clock_skew_sec"])
            max_age = float(anchor["max_policy_age_sec"])
            issued_at = parse_timestamp(payload["meta"]["issued_at"])
            expires_at = parse_timestamp(payload["meta"]["expires_at"])
            version = int(payload["version"])
        except (KeyError, TypeError, ValueError) as exc:
            raise PolicySignatureError("Policy payload is malformed") from exc

        if abs((local_now - server_now).total_seconds()) > max_skew:
            raise PolicyClockSkewError()
        if local_now > expires_at:
            raise PolicyExpiredError()
        if (local_now - issued_at).total_seconds() > max_age:
            raise PolicyExpiredError("Policy exceeds its maximum age")
        if version <= self.last_accepted_version:
            raise PolicyStaleVersionError()

        return payload

    def accept(self, signed: SignedPolicy, *, local_now: datetime) -> Dict[str, Any]:
        payload = self.verify(signed, local_now=local_now)
        self.last_accepted_version = int(payload["version"])
        return payload
