# =============================================================================
# FILE: infrastructure/repositories/in_memory/policy_issues.py
# =============================================================================
"""In-memory policy version counter and issue history."""

from __future__ import annotations

import threading
from typing import Dict, List

from ....domain.entities import PolicyIssue
from ._locking import bounded


class InMemoryPolicyIssueRepository:
    def __init__(self, *, timeout_seconds: float = 2.0) -> None:
        self._versions: Dict[str, int] = {}
        self._issues: Dict[str, List[PolicyIssue]] = {}
        self._lock = threading.Lock()
        self._timeout = timeout_seconds

    def next_version(self, device_id: str) -> int:
        with bounded(self._lock, self._timeout, "policy"):
            version = self._versions.get(device_id, 0) + 1
            self._versions[device_id] = version
            return version

    def record_issue(self, issue: PolicyIssue) -> None:
        with bounded(self._lock, self._timeout, "policy"):
            self._issues.setdefault(issue.device_id, []).append(issue)

    def list_issues(self, device_id: str, limit: int = 10) -> List[PolicyIssue]:
        with bounded(self._lock, self._timeout, "policy"):
            issues = list(self._issues.get(device_id, []))
        issues.sort(key=lambda i: (i.issued_at, i.version), reverse=True)
        return issues[:limit]
