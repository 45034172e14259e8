# =============================================================================
# FILE: infrastructure/repositories/in_memory/sessions.py
# =============================================================================
"""In-memory session store. NOT FOR PRODUCTION USE - data is lost on restart."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional

from ....domain.entities import Session
from ._locking import bounded


class InMemorySessionStore:
    def __init__(self, *, timeout_seconds: float = 2.0) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self._timeout = timeout_seconds

    def create_session(self, session: Session) -> None:
        with bounded(self._lock, self._timeout, "sessions"):
            self._sessions[session.id] = replace(session)

    def get_session(self, session_id: str) -> Optional[Session]:
        with bounded(self._lock, self._timeout, "sessions"):
            session = self._sessions.get(session_id)
            return replace(session) if session else None

    def update_tokens(
        self, session_id: str, *, access_jti: str, refresh_jti: str
    ) -> bool:
        with bounded(self._lock, self._timeout, "sessions"):
            session = self._sessions.get(session_id)
            if session is None or session.ended_at is not None:
                return False
            session.access_jti = access_jti
            session.refresh_jti = refresh_jti
            return True

    def set_override(
        self,
        session_id: str,
        *,
        override_jti: Optional[str],
        override_until: Optional[datetime],
        expected_jti: Optional[str] = None,
    ) -> bool:
        with bounded(self._lock, self._timeout, "sessions"):
            session = self._sessions.get(session_id)
            if session is None or session.override_jti != expected_jti:
                return False
            # Ended sessions can only have their override cleared.
            if override_jti is not None and session.ended_at is not None:
                return False
            session.override_jti = override_jti
            session.override_until = override_until
            return True

    def end_session(
        self, session_id: str, *, ended_at: datetime, reason: str
    ) -> Optional[Session]:
        with bounded(self._lock, self._timeout, "sessions"):
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if session.ended_at is None:
                session.ended_at = ended_at
                session.end_reason = reason
            return replace(session)
