"""
Name: Structured Logger Tests

Responsibilities:
  - Secrets are redacted by key at any depth; embedded JWTs are masked
  - JSON records carry the request context
"""

import json
import logging
import sys

import pytest

from fleetauth.context import clear_context, set_request_context
from fleetauth.crosscutting.logger import JSONFormatter, redact

pytestmark = pytest.mark.unit


class TestRedact:
    def test_sensitive_keys(self):
        out = redact({"pin": "123456", "Authorization": "Bearer x", "device_id": "d1"})
        assert out == {
            "pin": "***REDACTED***",
            "Authorization": "***REDACTED***",
            "device_id": "d1",
        }

    def test_sensitive_suffixes(self):
        out = redact(
            {"supervisor_pin": "1", "verifier_hash": "$argon2id$", "jwt_access_secret": "s"}
        )
        assert set(out.values()) == {"***REDACTED***"}

    def test_nested(self):
        out = redact({"req": {"refresh_token": "r", "user_id": "u1"}})
        assert out["req"] == {"refresh_token": "***REDACTED***", "user_id": "u1"}

    def test_embedded_jwt_is_masked(self):
        text = "verify failed for eyJhbGciOiJIUzI1NiJ9.eyJzdWIiOiJ1MSJ9.c2ln on d1"
        assert redact(text) == "verify failed for <jwt> on d1"

    def test_bytes_are_summarized(self):
        assert redact(b"\x00" * 32) == "<bytes 32B>"

    def test_other_objects_become_strings(self):
        assert redact({"ids": ("a", "b"), "n": 3, "at": object}) == {
            "ids": ["a", "b"],
            "n": 3,
            "at": str(object),
        }


class TestJSONFormatter:
    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord(
            name="fleetauth",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="login attempt",
            args=(),
            exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_extra_fields_are_redacted(self):
        line = JSONFormatter().format(self._record(pin="123456", user_id="u1"))
        payload = json.loads(line)

        assert payload["message"] == "login attempt"
        assert payload["level"] == "INFO"
        assert payload["pin"] == "***REDACTED***"
        assert payload["user_id"] == "u1"
        assert "123456" not in line

    def test_request_context_is_included(self):
        set_request_context(request_id="req-1", method="POST", path="/v1/auth/login")
        try:
            payload = json.loads(JSONFormatter().format(self._record()))
        finally:
            clear_context()

        assert payload["request_id"] == "req-1"
        assert payload["path"] == "/v1/auth/login"

    def test_exception_message_is_masked(self):
        try:
            raise ValueError("bad token eyJhbGciOiJFZERTQSJ9.eyJqdGkiOiJqMSJ9.c2ln")
        except ValueError:
            record = self._record()
            record.exc_info = sys.exc_info()

        payload = json.loads(JSONFormatter().format(record))

        assert payload["exception"]["type"] == "ValueError"
        assert payload["exception"]["message"] == "bad token <jwt>"
        assert "eyJqdGkiOiJqMSJ9" not in json.dumps(payload)
