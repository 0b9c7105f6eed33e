"""Tests for the credential redaction log processor and request context."""

from shared.observability import RequestContextManager, request_id_var, user_id_var
from shared.observability.logging import REDACTED, add_request_context, redact_credentials


def run(event_dict: dict) -> dict:
    return redact_credentials(None, "info", event_dict)


class TestRedactCredentials:
    """Test credentials never reach the renderer."""

    def test_sensitive_keys_masked(self) -> None:
        result = run({"event": "login", "authorization": "Bearer abc.def.ghi", "Token": "x"})
        assert result["authorization"] == REDACTED
        assert result["Token"] == REDACTED

    def test_inline_bearer_masked(self) -> None:
        result = run({"event": "Rejected header BEARER eyJhbGciOi.payload.sig for user 7"})
        assert "eyJhbGciOi" not in result["event"]
        assert result["event"].endswith("for user 7")

    def test_identifiers_untouched(self) -> None:
        event = {"event": "Role assigned to user", "target_user_id": 7, "role_id": 4}
        assert run(dict(event)) == event

    def test_missing_values_kept(self) -> None:
        assert run({"event": "x", "token": None})["token"] is None


class TestRequestContext:
    """Test context variables are bound and restored."""

    def test_context_bound_and_reset(self) -> None:
        with RequestContextManager(request_id="req-1", user_id="7"):
            event = add_request_context(None, "info", {"event": "x"})
            assert event["request_id"] == "req-1"
            assert event["user_id"] == "7"

        assert request_id_var.get() is None
        assert user_id_var.get() is None

    def test_explicit_field_wins(self) -> None:
        with RequestContextManager(request_id="req-1"):
            event = add_request_context(None, "info", {"event": "x", "request_id": "other"})
        assert event["request_id"] == "other"
