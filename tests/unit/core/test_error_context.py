"""Unit tests for src/core/error_context.py."""

from collections.abc import Generator

import pytest

from src.core.constants import REDACTED
from src.core.error_context import (
    MAX_DEPTH,
    _get_sensitive_fields,
    is_sensitive_field,
    sanitize_dict,
    sanitize_error_context,
    sanitize_value,
)


@pytest.fixture(autouse=True)
def clear_sensitive_cache() -> Generator[None]:
    _get_sensitive_fields.cache_clear()
    yield
    _get_sensitive_fields.cache_clear()


@pytest.mark.unit
class TestErrorContext:
    """Test suite for error context sanitization."""

    @pytest.mark.parametrize(
        "field", ["password", "API_KEY", "userToken", "session_id", "Authorization"]
    )
    def test_sensitive_fields(self, field: str) -> None:
        """Verify common credential names are detected."""
        assert is_sensitive_field(field)

    @pytest.mark.parametrize("field", ["name", "path", "route_name", "method"])
    def test_plain_fields(self, field: str) -> None:
        """Verify ordinary names are left alone."""
        assert not is_sensitive_field(field)

    def test_configured_fields(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Verify fields from the log configuration are also redacted."""
        monkeypatch.setenv("LOG_CONFIG__SENSITIVE_FIELDS", '["tenant"]')

        assert is_sensitive_field("tenant_id")

    def test_nested_sanitization(self) -> None:
        """Verify nested containers are walked and the input is not changed."""
        data = {
            "route": "users",
            "headers": {"authorization": "Bearer abc"},
            "items": [{"password": "x"}, ("a", {"token": "t"})],
        }

        result = sanitize_dict(data)

        assert result["route"] == "users"
        assert result["headers"] == {"authorization": REDACTED}
        assert result["items"][0] == {"password": REDACTED}
        assert result["items"][1][1] == {"token": REDACTED}
        assert data["headers"]["authorization"] == "Bearer abc"

    def test_depth_limit(self) -> None:
        """Verify structures deeper than MAX_DEPTH are redacted."""
        assert sanitize_value("x", depth=MAX_DEPTH + 1) == REDACTED

    def test_error_context(self) -> None:
        """Verify the error type and message lead the sanitized context."""
        context = sanitize_error_context(
            KeyError("missing"), {"source": "routes/a.py", "secret": "s"}
        )

        assert context["error_type"] == "KeyError"
        assert context["source"] == "routes/a.py"
        assert context["secret"] == REDACTED
