"""Sensitive data sanitization for error logging and responses.

Errors raised while loading or serving routes often carry request payloads
or module-level configuration in their context. Before any of that reaches a
log line or an error response it passes through this module.

Key features:
- **Pattern matching**: Regex-based detection of sensitive field names
- **Configurable fields**: Additional sensitive fields via configuration
- **Deep sanitization**: Recursive handling of nested data structures

Original data remains unchanged, only the logged copies are sanitized.
"""

from __future__ import annotations

import re
from functools import lru_cache
from re import Pattern
from typing import Any, Final

from src.core.config import get_settings
from src.core.constants import REDACTED

# Type alias for values we can sanitize
SanitizableValue = (
    str | int | float | bool | None | dict[str, Any] | list[Any] | tuple[Any, ...]
)

# Default sensitive field patterns - covers common cases
DEFAULT_SENSITIVE_PATTERN: Final[Pattern[str]] = re.compile(
    r"(password|passwd|pwd|secret|token|api[_-]?key|apikey|authorization|"
    r"credential|private[_-]?key|access[_-]?key|session|cvv|card[_-]?number)",
    re.IGNORECASE,
)

# Maximum depth for nested structure sanitization
MAX_DEPTH: Final[int] = 10


@lru_cache(maxsize=1)
def _get_sensitive_fields() -> tuple[str, ...]:
    """Get the configured sensitive fields from settings."""
    return tuple(f.lower() for f in get_settings().log_config.sensitive_fields)


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates sensitive data.

    Checks against both the default regex pattern and the
    configured sensitive fields list.

    Args:
        field_name: The field name to check.

    Returns:
        bool: True if the field appears to contain sensitive data.
    """
    if DEFAULT_SENSITIVE_PATTERN.search(field_name):
        return True

    field_lower = field_name.lower()
    return any(sensitive in field_lower for sensitive in _get_sensitive_fields())


def sanitize_value(
    value: SanitizableValue, field_name: str = "", depth: int = 0
) -> SanitizableValue:
    """Sanitize a value if it appears to be sensitive.

    Args:
        value: The value to potentially sanitize.
        field_name: The field name for context.
        depth: Current recursion depth.

    Returns:
        SanitizableValue: Sanitized value or original if not sensitive.
    """
    if depth > MAX_DEPTH:
        return REDACTED

    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if isinstance(value, dict):
        return {k: sanitize_value(v, str(k), depth + 1) for k, v in value.items()}

    if isinstance(value, list):
        return [sanitize_value(item, "", depth + 1) for item in value]

    if isinstance(value, tuple):
        return tuple(sanitize_value(item, "", depth + 1) for item in value)

    return value


def sanitize_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Sanitize a dictionary by redacting sensitive fields."""
    return {key: sanitize_value(value, key) for key, value in data.items()}


def sanitize_error_context(
    error: Exception, context: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Create sanitized error context for logging.

    Args:
        error: The exception to create context for.
        context: Additional context to include (will be sanitized).

    Returns:
        dict[str, Any]: Sanitized error context safe for logging.
    """
    error_context: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if context:
        error_context.update(sanitize_dict(context))

    return error_context
