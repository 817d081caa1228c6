"""Structured logging system built on Loguru.

This module configures Loguru as the single log sink for the service and
for every library that logs through the standard library.

Features:
- **Structured logging**: JSON output with consistent schema
- **Context propagation**: Automatic inclusion of correlation and request IDs
- **Standard library integration**: Captures logs from all Python modules
- **Rich console output**: Development-friendly formatting with context

Formatter types:
- **console**: Human-readable with inline context (development)
- **json**: Generic structured format (staging and production)

Registry diagnostics bind ``route_name`` and ``source`` so a failing route
module can be found quickly in either format.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING, Any, Final, Protocol, cast

from loguru import logger

from src.core.config import get_settings
from src.core.constants import REDACTED

if TYPE_CHECKING:
    from loguru import Logger


class _LoggingState:
    """Simple state holder to track if logging has been configured."""

    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()


class SettingsProtocol(Protocol):
    """Protocol for settings objects that setup_logging can accept."""

    @property
    def debug(self) -> bool:
        """Debug mode flag."""
        ...

    @property
    def log_config(self) -> LogConfigProtocol:
        """Log configuration."""
        ...


class LogConfigProtocol(Protocol):
    """Protocol for log configuration objects."""

    @property
    def log_level(self) -> str:
        """Logging level."""
        ...

    @property
    def log_formatter_type(self) -> str | None:
        """Log formatter type."""
        ...


# Constants
DEFAULT_LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
CORRELATION_ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 100

# Fields shown first, in this order, by the console formatter
PRIORITY_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "route_name",
    "source",
)


def _escape(value: object) -> str:
    return str(value).replace("{", "{{").replace("}", "}}")


def _format_priority_field(field: str, value: object) -> str | None:
    """Format a priority field for display.

    Args:
        field: The field name.
        value: The field value.

    Returns:
        str | None: Formatted value or None if formatting fails.
    """
    try:
        if (
            field in ("correlation_id", "request_id")
            and value
            and len(str(value)) > CORRELATION_ID_DISPLAY_LENGTH
        ):
            # Shorten IDs for readability
            value = str(value)[-CORRELATION_ID_DISPLAY_LENGTH:]
        elif field == "duration_ms":
            value = f"{value}ms"
        elif field == "status_code":
            status_str = str(value)
            if status_str.startswith("2"):
                value = f"<green>{value}</green>"
            elif status_str.startswith("3"):
                value = f"<yellow>{value}</yellow>"
            elif status_str.startswith("4"):
                value = f"<red>{value}</red>"
            elif status_str.startswith("5"):
                value = f"<red><bold>{value}</bold></red>"
        return _escape(value)
    except (AttributeError, TypeError, ValueError) as e:
        logger.trace(f"Failed to format priority field {field}: {e}")
        return None


def _format_extra_field(key: str, value: object) -> str | None:
    """Format an extra field for display, redacting sensitive values.

    Args:
        key: The field name.
        value: The field value.

    Returns:
        str | None: Formatted field or None if formatting fails.
    """
    try:
        str_value = str(value)

        settings = get_settings()
        if key in settings.log_config.sensitive_fields:
            str_value = REDACTED
        elif len(str_value) > MAX_FIELD_VALUE_LENGTH:
            str_value = str_value[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    except (AttributeError, TypeError, ValueError) as e:
        logger.trace(f"Failed to format extra field {key}: {e}")
        return None
    else:
        return f"{_escape(key)}={_escape(str_value)}"


def _format_context_fields(extra: dict[str, Any]) -> list[str]:
    """Format all context fields from extra data.

    Args:
        extra: Extra fields from the log record.

    Returns:
        list[str]: List of formatted context parts.
    """
    context_parts = []

    for field in PRIORITY_FIELDS:
        if extra.get(field) is not None:
            formatted = _format_priority_field(field, extra[field])
            if formatted:
                context_parts.append(f"<yellow>{formatted}</yellow>")

    for key, value in extra.items():
        if key not in PRIORITY_FIELDS and not key.startswith("_") and value is not None:
            formatted = _format_extra_field(key, value)
            if formatted:
                context_parts.append(f"<dim>{formatted}</dim>")

    return context_parts


def format_console_with_context(record: dict[str, Any]) -> str:
    """Format log record for console with all context fields visible.

    Args:
        record: Loguru record to format.

    Returns:
        str: Formatted log string with context.
    """
    try:
        timestamp = record.get("time")
        time_str = (
            timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3] if timestamp else "unknown"
        )
        level = record.get("level")
        level_name = getattr(level, "name", str(level))

        parts = [
            f"<green>{time_str}</green>",
            f"<level>{level_name: <8}</level>",
            f"<cyan>{record.get('name', '')}:{record.get('function', '')}:"
            f"{record.get('line', '')}</cyan>",
        ]

        context_parts = _format_context_fields(record.get("extra", {}))
        if context_parts:
            parts.append(" ".join(f"[{part}]" for part in context_parts))

        parts.append(_escape(record.get("message", "")))

        if record.get("exception"):
            parts.append("\n{exception}")

        return " | ".join(parts) + "\n"
    except (AttributeError, TypeError, ValueError, KeyError) as e:
        logger.trace(f"Failed to format log record: {e}")
        return DEFAULT_LOG_FORMAT + "\n"


def serialize_for_json(record: dict[str, Any]) -> str:
    """Format log record as a single JSON line.

    Args:
        record: Loguru record to format.

    Returns:
        str: JSON-formatted log entry with newline.
    """
    log_entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "module": record["module"],
        "line": record["line"],
    }

    if extra := record.get("extra", {}):
        sensitive = set(get_settings().log_config.sensitive_fields)
        log_entry.update(
            {
                k: REDACTED if k in sensitive else v
                for k, v in extra.items()
                if not k.startswith("_")
            }
        )

    if exc := record.get("exception"):
        log_entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }

    return json.dumps(log_entry, default=str) + "\n"


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to Loguru.

    This handler captures logs from libraries using standard logging
    and forwards them to Loguru for consistent formatting.
    """

    def emit(self, record: logging.LogRecord) -> None:
        """Forward log record to Loguru.

        Args:
            record: Standard library LogRecord to forward.
        """
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = sys._getframe(6), 6
        while frame and frame.f_code.co_filename == logging.__file__:
            if frame.f_back is None:
                break
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(settings: SettingsProtocol) -> None:
    """Configure Loguru with the console or JSON formatter.

    Args:
        settings: Application settings containing log configuration.

    Note:
        This function ensures it's only called once using module state.
    """
    if _state.configured:
        return

    logger.remove()

    formatter_type = settings.log_config.log_formatter_type or "console"

    if formatter_type == "console":
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=settings.log_config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )
    else:

        def structured_sink(message: object) -> None:
            """Custom sink that formats and writes structured logs."""
            if hasattr(message, "record"):
                sys.stdout.write(serialize_for_json(message.record))
                sys.stdout.flush()

        logger.add(
            structured_sink,
            level=settings.log_config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )

    # Configure standard library logging to use Loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = [InterceptHandler()]
        uvicorn_logger.propagate = False

    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        formatter_type=formatter_type,
        log_level=settings.log_config.log_level,
    )

    _state.configured = True


def get_logger(name: str) -> Logger:
    """Get a logger instance with the given name.

    Args:
        name: Logger name, typically __name__.

    Returns:
        Logger: Logger instance bound with the name.
    """
    return logger.bind(logger_name=name)
