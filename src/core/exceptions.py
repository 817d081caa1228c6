"""Structured exception hierarchy for route registration and request validation.

This module defines the complete exception system for RouteForge, covering
the three phases in which things can go wrong:

- **Load time**: a route module exports something that is not a route
  declaration, or a whole directory load finishes with failures
- **Registration time**: a declaration is missing its handler or path, names
  an unknown HTTP verb, or declares a plugin with unmet dependencies
- **Request time**: the synthesized validation middleware rejects a request

Key components:
- **ErrorCode enum**: Standardized error identifiers for programmatic handling
- **Severity enum**: Error classification for monitoring and alerting
- **RouteForgeError**: Base exception with rich context and fingerprinting
- **Specialized exceptions**: One class per failure the registry can report

Registration errors abort only the declaration that raised them; routes
that were registered before stay registered.
"""

import hashlib
import traceback
from collections.abc import Mapping
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for RouteForge.

    These error codes provide consistent identification of error types
    across the registry, the loader and the HTTP surface.
    """

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    # Request errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Request data failed the route's declared validation schemas."""

    NOT_FOUND = "NOT_FOUND"
    """The requested resource could not be found."""

    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    """The path exists but is not bound for the requested verb."""

    # Load errors
    INVALID_ROUTE_EXPORT = "INVALID_ROUTE_EXPORT"
    """A route module's primary export is neither a function nor a declaration."""

    ROUTE_LOAD_FAILED = "ROUTE_LOAD_FAILED"
    """One or more route modules in a directory failed to load."""

    # Registration errors
    MISSING_HANDLER = "MISSING_HANDLER"
    """An object declaration has no callable handler."""

    MISSING_PATH = "MISSING_PATH"
    """A directly added route has no path."""

    INVALID_METHOD = "INVALID_METHOD"
    """A declaration names an HTTP verb outside the supported set."""

    INVALID_MIDDLEWARE = "INVALID_MIDDLEWARE"
    """A middleware is not callable."""

    MISSING_PLUGIN_NAME = "MISSING_PLUGIN_NAME"
    """A plugin declaration has no name."""

    PLUGIN_DEPENDENCY_NOT_FOUND = "PLUGIN_DEPENDENCY_NOT_FOUND"
    """A plugin depends on a plugin that is not registered yet."""

    ROUTE_NOT_FOUND = "ROUTE_NOT_FOUND"
    """Reload or removal targeted a route name that is not registered."""


class Severity(Enum):
    """Severity levels for RouteForge errors.

    These severity levels help categorize the impact and urgency of errors,
    enabling appropriate handling, monitoring, and alerting strategies.
    """

    LOW = "LOW"
    """Low severity errors that don't significantly impact functionality."""

    MEDIUM = "MEDIUM"
    """Medium severity errors that may affect some routes but not the service."""

    HIGH = "HIGH"
    """High severity errors that leave part of the route table unavailable."""

    CRITICAL = "CRITICAL"
    """Critical errors requiring immediate attention, may cause system failures."""


class RouteForgeError(Exception):
    """Base exception class for all RouteForge exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        # Capture stack trace at creation time
        self.stack_trace = traceback.format_stack()[:-1]  # Exclude this frame

        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Generate a fingerprint for error grouping.

        Returns:
            str: A hash string built from the error type and raise location
        """
        max_frames = 5
        relevant_frames = (
            self.stack_trace[-max_frames:]
            if len(self.stack_trace) > max_frames
            else self.stack_trace
        )

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"

        for frame in relevant_frames:
            if "site-packages" not in frame and "src/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """Whether this error is part of normal operation (LOW or MEDIUM severity)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_alert(self) -> bool:
        """Whether this error should trigger alerts (HIGH or CRITICAL severity)."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class ValidationError(RouteForgeError):
    """Exception raised when request data fails validation.

    Args:
        message: Description of the validation failure
        error_code: Error code (defaults to VALIDATION_ERROR)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class ValidationFailure(ValidationError):
    """Request-time rejection produced by a route's validation middleware.

    Args:
        field_errors: Violation messages grouped by field name
    """

    def __init__(self, field_errors: Mapping[str, list[str]]) -> None:
        self.field_errors = {field: list(msgs) for field, msgs in field_errors.items()}
        super().__init__(
            "Request validation failed",
            context={"validation_errors": self.field_errors},
        )


class NotFoundError(RouteForgeError):
    """Exception raised when a requested resource cannot be found.

    Args:
        message: Description of what resource was not found
        error_code: Error code (defaults to NOT_FOUND)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class RouteNotFoundError(NotFoundError):
    """Raised by reload and removal when the route name is not registered."""

    def __init__(self, route_name: str) -> None:
        self.route_name = route_name
        super().__init__(
            f"Route not found: {route_name}",
            error_code=ErrorCode.ROUTE_NOT_FOUND,
            context={"route_name": route_name},
        )


class RegistrationError(RouteForgeError):
    """Base class for errors that reject a single declaration.

    Args:
        message: Description of what is wrong with the declaration
        error_code: Error code identifying the specific problem
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.INTERNAL_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.MEDIUM, context, cause)


class LoadShapeError(RegistrationError):
    """A route module's primary export has an unsupported shape."""

    def __init__(self, source: str, detail: str) -> None:
        super().__init__(
            f"Invalid route export in {source}: {detail}",
            error_code=ErrorCode.INVALID_ROUTE_EXPORT,
            context={"source": source},
        )


class MissingHandlerError(RegistrationError):
    """An object declaration's handler is missing or not callable."""

    def __init__(self, source: str | None = None) -> None:
        super().__init__(
            "Route handler must be a function",
            error_code=ErrorCode.MISSING_HANDLER,
            context={"source": source} if source else None,
        )


class MissingPathError(RegistrationError):
    """A directly added route has no path."""

    def __init__(self, source: str | None = None) -> None:
        super().__init__(
            "Route path and handler are required",
            error_code=ErrorCode.MISSING_PATH,
            context={"source": source} if source else None,
        )


class InvalidMethodError(RegistrationError):
    """A declaration names an HTTP verb the router does not support."""

    def __init__(self, method: object, source: str | None = None) -> None:
        self.method = method
        context: dict[str, Any] = {"method": str(method)}
        if source:
            context["source"] = source
        super().__init__(
            f"Invalid HTTP method: {method}",
            error_code=ErrorCode.INVALID_METHOD,
            context=context,
        )


class InvalidMiddlewareError(RegistrationError):
    """A middleware registered under a name is not callable."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Middleware must be a function: {name}",
            error_code=ErrorCode.INVALID_MIDDLEWARE,
            context={"middleware": name},
        )


class MissingPluginNameError(RegistrationError):
    """A plugin declaration has no name."""

    def __init__(self, route_name: str | None = None) -> None:
        super().__init__(
            "Plugin must have a name",
            error_code=ErrorCode.MISSING_PLUGIN_NAME,
            context={"route_name": route_name} if route_name else None,
        )


class DependencyNotFoundError(RegistrationError):
    """A plugin depends on a plugin that has not been registered before it."""

    def __init__(self, plugin: str, dependency: str) -> None:
        self.plugin = plugin
        self.dependency = dependency
        super().__init__(
            f"Plugin dependency not found: {dependency}",
            error_code=ErrorCode.PLUGIN_DEPENDENCY_NOT_FOUND,
            context={"plugin": plugin, "dependency": dependency},
        )


class AggregateLoadError(RouteForgeError):
    """A directory load finished with one or more failed route modules.

    Every module that loaded successfully stays registered; this error only
    reports the failures.

    Args:
        failures: Mapping of module path to the exception it raised
    """

    def __init__(self, failures: Mapping[str, Exception]) -> None:
        self.failures = dict(failures)
        super().__init__(
            ErrorCode.ROUTE_LOAD_FAILED,
            f"Failed to load {len(self.failures)} route files",
            Severity.HIGH,
            context={
                "failed_files": {path: str(exc) for path, exc in self.failures.items()}
            },
        )

    @property
    def count(self) -> int:
        """Number of route modules that failed to load."""
        return len(self.failures)
