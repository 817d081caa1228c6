"""Global exception handlers for the FastAPI application.

This module provides centralized exception handling for the service and for
every dynamically registered route, ensuring consistent error responses and
proper logging of exceptions.

Status mapping for RouteForge errors:
- ``ValidationError`` family: 400
- ``NotFoundError`` family: 404
- ``RegistrationError`` family: 422
- anything else: 500
"""

import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from src.api.constants import HTTP_500_INTERNAL_SERVER_ERROR
from src.api.schemas.errors import ErrorResponse, ServiceInfo
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.context import RequestContext, generate_request_id
from src.core.error_context import sanitize_error_context
from src.core.exceptions import (
    ErrorCode,
    NotFoundError,
    RegistrationError,
    RouteForgeError,
    ValidationError,
)


def get_service_info(settings: Settings) -> ServiceInfo:
    """Create ServiceInfo from application settings.

    Args:
        settings: Application settings

    Returns:
        ServiceInfo: Instance with current service metadata
    """
    return ServiceInfo(
        name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )


def status_code_for(exc: RouteForgeError) -> int:
    """Map a RouteForge exception to its HTTP status code."""
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, RegistrationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def routeforge_error_handler(request: Request, exc: Exception) -> Response:
    """Handle RouteForgeError exceptions.

    Converts RouteForgeError instances to ErrorResponse with full context,
    ensuring sensitive data is sanitized before sending to client. The
    validation middleware calls this directly to answer rejected requests.

    Args:
        request: The request that caused the exception
        exc: The RouteForgeError exception to handle

    Returns:
        Response: ORJSONResponse with error details

    Raises:
        TypeError: If exc is not a RouteForgeError instance
    """
    if not isinstance(exc, RouteForgeError):
        raise TypeError(f"Expected RouteForgeError, got {type(exc).__name__}")

    settings = get_settings()
    correlation_id = RequestContext.get_correlation_id()
    status_code = status_code_for(exc)

    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": str(request.url.path),
            "error_code": exc.error_code,
        },
    )

    log = logger.warning if exc.is_expected else logger.error
    log(
        "Handling {}: {}",
        type(exc).__name__,
        exc.message,
        correlation_id=correlation_id,
        status_code=status_code,
        fingerprint=exc.fingerprint,
        **error_context,
    )

    details = exc.context if exc.context else None

    debug_info = None
    if settings.environment == "development" and not isinstance(exc, ValidationError):
        debug_info = {
            "stack_trace": exc.stack_trace,
            "error_context": exc.context if exc.context else {},
            "exception_type": type(exc).__name__,
        }
        if exc.cause:
            debug_info["cause"] = {
                "type": type(exc.cause).__name__,
                "message": str(exc.cause),
            }

    error_response = ErrorResponse(
        error_code=exc.error_code,
        message=exc.message,
        details=details,
        correlation_id=correlation_id,
        request_id=RequestContext.get_request_id() or generate_request_id(),
        severity=exc.severity.value,
        service_info=get_service_info(settings),
        debug_info=debug_info,
    )

    return ORJSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json"),
    )


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Handle FastAPI RequestValidationError exceptions.

    Only the service's own endpoints (admin router) use FastAPI's request
    validation; dynamic routes are validated by their synthesized middleware.

    Args:
        request: The request that caused the exception
        exc: The RequestValidationError exception to handle

    Returns:
        Response: ORJSONResponse with validation error details

    Raises:
        TypeError: If exc is not a RequestValidationError instance
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    settings = get_settings()
    correlation_id = RequestContext.get_correlation_id()

    field_errors: dict[str, list[str]] = {}
    for error in exc.errors():
        field_path = error.get("loc", ())
        field_name = ".".join(str(loc) for loc in field_path[1:]) or "root"
        field_errors.setdefault(field_name, []).append(error.get("msg", "Invalid value"))

    logger.warning(
        "Request validation failed",
        correlation_id=correlation_id,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        path=str(request.url.path),
        method=request.method,
    )

    error_response = ErrorResponse(
        error_code=ErrorCode.VALIDATION_ERROR.value,
        message="Request validation failed",
        details={"validation_errors": field_errors},
        correlation_id=correlation_id,
        request_id=RequestContext.get_request_id() or generate_request_id(),
        severity="LOW",
        service_info=get_service_info(settings),
    )

    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response.model_dump(mode="json"),
    )


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle Starlette HTTPException.

    The dispatch router raises these for unbound paths (404) and for paths
    that are bound for other verbs only (405 with an ``Allow`` header).

    Args:
        request: The request that caused the exception
        exc: The HTTPException to handle

    Returns:
        Response: ORJSONResponse with error details

    Raises:
        TypeError: If exc is not an HTTPException instance
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    settings = get_settings()
    correlation_id = RequestContext.get_correlation_id()

    error_code = ErrorCode.INTERNAL_ERROR.value
    severity = "MEDIUM"

    if exc.status_code == status.HTTP_400_BAD_REQUEST:
        error_code = ErrorCode.VALIDATION_ERROR.value
        severity = "LOW"
    elif exc.status_code == status.HTTP_404_NOT_FOUND:
        error_code = ErrorCode.NOT_FOUND.value
        severity = "LOW"
    elif exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        error_code = ErrorCode.METHOD_NOT_ALLOWED.value
        severity = "LOW"
    elif exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        severity = "HIGH"

    logger.warning(
        "HTTP exception",
        correlation_id=correlation_id,
        status_code=exc.status_code,
        method=request.method,
        path=str(request.url.path),
        detail=exc.detail,
    )

    error_response = ErrorResponse(
        error_code=error_code,
        message=str(exc.detail),
        correlation_id=correlation_id,
        request_id=RequestContext.get_request_id() or generate_request_id(),
        severity=severity,
        service_info=get_service_info(settings),
    )

    return ORJSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(mode="json"),
        headers=exc.headers,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle generic exceptions.

    Catches all unhandled exceptions, including those raised by route
    handlers, and converts them to a safe error response. In production,
    hides internal error details from clients.

    Args:
        request: The request that caused the exception
        exc: The unhandled exception

    Returns:
        Response: ORJSONResponse with generic error message
    """
    settings = get_settings()
    correlation_id = RequestContext.get_correlation_id()

    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": str(request.url.path),
        },
    )

    logger.opt(exception=exc).error(
        "Unhandled exception: {}",
        type(exc).__name__,
        correlation_id=correlation_id,
        **error_context,
    )

    if settings.environment == "production":
        message = "An internal server error occurred"
        details = None
        debug_info = None
    else:
        message = f"Internal server error: {type(exc).__name__}"
        details = {"error": str(exc), "type": type(exc).__name__}
        debug_info = {
            "stack_trace": traceback.format_tb(exc.__traceback__),
            "exception_type": type(exc).__name__,
        }

    error_response = ErrorResponse(
        error_code=ErrorCode.INTERNAL_ERROR.value,
        message=message,
        details=details,
        correlation_id=correlation_id,
        request_id=RequestContext.get_request_id() or generate_request_id(),
        severity="CRITICAL",
        service_info=get_service_info(settings),
        debug_info=debug_info,
    )

    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response.model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(RouteForgeError, routeforge_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers registered")
