"""Standardized error response schemas for consistent API error handling.

This module defines the Pydantic models that structure every error response
returned by the service, whether it comes from a service endpoint, the admin
API, or the validation middleware of a dynamically registered route.

Key models:
- **ErrorResponse**: Main error response with all metadata fields
- **ServiceInfo**: Service identification for multi-service debugging

The error schema supports:
- Machine-readable error codes for programmatic handling
- Field-level validation errors under ``details.validation_errors``
- Correlation and request IDs for distributed tracing
- Debug information in development environments

All timestamp fields include timezone information.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class ServiceInfo(BaseModel):
    """Service information for error context."""

    name: str = Field(
        ...,
        description="Name of the service",
        examples=["RouteForge", "InventoryService"],
    )

    version: str = Field(
        ...,
        description="Version of the service",
        examples=["0.1.0", "1.2.3"],
    )

    environment: str = Field(
        ...,
        description="Environment where the service is running",
        examples=["development", "staging", "production"],
    )


class ErrorResponse(BaseModel):
    """Standardized error response model for API errors.

    The same shape is published as the ``ErrorResponse`` component of the
    live API document, so clients of dynamic routes see one error format.
    """

    error_code: str = Field(
        ...,
        description="Unique error code identifying the error type",
        examples=["VALIDATION_ERROR", "ROUTE_NOT_FOUND", "METHOD_NOT_ALLOWED"],
    )

    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Request validation failed", "Route 'widgets' not found"],
    )

    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details (e.g., field-specific validation errors)",
        examples=[{"validation_errors": {"name": ["Field required"]}}],
    )

    correlation_id: str | None = Field(
        default=None,
        description="Request correlation ID for tracing and debugging",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the error occurred (with timezone)",
        examples=["2026-03-02T12:00:00+00:00"],
    )

    severity: str | None = Field(
        default=None,
        description="Error severity level (LOW, MEDIUM, HIGH, CRITICAL)",
        examples=["LOW", "HIGH"],
    )

    service_info: ServiceInfo | None = Field(
        default=None,
        description="Information about the service that generated the error",
    )

    request_id: str | None = Field(
        default=None,
        description=(
            "Unique request identifier (different from correlation_id "
            "which can span multiple services)"
        ),
        examples=["req-550e8400-e29b-41d4-a716-446655440000"],
    )

    debug_info: dict[str, Any] | None = Field(
        default=None,
        description="Debug information (only populated in development environments)",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error_code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "details": {
                        "validation_errors": {
                            "name": ["Field required"],
                            "quantity": ["Input should be a valid integer"],
                        }
                    },
                    "correlation_id": "550e8400-e29b-41d4-a716-446655440000",
                    "request_id": "req-660e8400-e29b-41d4-a716-446655440000",
                    "timestamp": "2026-03-02T12:00:00+00:00",
                    "severity": "LOW",
                },
                {
                    "error_code": "ROUTE_NOT_FOUND",
                    "message": "Route 'widgets' not found",
                    "correlation_id": "550e8400-e29b-41d4-a716-446655440001",
                    "request_id": "req-660e8400-e29b-41d4-a716-446655440001",
                    "timestamp": "2026-03-02T12:00:01+00:00",
                    "severity": "LOW",
                    "service_info": {
                        "name": "RouteForge",
                        "version": "0.1.0",
                        "environment": "staging",
                    },
                },
                {
                    "error_code": "INTERNAL_ERROR",
                    "message": "Internal server error: KeyError",
                    "timestamp": "2026-03-02T12:00:03+00:00",
                    "severity": "CRITICAL",
                    "debug_info": {
                        "stack_trace": [
                            "Traceback (most recent call last):",
                            "  File 'routes/widgets.py', line 12, in create",
                            "KeyError: 'name'",
                        ],
                        "exception_type": "KeyError",
                    },
                },
            ]
        }
    }
