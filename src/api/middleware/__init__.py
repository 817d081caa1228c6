"""FastAPI middleware package for cross-cutting request/response concerns.

This package contains middleware components that handle common functionality
across all API endpoints:

- **RequestContextMiddleware**: Manages correlation IDs and request IDs
- **RequestLoggingMiddleware**: Structured logging with performance tracking
- **ErrorHandler**: Centralized exception handling with consistent error responses

Middleware are executed in a specific order to ensure proper request processing:
1. Request context (sets up correlation IDs)
2. Request logging (logs with correlation context)
3. Error handling (catches and formats all exceptions)
"""
