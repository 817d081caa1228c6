"""HTTP API layer with FastAPI for the RouteForge service.

This package implements the service's HTTP boundary on top of FastAPI.

Key components:
- **main**: Application factory and lifecycle management
- **admin**: Optional endpoints to inspect, reload and remove routes
- **middleware**: Cross-cutting concerns for all requests
  - Request context with correlation and request ID tracking
  - Structured logging with performance metrics
  - Centralized error handling with consistent responses
- **schemas**: Pydantic models for the standardized error format
- **utils**: High-performance JSON serialization with orjson

Dynamic routes are mounted under the configured prefix after every service
endpoint, so ``/``, ``/health`` and the API document can never be shadowed.
"""
