"""Core infrastructure package for shared application functionality.

This package provides the foundational components used across all layers
of RouteForge:

- **config**: Centralized configuration management with environment support
- **constants**: Verb set, export name and other fixed values
- **context**: Request context and correlation ID management
- **exceptions**: Structured exception hierarchy with error codes
- **error_context**: Sensitive data sanitization for safe logging
- **logging**: Structured logging with loguru
- **observability**: Distributed tracing with OpenTelemetry
- **types**: Type aliases for better code clarity
"""
