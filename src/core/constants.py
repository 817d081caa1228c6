"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000

# HTTP verbs a route may be registered for (lower-case, router order)
HTTP_VERBS = ("get", "post", "put", "patch", "delete", "head", "options")

# Verbs whose auto-generated document entries carry a request body
BODY_VERBS = frozenset({"post", "put", "patch"})

# Path prefixes documented without security requirements
DEFAULT_PUBLIC_PATHS = ("/health", "/docs", "/openapi", "/ping")

# Module attribute holding a route module's primary export
ROUTE_EXPORT_NAME = "route"

# Security and redaction
REDACTED = "[REDACTED]"
