"""Type aliases for dynamic data structures throughout the application.

This module centralizes type definitions for data that cannot be statically
typed, mostly the pieces of the generated API document and the callables
that make up a route's request pipeline.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from starlette.requests import Request
from starlette.responses import Response

# JSON-compatible type that represents any valid JSON value
type JsonValue = (
    dict[str, "JsonValue"] | list["JsonValue"] | str | int | float | bool | None
)

# Context dictionary for logging additional information
type LogContext = dict[str, Any]

# Context dictionary for error details and debugging information
type ErrorContext = dict[str, Any]

# One operation object of the API document (paths[path][verb])
type OperationObject = dict[str, Any]

# The complete API document
type ApiDocument = dict[str, Any]

# Continuation handed to every pre-handler
type CallNext = Callable[[Request], Awaitable[Response]]

# Pre-handler: async (request, call_next) -> Response
type Middleware = Callable[[Request, CallNext], Awaitable[Response]]

# Terminal handler: (request) -> Response | JSON-serializable | None, sync or async
type Handler = Callable[[Request], Any]
