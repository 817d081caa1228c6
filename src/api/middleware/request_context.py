"""Request context middleware for distributed tracing and correlation.

This module implements middleware that manages the two identifiers every
request carries:

- **Correlation ID**: extracted from ``X-Correlation-ID`` or generated, and
  may span several services
- **Request ID**: extracted from ``X-Request-ID`` or generated, and
  identifies exactly one request handled here

Both are stored in contextvars, bound to every log line emitted while the
request is processed, and echoed back in the response headers.
"""

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.api.constants import CORRELATION_ID_HEADER, REQUEST_ID_HEADER
from src.core.context import (
    RequestContext,
    generate_correlation_id,
    generate_request_id,
)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to manage request context and correlation IDs.

    This middleware:
    - Generates or extracts correlation and request IDs
    - Sets them in contextvars for propagation
    - Binds them to Loguru for structured logging
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request with context management.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: Response with correlation and request ID headers.
        """
        correlation_id = (
            request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        )
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()

        RequestContext.set_correlation_id(correlation_id)
        RequestContext.set_request_id(request_id)

        # contextualize cleans up the bound IDs when the request ends
        with logger.contextualize(correlation_id=correlation_id, request_id=request_id):
            response = await call_next(request)

            response.headers[CORRELATION_ID_HEADER] = correlation_id
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
