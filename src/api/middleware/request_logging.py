"""HTTP request/response logging with performance monitoring.

This module implements request logging middleware that captures detailed
information about every HTTP transaction for observability and debugging.

Features:
- **Structured logging**: Consistent fields bound to every request log
- **Performance tracking**: Request duration and slow request detection
- **Client identification**: IP extraction with proxy header support
- **Request metrics**: In-process counters exposed by the health endpoint
- **Exclusion patterns**: Configurable path exclusion (e.g., health checks)

The middleware integrates with the correlation ID system to ensure all logs
for a single request can be easily aggregated and analyzed.
"""

import time
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.api.constants import STATUS_CLASSES
from src.core.config import LogConfig, get_settings
from src.core.constants import MILLISECONDS_PER_SECOND


def _elapsed_ms(start_time: float) -> float:
    return (time.perf_counter() - start_time) * MILLISECONDS_PER_SECOND


class RequestMetrics:
    """In-process request counters.

    Counts requests by status class and keeps a running average of the
    request duration. One instance is shared by the logging middleware and
    the health endpoint of an application.
    """

    def __init__(self) -> None:
        self.total = 0
        self.by_status = dict.fromkeys(STATUS_CLASSES, 0)
        self._total_duration_ms = 0.0

    def record(self, status_code: int, duration_ms: float) -> None:
        self.total += 1
        status_class = f"{status_code // 100}xx"
        if status_class in self.by_status:
            self.by_status[status_class] += 1
        self._total_duration_ms += duration_ms

    @property
    def average_duration_ms(self) -> float:
        if not self.total:
            return 0.0
        return round(self._total_duration_ms / self.total, 2)

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_status": dict(self.by_status),
            "average_duration_ms": self.average_duration_ms,
        }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests and responses.

    This simplified middleware:
    - Logs request start/completion with timing
    - Records request metrics
    - Excludes configured paths
    - Integrates with correlation IDs

    Args:
        app: The ASGI application.
        log_config: Logging configuration.
        metrics: Counters updated for every logged request.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        log_config: LogConfig,
        metrics: RequestMetrics | None = None,
    ) -> None:
        super().__init__(app)
        self.log_config = log_config
        self.excluded_paths = set(log_config.excluded_paths)
        self.metrics = metrics or RequestMetrics()
        self.settings = get_settings()

    def _get_client_ip(self, request: Request) -> str:
        """Extract real client IP considering proxy headers.

        Args:
            request: The incoming request.

        Returns:
            str: The client IP address.
        """
        # Only trust proxy headers in production environments
        if self.settings.environment == "production":
            forwarded_for = request.headers.get("x-forwarded-for")
            if forwarded_for:
                return forwarded_for.split(",")[0].strip()

            real_ip = request.headers.get("x-real-ip")
            if real_ip:
                return real_ip.strip()

        if request.client:
            return request.client.host
        return "unknown"

    def _get_user_agent(self, request: Request) -> str:
        ua = request.headers.get("user-agent", "")
        # Truncate extremely long user agents to prevent log pollution
        return ua[:200] if ua else "unknown"

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process the request and log details.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: The response from the application.

        Raises:
            Exception: Any exception raised by the application is re-raised
                after logging.
        """
        if request.url.path in self.excluded_paths:
            return await call_next(request)

        with logger.contextualize(
            method=request.method,
            path=request.url.path,
            client_host=self._get_client_ip(request),
            user_agent=self._get_user_agent(request),
        ):
            logger.info(
                "Request started",
                query_params=(
                    dict(request.query_params) if request.query_params else None
                ),
            )

            start_time = time.perf_counter()

            try:
                response = await call_next(request)
            except Exception as exc:
                duration_ms = _elapsed_ms(start_time)
                self.metrics.record(500, duration_ms)
                logger.error(
                    "Request failed",
                    duration_ms=round(duration_ms, 2),
                    error_type=type(exc).__name__,
                    error_message=str(exc),
                )
                raise

            duration_ms = _elapsed_ms(start_time)
            self.metrics.record(response.status_code, duration_ms)

            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
                response_size=int(response.headers.get("content-length", 0)),
            )

            if duration_ms > self.log_config.slow_request_threshold_ms:
                logger.warning(
                    "Slow request detected",
                    duration_ms=round(duration_ms, 2),
                    threshold_ms=self.log_config.slow_request_threshold_ms,
                )

            return response
