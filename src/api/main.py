"""FastAPI application initialization and configuration module.

This module serves as the main entry point for the RouteForge service.
It handles:
- Application lifecycle management (route loading at startup)
- Middleware registration in the correct order
- Exception handler registration
- Service endpoints: banner, health and the live API document
- Mounting the dynamic route table under the configured prefix
- OpenTelemetry instrumentation

The module follows a layered middleware approach where middleware are
executed in reverse order of registration, ensuring proper request/response
processing flow.
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import Response
from loguru import logger

from src.api.admin import router as admin_router
from src.api.constants import ROOT_MESSAGE
from src.api.middleware.error_handler import register_exception_handlers
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.middleware.request_logging import RequestLoggingMiddleware, RequestMetrics
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.exceptions import AggregateLoadError
from src.core.logging import setup_logging
from src.core.observability import instrument_app, setup_tracing
from src.routing.loader import RouteLoader
from src.routing.registry import RouteRegistry


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan events.

    Loads every route module from the configured directory. A failing module
    is logged and skipped; the service still starts with the rest.

    Args:
        app_instance: The FastAPI application instance.

    Yields:
        None: Nothing is yielded, this is just a lifespan context.
    """
    settings: Settings = app_instance.state.settings
    registry: RouteRegistry = app_instance.state.registry

    if settings.routes_config.load_on_startup:
        loader = RouteLoader(registry)
        try:
            await loader.load_all(settings.routes_config.routes_directory)
        except AggregateLoadError as e:
            logger.error(
                "{} route files failed to load",
                e.count,
                failed_files=list(e.failures),
            )

    logger.info(
        "Application startup complete - {} v{} ({} routes, {} plugins)",
        app_instance.title,
        app_instance.version,
        registry.route_count,
        registry.plugin_count,
    )

    yield

    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None, registry: RouteRegistry | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use get_settings().
        registry: Optional pre-populated registry. A fresh one is created
            from the settings otherwise.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    # Setup logging first
    setup_logging(settings)

    # Setup tracing
    setup_tracing(settings)

    if registry is None:
        registry = RouteRegistry(settings)

    # The live document replaces FastAPI's generated schema
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.registry = registry
    application.state.metrics = RequestMetrics()
    application.state.started_at = time.monotonic()

    # Register exception handlers BEFORE middleware
    register_exception_handlers(application)

    # Middleware are executed in reverse order of registration

    # 2. Request logging middleware (logs requests/responses, records metrics)
    application.add_middleware(
        RequestLoggingMiddleware,
        log_config=settings.log_config,
        metrics=application.state.metrics,
    )

    # 1. Request context middleware (creates correlation and request IDs)
    application.add_middleware(RequestContextMiddleware)

    @application.get("/")
    async def root(request: Request) -> dict[str, Any]:
        """Service banner with version and uptime."""
        return {
            "message": ROOT_MESSAGE,
            "version": settings.app_version,
            "environment": settings.environment,
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @application.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check endpoint for monitoring and container orchestration.

        Returns:
            dict[str, Any]: Registry counters plus request metrics.
        """
        return {
            **request.app.state.registry.health_info(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "requests": request.app.state.metrics.as_dict(),
        }

    if settings.openapi_url:

        @application.get(settings.openapi_url, include_in_schema=False)
        async def api_document(request: Request) -> Response:
            """Serve the live API document."""
            document = request.app.state.registry.document
            return Response(
                content=document.render(),
                media_type="application/json",
                headers={
                    "Cache-Control": (
                        f"public, max-age={settings.routes_config.document_max_age}"
                    )
                },
            )

    if settings.routes_config.admin_enabled:
        application.include_router(admin_router)

    # Dynamic routes last so service endpoints always win
    application.mount(settings.routes_config.mount_prefix, registry.router.router)

    # Instrument application for tracing (at the end)
    instrument_app(application, settings)

    return application


app = create_app()
