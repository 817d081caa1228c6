"""Integration test fixtures.

The application is built around the test registry. ASGITransport does not
run the lifespan, so tests load route modules through ``RouteLoader``
directly.
"""

from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.api.main import create_app
from src.core.config import Settings
from src.routing.loader import RouteLoader
from src.routing.registry import RouteRegistry


@pytest.fixture
def app(settings: Settings, registry: RouteRegistry) -> FastAPI:
    """Provide an application serving the test registry."""
    return create_app(settings, registry)


@pytest.fixture
def loader(registry: RouteRegistry) -> RouteLoader:
    return RouteLoader(registry)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Provide an HTTP client bound to the application.

    Yields:
        AsyncClient: Client sending requests straight to the ASGI app.
    """
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as test_client:
        yield test_client
