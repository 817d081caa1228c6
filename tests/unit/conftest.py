"""Shared fixtures for unit tests."""

import os
from collections.abc import Generator

import pytest
from starlette.applications import Starlette
from starlette.routing import Mount

from src.core.config import get_settings
from src.routing.dispatch import DispatchRouter


@pytest.fixture(autouse=True)
def clean_lru_cache() -> Generator[None]:
    """Clear the settings cache before and after each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator[pytest.MonkeyPatch]:
    """Remove application environment variables for the duration of a test.

    Args:
        monkeypatch: Pytest monkeypatch fixture.

    Yields:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    env_prefixes = [
        "APP_",
        "API_",
        "ENVIRONMENT",
        "DEBUG",
        "OPENAPI_URL",
        "LOG_CONFIG__",
        "OBSERVABILITY_CONFIG__",
        "DOCUMENT_CONFIG__",
        "ROUTES_CONFIG__",
    ]
    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in env_prefixes):
            monkeypatch.delenv(key, raising=False)

    yield monkeypatch


@pytest.fixture
def dispatch_router() -> DispatchRouter:
    """Provide an empty dispatch router."""
    return DispatchRouter()


@pytest.fixture
def dispatch_app(dispatch_router: DispatchRouter) -> Starlette:
    """Mount the dispatch router under /api in a bare Starlette app.

    Starlette's exception middleware turns the router's HTTP exceptions into
    plain 404 and 405 responses.
    """
    return Starlette(routes=[Mount("/api", app=dispatch_router.router)])
