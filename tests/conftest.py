"""Root conftest.py for the RouteForge test suite.

This file contains project-wide fixtures and pytest configuration.
"""

import textwrap
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
from loguru import logger

from src.core.config import ObservabilityConfig, RoutesConfig, Settings
from src.core.context import RequestContext
from src.routing.registry import RouteRegistry

type RouteWriter = Callable[[str, str], Path]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test multiple components"
    )


@pytest.fixture
def routes_dir(tmp_path: Path) -> Path:
    """Provide an empty routes directory.

    Returns:
        Path: The directory route modules are written to.
    """
    directory = tmp_path / "routes"
    directory.mkdir()
    return directory


@pytest.fixture
def settings(routes_dir: Path) -> Settings:
    """Provide settings with tracing disabled and the admin API enabled.

    Returns:
        Settings: Test settings pointing at the temporary routes directory.
    """
    return Settings(
        environment="development",
        observability_config=ObservabilityConfig(
            enable_tracing=False, exporter_type="none"
        ),
        routes_config=RoutesConfig(routes_directory=routes_dir, admin_enabled=True),
    )


@pytest.fixture
def registry(settings: Settings) -> RouteRegistry:
    """Provide a fresh, empty route registry."""
    return RouteRegistry(settings)


@pytest.fixture
def write_route(routes_dir: Path) -> RouteWriter:
    """Provide a helper that writes a route module into the routes directory.

    Returns:
        RouteWriter: Callable taking a relative file name and module source.
    """

    def write(name: str, source: str) -> Path:
        path = routes_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source))
        return path

    return write


@pytest.fixture
def log_records() -> Generator[list[dict[str, Any]]]:
    """Capture loguru records emitted during the test.

    Yields:
        list[dict[str, Any]]: Captured records (message, level name, extra).
    """
    records: list[dict[str, Any]] = []

    def sink(message: Any) -> None:  # noqa: ANN401 - loguru message object
        record = message.record
        records.append(
            {
                "message": record["message"],
                "level": record["level"].name,
                "extra": dict(record["extra"]),
            }
        )

    handler_id = logger.add(sink, level="DEBUG", format="{message}")
    yield records
    logger.remove(handler_id)


@pytest.fixture(autouse=True)
def clean_request_context() -> Generator[None]:
    """Clear request context before and after each test."""
    RequestContext.clear()
    yield
    RequestContext.clear()
