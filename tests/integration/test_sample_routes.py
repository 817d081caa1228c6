"""Integration tests for the route modules shipped in the routes directory."""

from pathlib import Path

import pytest
from httpx import AsyncClient

from src.routing.loader import RouteLoader
from src.routing.registry import RouteRegistry

ROUTES_DIR = Path(__file__).resolve().parents[2] / "routes"


@pytest.fixture
async def shipped(loader: RouteLoader) -> RouteRegistry:
    """Load the shipped routes directory into the registry."""
    await loader.load_all(ROUTES_DIR)
    return loader.registry


@pytest.mark.integration
class TestStatsRoute:
    """Test the server statistics route."""

    async def test_registered_from_directory(self, shipped: RouteRegistry) -> None:
        """The stats module is discovered and registered by its file name."""
        assert "stats" in shipped
        descriptor = shipped.get_route("stats")
        assert descriptor is not None
        assert descriptor.validation is not None

    async def test_summary_stats(
        self, client: AsyncClient, shipped: RouteRegistry
    ) -> None:
        """Without verbose only the summary fields are returned."""
        response = await client.get("/api/stats")

        assert response.status_code == 200
        body = response.json()
        assert body["detailed"] is False
        assert body["uptime"] >= 0
        assert body["memory_usage"]["max_rss"] > 0
        assert "cpu_times" not in body

    async def test_verbose_stats(
        self, client: AsyncClient, shipped: RouteRegistry
    ) -> None:
        """The verbose flag adds process details."""
        response = await client.get("/api/stats", params={"verbose": "true"})

        body = response.json()
        assert body["detailed"] is True
        assert set(body["cpu_times"]) == {"user", "system"}
        assert "page_faults" in body["memory_usage"]

    async def test_invalid_verbose_flag(
        self, client: AsyncClient, shipped: RouteRegistry
    ) -> None:
        """A non-boolean flag is rejected before the handler runs."""
        response = await client.get("/api/stats", params={"verbose": "maybe"})

        assert response.status_code == 400
        assert list(response.json()["details"]["validation_errors"]) == ["verbose"]

    async def test_document_entry(
        self, client: AsyncClient, shipped: RouteRegistry
    ) -> None:
        """The hand-authored entry is served with the query parameter folded in."""
        document = (await client.get("/openapi.json")).json()

        operation = document["paths"]["/stats"]["get"]
        assert operation["summary"] == "Server stats"
        assert operation["operationId"] == "getServerStats"
        assert list(operation["responses"]) == ["200"]
        assert operation["parameters"] == [
            {
                "name": "verbose",
                "in": "query",
                "required": False,
                "schema": {
                    "default": False,
                    "description": "Return detailed stats if true",
                    "type": "boolean",
                },
            }
        ]
        assert {"name": "monitoring"} in document["tags"]
