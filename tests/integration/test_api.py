"""Integration tests for the service endpoints and the mounted route table."""

from typing import Any

import pytest
from httpx import AsyncClient

from src.api.constants import CORRELATION_ID_HEADER, REQUEST_ID_HEADER, ROOT_MESSAGE
from src.routing.registry import RouteRegistry


async def list_users(request: Any) -> dict[str, list[str]]:
    return {"users": ["ada"]}


async def get_user(request: Any) -> dict[str, Any]:
    return {"id": request.path_params["user_id"]}


async def explode(request: Any) -> None:
    raise RuntimeError("handler failed")


@pytest.mark.integration
class TestServiceEndpoints:
    """Test the endpoints every instance serves."""

    async def test_root(self, client: AsyncClient) -> None:
        """The banner reports version, environment and uptime."""
        response = await client.get("/")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == ROOT_MESSAGE
        assert body["version"] == "0.1.0"
        assert body["environment"] == "development"
        assert body["uptime"] >= 0
        assert "timestamp" in body

    async def test_health(self, client: AsyncClient, registry: RouteRegistry) -> None:
        """Health combines registry counters with request metrics."""
        registry.add_route({"path": "/users", "handler": list_users})
        await client.get("/api/users")

        response = await client.get("/health")

        body = response.json()
        assert body["status"] == "healthy"
        assert body["routes"] == 1
        assert body["openapi_paths"] == 1
        assert body["requests"]["total"] == 1
        assert body["requests"]["by_status"]["2xx"] == 1

    async def test_document(self, client: AsyncClient, registry: RouteRegistry) -> None:
        """The live document reflects registrations and is cacheable."""
        registry.add_route({"path": "/users/{user_id:int}", "handler": get_user})

        response = await client.get("/openapi.json")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "public, max-age=3600"
        assert response.headers["content-type"] == "application/json"
        document = response.json()
        assert document["openapi"] == "3.0.0"
        assert "/users/{user_id}" in document["paths"]

    async def test_interactive_docs_not_served(self, client: AsyncClient) -> None:
        """FastAPI's own docs pages are disabled."""
        assert (await client.get("/docs")).status_code == 404
        assert (await client.get("/redoc")).status_code == 404

    async def test_context_headers(self, client: AsyncClient) -> None:
        """Every response carries the correlation and request IDs."""
        response = await client.get("/", headers={CORRELATION_ID_HEADER: "corr-1"})

        assert response.headers[CORRELATION_ID_HEADER] == "corr-1"
        assert response.headers[REQUEST_ID_HEADER].startswith("req-")


@pytest.mark.integration
class TestMountedRoutes:
    """Test dynamic routes served under the mount prefix."""

    async def test_registered_route_is_served(
        self, client: AsyncClient, registry: RouteRegistry
    ) -> None:
        """Routes registered after startup are reachable immediately."""
        registry.add_route({"path": "/users/{user_id:int}", "handler": get_user})

        response = await client.get("/api/users/7")

        assert response.status_code == 200
        assert response.json() == {"id": 7}

    async def test_unknown_path(self, client: AsyncClient) -> None:
        """Unbound paths answer 404 in the error envelope."""
        response = await client.get("/api/nothing")

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    async def test_wrong_method(
        self, client: AsyncClient, registry: RouteRegistry
    ) -> None:
        """A path bound for other verbs answers 405 with Allow."""
        registry.add_route({"path": "/users", "handler": list_users})

        response = await client.delete("/api/users")

        assert response.status_code == 405
        assert "GET" in response.headers["allow"]
        assert response.json()["error_code"] == "METHOD_NOT_ALLOWED"

    async def test_handler_error(
        self, client: AsyncClient, registry: RouteRegistry
    ) -> None:
        """Exceptions escaping a handler answer 500."""
        registry.add_route({"path": "/explode", "handler": explode})

        response = await client.get("/api/explode")

        assert response.status_code == 500
        assert response.json()["error_code"] == "INTERNAL_ERROR"
