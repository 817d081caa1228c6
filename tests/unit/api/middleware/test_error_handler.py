"""Unit tests for the global exception handlers."""

from typing import Any

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel
from starlette.exceptions import HTTPException

from src.api.middleware.error_handler import (
    generic_exception_handler,
    register_exception_handlers,
    routeforge_error_handler,
    status_code_for,
)
from src.core.exceptions import (
    AggregateLoadError,
    LoadShapeError,
    RouteNotFoundError,
    ValidationFailure,
)

SCOPE = {
    "type": "http",
    "method": "GET",
    "path": "/",
    "query_string": b"",
    "headers": [],
}


class Widget(BaseModel):
    name: str


@pytest.fixture
def app() -> FastAPI:
    application = FastAPI()
    register_exception_handlers(application)

    @application.get("/validation")
    async def validation() -> None:
        raise ValidationFailure({"name": ["Field required"]})

    @application.get("/missing-route")
    async def missing_route() -> None:
        raise RouteNotFoundError("users")

    @application.get("/bad-export")
    async def bad_export() -> None:
        raise LoadShapeError("routes/a.py", "bad")

    @application.get("/teapot")
    async def teapot() -> None:
        raise HTTPException(status_code=405, headers={"Allow": "GET"})

    @application.get("/crash")
    async def crash() -> None:
        raise RuntimeError("password=hunter2")

    @application.post("/widgets")
    async def widgets(widget: Widget) -> dict[str, str]:
        return {"name": widget.name}

    return application


async def call(app: FastAPI, method: str, path: str, **kwargs: Any) -> Any:
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as client:
        return await client.request(method, path, **kwargs)


@pytest.mark.unit
class TestStatusMapping:
    """Test mapping exceptions to status codes."""

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (ValidationFailure({}), 400),
            (RouteNotFoundError("x"), 404),
            (LoadShapeError("a.py", "bad"), 422),
            (AggregateLoadError({}), 500),
        ],
    )
    def test_status_code_for(self, error: Exception, expected: int) -> None:
        """Verify each error family maps to its status code."""
        assert status_code_for(error) == expected  # type: ignore[arg-type]

    async def test_handlers_reject_wrong_types(self) -> None:
        """Verify the typed handler refuses other exceptions."""
        request = Request(SCOPE)

        with pytest.raises(TypeError):
            await routeforge_error_handler(request, RuntimeError())


@pytest.mark.unit
class TestErrorResponses:
    """Test the error envelope through a small application."""

    async def test_validation_failure(self, app: FastAPI) -> None:
        """Verify field errors are returned under details."""
        response = await call(app, "GET", "/validation")

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["details"] == {"validation_errors": {"name": ["Field required"]}}
        assert body["severity"] == "LOW"
        assert body["debug_info"] is None
        assert body["service_info"]["name"] == "RouteForge"

    async def test_route_not_found(self, app: FastAPI) -> None:
        """Verify unknown route names answer 404."""
        response = await call(app, "GET", "/missing-route")

        assert response.status_code == 404
        assert response.json()["error_code"] == "ROUTE_NOT_FOUND"

    async def test_registration_error_has_debug_info(self, app: FastAPI) -> None:
        """Verify registration errors answer 422 with debug info in development."""
        response = await call(app, "GET", "/bad-export")

        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "INVALID_ROUTE_EXPORT"
        assert body["debug_info"]["exception_type"] == "LoadShapeError"

    async def test_http_exception_keeps_headers(self, app: FastAPI) -> None:
        """Verify 405 responses keep the Allow header."""
        response = await call(app, "GET", "/teapot")

        assert response.status_code == 405
        assert response.headers["allow"] == "GET"
        assert response.json()["error_code"] == "METHOD_NOT_ALLOWED"

    async def test_unknown_path(self, app: FastAPI) -> None:
        """Verify unmatched paths use the error envelope."""
        response = await call(app, "GET", "/nowhere")

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    async def test_request_validation_error(self, app: FastAPI) -> None:
        """Verify FastAPI request validation answers 422 grouped by field."""
        response = await call(app, "POST", "/widgets", json={})

        assert response.status_code == 422
        assert "name" in response.json()["details"]["validation_errors"]

    async def test_unhandled_exception(self, app: FastAPI) -> None:
        """Verify unexpected errors answer 500."""
        response = await call(app, "GET", "/crash")

        assert response.status_code == 500
        body = response.json()
        assert body["error_code"] == "INTERNAL_ERROR"
        assert body["severity"] == "CRITICAL"

    async def test_production_hides_details(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Verify production responses do not leak exception details."""
        monkeypatch.setenv("ENVIRONMENT", "production")
        request = Request(SCOPE)

        response = await generic_exception_handler(request, RuntimeError("secret"))

        assert b"secret" not in response.body
        assert b"An internal server error occurred" in response.body
