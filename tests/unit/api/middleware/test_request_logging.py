"""Unit tests for the request logging middleware and request metrics."""

from typing import Any

import pytest
from fastapi import FastAPI, HTTPException
from httpx import ASGITransport, AsyncClient
from pytest_mock import MockerFixture

from src.api.middleware.request_logging import RequestLoggingMiddleware, RequestMetrics
from src.core.config import LogConfig


@pytest.fixture
def metrics() -> RequestMetrics:
    return RequestMetrics()


@pytest.fixture
def app(metrics: RequestMetrics) -> FastAPI:
    application = FastAPI()
    application.add_middleware(
        RequestLoggingMiddleware,
        log_config=LogConfig(excluded_paths=["/health"]),
        metrics=metrics,
    )

    @application.get("/ok")
    async def ok() -> dict[str, str]:
        return {"status": "ok"}

    @application.get("/missing")
    async def missing() -> None:
        raise HTTPException(status_code=404)

    @application.get("/boom")
    async def boom() -> None:
        raise RuntimeError("boom")

    @application.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    return application


@pytest.mark.unit
class TestRequestMetrics:
    """Test the in-process counters."""

    def test_initial_state(self, metrics: RequestMetrics) -> None:
        """Verify all counters start at zero."""
        assert metrics.as_dict() == {
            "total": 0,
            "by_status": {"2xx": 0, "3xx": 0, "4xx": 0, "5xx": 0},
            "average_duration_ms": 0.0,
        }

    def test_record(self, metrics: RequestMetrics) -> None:
        """Verify requests are counted per status class and averaged."""
        metrics.record(200, 10.0)
        metrics.record(201, 20.0)
        metrics.record(503, 30.0)

        assert metrics.total == 3
        assert metrics.by_status["2xx"] == 2
        assert metrics.by_status["5xx"] == 1
        assert metrics.average_duration_ms == 20.0

    def test_unknown_status_class_only_counts_total(
        self, metrics: RequestMetrics
    ) -> None:
        """Verify informational statuses are not bucketed."""
        metrics.record(101, 1.0)

        assert metrics.total == 1
        assert sum(metrics.by_status.values()) == 0


@pytest.mark.unit
class TestRequestLoggingMiddleware:
    """Test request logging through a small application."""

    async def test_logs_and_counts_requests(
        self,
        app: FastAPI,
        metrics: RequestMetrics,
        log_records: list[dict[str, Any]],
    ) -> None:
        """Verify start and completion are logged with the status code."""
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as client:
            await client.get("/ok?limit=1")
            await client.get("/missing")

        messages = [r["message"] for r in log_records]
        assert messages.count("Request started") == 2
        assert messages.count("Request completed") == 2
        completed = [r for r in log_records if r["message"] == "Request completed"]
        assert completed[0]["extra"]["status_code"] == 200
        assert completed[0]["extra"]["path"] == "/ok"
        assert metrics.by_status["2xx"] == 1
        assert metrics.by_status["4xx"] == 1

    async def test_excluded_paths(
        self,
        app: FastAPI,
        metrics: RequestMetrics,
        log_records: list[dict[str, Any]],
    ) -> None:
        """Verify excluded paths are neither logged nor counted."""
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as client:
            await client.get("/health")

        assert not any(r["message"] == "Request started" for r in log_records)
        assert metrics.total == 0

    async def test_failed_request(
        self,
        app: FastAPI,
        metrics: RequestMetrics,
        log_records: list[dict[str, Any]],
    ) -> None:
        """Verify exceptions are logged, counted as 5xx and re-raised."""
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as client:
            with pytest.raises(RuntimeError):
                await client.get("/boom")

        failed = [r for r in log_records if r["message"] == "Request failed"]
        assert failed[0]["extra"]["error_type"] == "RuntimeError"
        assert metrics.by_status["5xx"] == 1

    async def test_slow_request_warning(
        self,
        app: FastAPI,
        log_records: list[dict[str, Any]],
        mocker: MockerFixture,
    ) -> None:
        """Verify requests above the threshold are flagged."""
        mocker.patch(
            "src.api.middleware.request_logging._elapsed_ms", return_value=5000.0
        )

        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as client:
            await client.get("/ok")

        slow = [r for r in log_records if r["message"] == "Slow request detected"]
        assert slow[0]["level"] == "WARNING"
        assert slow[0]["extra"]["threshold_ms"] == 1000
