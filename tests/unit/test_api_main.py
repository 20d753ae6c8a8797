"""
Unit tests for the application entry point.

The lifespan is not run here (TestClient is used without a context
manager), so app.state.pool is replaced by a MagicMock per test.
"""

import inspect
from unittest.mock import MagicMock

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient
from psycopg_pool import PoolTimeout

from clinic_onboarding.api.main import app


@pytest.fixture
def pool(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    mock_pool = MagicMock()
    monkeypatch.setattr(app.state, "pool", mock_pool, raising=False)
    return mock_pool


class TestHealthCheck:
    def test_healthy_when_database_answers(self, pool: MagicMock) -> None:
        response = TestClient(app).get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "ok"}
        pool.connection.return_value.__enter__.return_value.execute.assert_called_once_with("SELECT 1")

    def test_unhealthy_when_pool_times_out(self, pool: MagicMock) -> None:
        pool.connection.side_effect = PoolTimeout("couldn't get a connection after 2.00 sec")

        response = TestClient(app).get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"


class TestBlockingHandlers:
    """Handlers call psycopg synchronously, so FastAPI must run them in its threadpool."""

    def test_no_endpoint_is_a_coroutine(self) -> None:
        endpoints = [route for route in app.routes if isinstance(route, APIRoute)]

        assert endpoints
        for route in endpoints:
            assert not inspect.iscoroutinefunction(route.endpoint), route.path

    def test_registration_routes_are_mounted_under_v1(self) -> None:
        paths = {route.path for route in app.routes if isinstance(route, APIRoute)}

        assert "/v1/registration/start" in paths
        assert "/v1/registration/resend/{email_or_id}" in paths
        assert "/health" in paths
