"""Tests for the /health endpoint."""

from unittest.mock import AsyncMock, MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from prospect_pipeline.api.routes.health import router
from prospect_pipeline.repository import InMemoryRepository


def _make_app(repository) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    app.state.container = MagicMock(repository=repository)
    return app


class TestHealthRoute:
    def test_memory_store_always_ok(self):
        client = TestClient(_make_app(InMemoryRepository()))
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "store": "memory"}

    def test_postgres_ok(self):
        repository = MagicMock(spec=["verify_connectivity"])
        repository.verify_connectivity = AsyncMock(return_value=True)
        response = TestClient(_make_app(repository)).get("/health")
        assert response.status_code == 200
        assert response.json()["store"] == "postgres"

    def test_postgres_unreachable(self):
        repository = MagicMock(spec=["verify_connectivity"])
        repository.verify_connectivity = AsyncMock(return_value=False)
        response = TestClient(_make_app(repository)).get("/health")
        assert response.status_code == 503

    def test_postgres_check_raises(self):
        repository = MagicMock(spec=["verify_connectivity"])
        repository.verify_connectivity = AsyncMock(side_effect=ConnectionError("refused"))
        response = TestClient(_make_app(repository)).get("/health")
        assert response.status_code == 503
