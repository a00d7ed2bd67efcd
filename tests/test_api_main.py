"""Tests for the FastAPI app lifespan and route wiring."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from prospect_pipeline.container import ServiceContainer


@pytest.fixture
def container(repository, job_store, tracker, embedder, places, people, generator, analyst):
    built = ServiceContainer.build(
        repository=repository,
        jobs=job_store,
        embedder=embedder,
        places=places,
        people=people,
        generator=generator,
        analyst=analyst,
        tracker=tracker,
        retry_strategy="job",
    )
    built.close = AsyncMock()
    return built


class TestAppLifespan:
    @patch("prospect_pipeline.api.main.get_settings")
    def test_container_built_and_closed(self, mock_settings, container):
        mock_settings.return_value = MagicMock(SHUTDOWN_DRAIN_SECONDS=7.0)

        with patch(
            "prospect_pipeline.api.main.ServiceContainer.from_config",
            AsyncMock(return_value=container),
        ):
            from prospect_pipeline.api.main import app

            with TestClient(app) as client:
                assert app.state.container is container
                resp = client.get("/health")
                assert resp.status_code == 200

        container.close.assert_awaited_once_with(drain_timeout=7.0)

    @patch("prospect_pipeline.api.main.get_settings")
    def test_routes_require_auth(self, mock_settings, container):
        mock_settings.return_value = MagicMock(SHUTDOWN_DRAIN_SECONDS=1.0)

        with patch(
            "prospect_pipeline.api.main.ServiceContainer.from_config",
            AsyncMock(return_value=container),
        ):
            from prospect_pipeline.api.main import app

            with TestClient(app) as client:
                assert client.post("/jobs/tick").status_code in (401, 422)
                assert client.post("/runs", json={}).status_code in (401, 422)


class TestServe:
    @patch("prospect_pipeline.api.main.uvicorn.run")
    @patch("prospect_pipeline.api.main.get_settings")
    def test_main_runs_uvicorn_with_settings(self, mock_settings, mock_run):
        mock_settings.return_value = MagicMock(HOST="127.0.0.1", PORT=9100)

        from prospect_pipeline.api.main import app, main

        main()

        mock_run.assert_called_once()
        assert mock_run.call_args.args[0] is app
        assert mock_run.call_args.kwargs["host"] == "127.0.0.1"
        assert mock_run.call_args.kwargs["port"] == 9100
