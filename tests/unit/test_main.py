"""Unit tests for the API entry point."""

import os
from unittest.mock import MagicMock, patch

import fakeredis
from fastapi import FastAPI
from fastapi.testclient import TestClient

from main import create_app, get_redis_client, main


class TestGetRedisClient:
    """Tests for get_redis_client."""

    def test_uses_default_url(self):
        """Should use default localhost URL."""
        with patch.dict(os.environ, {}, clear=True):
            with patch("main.redis.Redis") as mock_redis:
                get_redis_client()
                mock_redis.from_url.assert_called_once_with(
                    "redis://localhost:6379", decode_responses=True
                )

    def test_uses_environment_url(self):
        """Should use REDIS_URL from environment."""
        with patch.dict(os.environ, {"REDIS_URL": "redis://custom:1234"}):
            with patch("main.redis.Redis") as mock_redis:
                get_redis_client()
                mock_redis.from_url.assert_called_once_with(
                    "redis://custom:1234", decode_responses=True
                )


class TestCreateApp:
    """Tests for create_app."""

    def test_wires_real_services(self):
        """App built over a Redis client serves ingestion end to end."""
        app = create_app(fakeredis.FakeRedis(decode_responses=True))
        assert isinstance(app, FastAPI)

        client = TestClient(app)
        client.put(
            "/workflows/wf-1",
            json={
                "code": "ping",
                "nodes": [{"node_type": "sms", "id": "s", "to_template": "1", "body_template": "x"}],
            },
        )
        first = client.post("/triggers", json={"workflow_id": "wf-1", "idempotency_key": "k"})
        second = client.post("/triggers", json={"workflow_id": "wf-1", "idempotency_key": "k"})

        assert first.json()["created"] is True
        assert second.json()["instance_id"] == first.json()["instance_id"]

    def test_uses_environment_client_by_default(self):
        with patch("main.get_redis_client", return_value=MagicMock()) as mock_get:
            create_app()
            mock_get.assert_called_once()


class TestMain:
    """Tests for main function."""

    def test_runs_uvicorn(self, tmp_path):
        """Should configure logging and start uvicorn with parsed args."""
        argv = [
            "main", "--host", "0.0.0.0", "--port", "9001",
            "--log-level", "debug", "--log-dir", str(tmp_path),
        ]
        with patch("sys.argv", argv):
            with patch("main.create_app") as mock_create:
                with patch("main.uvicorn.run") as mock_run:
                    with patch("main.configure_logging") as mock_logging:
                        result = main()

        assert result == 0
        mock_logging.assert_called_once()
        mock_run.assert_called_once_with(
            mock_create.return_value, host="0.0.0.0", port=9001, log_level="debug"
        )
