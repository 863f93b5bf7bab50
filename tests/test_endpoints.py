"""Tests for the HTTP endpoints in main."""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, Mock, patch
import logging
import sys
import os

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))


@pytest.fixture
def client():
    """Test client without the startup hook, so no real services are built."""
    import main

    # Lifespan events only run when TestClient is used as a context manager
    client = TestClient(main.app)
    main.job_runner = Mock(pending=2)
    main.socket_handler = None
    main.request_handler = Mock()
    main.request_handler.handle = AsyncMock(return_value={"ok": True})
    yield client
    main.job_runner = None
    main.request_handler = None


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_health_reports_jobs_and_mode(client):
    data = client.get("/health").json()

    assert data["status"] == "healthy"
    assert data["socket_mode"] is False
    assert data["pending_jobs"] == 2


def test_slack_events_delegates_to_bolt(client):
    import main

    response = client.post("/slack/events", json={"type": "url_verification", "challenge": "abc"})

    assert response.status_code == 200
    main.request_handler.handle.assert_awaited_once()


@pytest.mark.parametrize("enabled, expected", [
    (True, "LangSmith tracing enabled, project: data-bot"),
    (False, "LangSmith tracing disabled"),
])
def test_tracing_config_is_logged(caplog, enabled, expected):
    import main

    with patch('main.LANGSMITH_TRACING', enabled), patch('main.LANGSMITH_PROJECT', 'data-bot'):
        with caplog.at_level(logging.INFO, logger='main'):
            main.log_tracing_config()

    assert expected in caplog.text
