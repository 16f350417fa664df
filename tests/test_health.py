"""Tests for the /health endpoint."""

from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from storyrelay.services.session_store import SessionStore


def test_health_returns_ok(client: TestClient) -> None:
    """GET /health should return 200 with status 'ok'."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "connected"}


def test_health_reports_database_down(client: TestClient) -> None:
    """A failing store ping is reported, not raised."""
    with patch.object(
        SessionStore, "ping", side_effect=OperationalError("SELECT 1", {}, Exception("gone"))
    ):
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "error", "database": "disconnected"}
