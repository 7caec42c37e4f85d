"""Tests for health endpoints."""

from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from cla_api.main import app

client = TestClient(app)


def test_health_check():
    """Test health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "cla-bot-api"


def test_readiness_reports_unavailable_dependencies():
    """Readiness is 503 when the database or Redis cannot be reached."""
    session = MagicMock()
    session.execute.side_effect = RuntimeError("database down")
    redis_client = MagicMock()
    redis_client.ping.side_effect = ConnectionError("redis down")

    with patch("cla_api.db.session.SessionLocal", return_value=session), patch(
        "redis.from_url", return_value=redis_client
    ):
        response = client.get("/ready")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "not_ready"
    assert data["checks"] == {"database": False, "redis": False}


def test_readiness_ok():
    with patch("cla_api.db.session.SessionLocal", return_value=MagicMock()), patch(
        "redis.from_url", return_value=MagicMock()
    ):
        response = client.get("/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_root():
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["service"] == "CLA Bot API"


def test_correlation_id_echoed():
    response = client.get("/health", headers={"x-correlation-id": "abc-123"})
    assert response.headers["x-correlation-id"] == "abc-123"
    assert "x-correlation-id" in client.get("/health").headers
