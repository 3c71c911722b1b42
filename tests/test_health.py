"""
tests/test_health.py -- Integration tests for the health endpoints.

Covers:
  - /health/live is 200 {status: alive} whatever the database state
  - /health/ready is 200 only while connected, else 503 with a reason
  - /health reports uptime, timestamp, environment and database state
  - Security headers are set on every response
  - Unknown routes still answer in the envelope shape
"""

from __future__ import annotations


def test_live_returns_alive(client):
    resp = client.get("/health/live")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["statusCode"] == 200
    assert body["data"] == {"status": "alive"}


def test_ready_when_connected(client):
    resp = client.get("/health/ready")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "ready"


def test_health_reports_services(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["message"] == "OK"
    assert data["environment"] == "test"
    assert data["services"] == {"database": "connected"}
    assert data["uptime"] >= 0
    assert isinstance(data["timestamp"], int)


def test_health_checks_after_database_loss(client):
    """Readiness and full health go 503 when the database drops; liveness does not."""
    client.app.state.db.disconnect()

    ready = client.get("/health/ready")
    assert ready.status_code == 503
    body = ready.json()
    assert body["success"] is False
    assert body["data"]["reason"]

    health = client.get("/health")
    assert health.status_code == 503
    assert health.json()["data"]["services"]["database"] == "disconnected"

    live = client.get("/health/live")
    assert live.status_code == 200
    assert live.json()["data"]["status"] == "alive"


def test_security_headers_present(client):
    resp = client.get("/health/live")
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "SAMEORIGIN"
    assert resp.headers["referrer-policy"] == "no-referrer"
    assert "default-src 'self'" in resp.headers["content-security-policy"]


def test_cors_allows_configured_origin(client):
    resp = client.get("/health/live", headers={"Origin": "http://localhost:3000"})
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert resp.headers["access-control-allow-credentials"] == "true"


def test_cors_ignores_unknown_origin(client):
    resp = client.get("/health/live", headers={"Origin": "https://evil.example.com"})
    assert "access-control-allow-origin" not in resp.headers


def test_unknown_route_is_enveloped_404(client):
    resp = client.get("/nope")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["statusCode"] == 404
