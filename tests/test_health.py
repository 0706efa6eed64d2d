"""
Tests for the health endpoints
"""
from unittest import mock

import redis

from backend import redis_backend


def test_basic_health(client):
    body = client.get("/health").json()
    assert body["status"] == "OK"
    assert body["service"] == "caffis"
    assert "version" in body and "environment" in body


def test_detailed_health(client):
    body = client.get("/health/detailed").json()
    assert body["status"] == "OK"
    assert body["checks"]["redis"] == "OK"
    assert body["uptime"] >= 0


def test_detailed_health_when_redis_fails(client):
    with mock.patch.object(redis_backend, "ping", side_effect=redis.ConnectionError("down")):
        response = client.get("/health/detailed")
    assert response.status_code == 503
    assert response.json()["status"] == "UNHEALTHY"
    assert response.json()["checks"]["redis"] == "ERROR"


def test_detailed_health_when_disconnected(client, monkeypatch):
    monkeypatch.setattr(redis_backend, "is_connected", False)
    response = client.get("/health/detailed")
    assert response.status_code == 200
    assert response.json()["status"] == "DEGRADED"


def test_redis_health_when_disconnected(client, monkeypatch):
    monkeypatch.setattr(redis_backend, "is_connected", False)
    response = client.get("/health/redis")
    assert response.status_code == 503
    assert response.json()["status"] == "DISCONNECTED"
    assert response.json()["connection"]["connected"] is False


def test_redis_health(client):
    with mock.patch.object(redis_backend, "memory_info", return_value=["used_memory:1024"]):
        body = client.get("/health/redis").json()
    assert body["status"] == "OK"
    assert body["ping"] is True
    assert body["memoryInfo"] == ["used_memory:1024"]
    assert body["connection"] == {"connected": True, "client": True}

    with mock.patch.object(redis_backend, "ping", side_effect=redis.ConnectionError("down")):
        assert client.get("/health/redis").status_code == 503


def test_health_stats(client):
    redis_backend.set_user_location("u1", {"latitude": 45.0, "longitude": 7.6, "city": "torino", "isAvailable": True})
    body = client.get("/health/stats").json()
    assert body["statistics"]["activeUsers"] == 1
    assert body["statistics"]["pendingInvites"] == 0


def test_unhandled_errors_are_hidden(fake_redis):
    from fastapi.testclient import TestClient
    from app import app

    with TestClient(app, raise_server_exceptions=False) as client:
        with mock.patch.object(redis_backend, "get_map_statistics", side_effect=RuntimeError("boom")):
            response = client.get("/health/stats")
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}
