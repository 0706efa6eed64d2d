import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import fakeredis
import pytest
from fastapi.testclient import TestClient

from backend import redis_backend
from places import places_client
from security import create_access_token


@pytest.fixture
def fake_redis(monkeypatch):
    """Both backend clients share one in-memory server so pub/sub works across them."""
    server = fakeredis.FakeServer()
    monkeypatch.setattr(redis_backend, "redis_client", fakeredis.FakeRedis(server=server, decode_responses=True))
    monkeypatch.setattr(redis_backend, "pubsub_client", fakeredis.FakeRedis(server=server, decode_responses=True))
    monkeypatch.setattr(redis_backend, "is_connected", True)
    monkeypatch.setattr(places_client, "api_key", None)
    return redis_backend.redis_client


@pytest.fixture
def client(fake_redis):
    from app import app
    with TestClient(app) as test_client:
        yield test_client


def make_user(username="mario", email=None, **fields):
    user = redis_backend.create_user({
        "username": username,
        "firstName": fields.pop("firstName", "Mario"),
        "lastName": fields.pop("lastName", "Rossi"),
        "email": email or f"{username}@example.com",
        "password": fields.pop("password", "not-a-hash"),
        **fields,
    })
    return user, create_access_token(user["id"], email=user["email"])


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def mario(fake_redis):
    return make_user("mario")


@pytest.fixture
def luigi(fake_redis):
    return make_user("luigi", firstName="Luigi")
