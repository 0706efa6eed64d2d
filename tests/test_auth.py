"""
Tests for registration, login, tokens and verification codes
"""
import inspect
from unittest import mock

import pytest

import verification
from backend import redis_backend
from conftest import auth
from routers.auth import login, register
from security import create_access_token, decode_access_token, hash_password, verify_password, InvalidToken

REGISTRATION = {
    "username": "giulia",
    "firstName": "Giulia",
    "lastName": "Bianchi",
    "email": "Giulia@Example.com",
    "password": "Espresso1",
    "phoneNumber": "+391234567",
}


def register(client, **overrides):
    return client.post("/api/auth/register", json={**REGISTRATION, **overrides})


def login_token(client, identifier="giulia", password="Espresso1"):
    response = client.post("/api/auth/login", json={"emailOrUsername": identifier, "password": password})
    assert response.status_code == 200
    return response.json()["token"]


def test_register_and_login(client):
    response = register(client)
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "User created"
    assert body["user"]["email"] == "giulia@example.com"
    assert "password" not in body["user"]
    assert body["user"]["isEmailVerified"] is False

    token = login_token(client)
    assert decode_access_token(token)["id"] == body["user"]["id"]
    # email lookup is case-insensitive
    assert login_token(client, identifier="GIULIA@example.com")


def test_register_rejects_duplicates(client):
    assert register(client).status_code == 201

    response = register(client, username="other")
    assert response.status_code == 400
    assert response.json()["detail"] == "Email already in use"

    response = register(client, email="other@example.com")
    assert response.status_code == 400
    assert response.json()["detail"] == "Username already in use"


@pytest.mark.parametrize("password", ["Short1", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
def test_register_rejects_weak_passwords(client, password):
    assert register(client, password=password).status_code == 422


def test_login_with_wrong_password(client):
    register(client)
    response = client.post("/api/auth/login", json={"emailOrUsername": "giulia", "password": "Wrong1234"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"

    response = client.post("/api/auth/login", json={"emailOrUsername": "nobody", "password": "Wrong1234"})
    assert response.status_code == 401


def test_me(client, mario):
    user, token = mario
    response = client.get("/api/auth/me", headers=auth(token))
    assert response.status_code == 200
    assert response.json()["username"] == "mario"

    ghost_token = create_access_token("ghost")
    assert client.get("/api/auth/me", headers=auth(ghost_token)).status_code == 404


def test_token_errors(client, mario):
    user, _ = mario
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json()["detail"] == "Access denied. No token provided."

    response = client.get("/api/auth/me", headers=auth("not.a.jwt"))
    assert response.json()["detail"] == "Access denied. Invalid token."

    expired = create_access_token(user["id"], expires_days=-1)
    response = client.get("/api/auth/me", headers=auth(expired))
    assert response.status_code == 401
    assert response.json()["detail"] == "Access denied. Token expired."


def test_decode_accepts_user_id_claim():
    import jwt
    from constants import JWT_SECRET, JWT_ALGORITHM

    token = jwt.encode({"userId": 42, "email": "a@b.c"}, JWT_SECRET, algorithm=JWT_ALGORITHM)
    decoded = decode_access_token(token)
    assert decoded["id"] == "42"
    assert decoded["email"] == "a@b.c"

    with pytest.raises(InvalidToken):
        decode_access_token(jwt.encode({"email": "a@b.c"}, JWT_SECRET, algorithm=JWT_ALGORITHM))


def test_password_hashing():
    hashed = hash_password("Espresso1")
    assert hashed != "Espresso1"
    assert verify_password("Espresso1", hashed)
    assert not verify_password("Espresso2", hashed)
    assert not verify_password("Espresso1", "garbage")


def test_email_verification_flow(client, mario, monkeypatch):
    user, token = mario
    monkeypatch.setattr(verification, "EMAIL_HOST", "smtp.example.com")

    with mock.patch("verification.smtplib.SMTP") as smtp:
        response = client.post("/api/auth/verification/send", headers=auth(token),
                               json={"type": "EMAIL", "purpose": "REGISTRATION"})
    assert response.status_code == 200
    sent = smtp.return_value.__enter__.return_value.send_message.call_args[0][0]
    assert sent["To"] == user["email"]

    code = redis_backend.get_verification_code(user["id"], "REGISTRATION")["code"]
    assert len(code) == 6
    assert code in sent.get_body(preferencelist=("plain",)).get_content()

    response = client.post("/api/auth/verification/verify", headers=auth(token),
                           json={"code": code, "purpose": "REGISTRATION"})
    assert response.status_code == 200
    assert response.json()["message"] == "Code verified successfully"
    assert redis_backend.get_user(user["id"])["isEmailVerified"] is True
    assert redis_backend.get_verification_code(user["id"], "REGISTRATION") is None


def test_verification_send_without_email_service(client, mario, monkeypatch):
    _, token = mario
    monkeypatch.setattr(verification, "EMAIL_HOST", None)
    response = client.post("/api/auth/verification/send", headers=auth(token), json={"type": "EMAIL"})
    assert response.status_code == 503
    assert response.json()["detail"] == "Email service not configured"


def test_sms_without_phone_number(client, mario):
    _, token = mario
    response = client.post("/api/auth/verification/send", headers=auth(token), json={"type": "SMS"})
    assert response.status_code == 400


def test_password_hashing_routes_run_in_threadpool():
    # bcrypt is CPU bound, so these must stay off the event loop
    assert not inspect.iscoroutinefunction(register)
    assert not inspect.iscoroutinefunction(login)
