"""
Tests for host-posted meetups and join requests
"""
from conftest import auth

MEETUP = {
    "title": "Morning espresso",
    "description": "Quick coffee before work",
    "time": "2026-11-02T08:30:00Z",
    "location": "Piazza Castello",
}


def create_meetup(client, token, **overrides):
    response = client.post("/api/invites/", headers=auth(token), json={**MEETUP, **overrides})
    assert response.status_code == 201
    return response.json()["invite"]


def test_create_and_list(client, mario, luigi):
    host, host_token = mario
    _, guest_token = luigi

    first = create_meetup(client, host_token)
    second = create_meetup(client, host_token, title="Afternoon cappuccino")
    assert first["hostId"] == host["id"]
    assert first["open"] is True

    listed = client.get("/api/invites/", headers=auth(guest_token)).json()
    assert [m["id"] for m in listed] == [second["id"], first["id"]]
    assert listed[0]["host"] == {"id": host["id"], "firstName": "Mario", "lastName": "Rossi", "username": "mario"}


def test_create_requires_fields(client, mario):
    _, token = mario
    response = client.post("/api/invites/", headers=auth(token), json={"title": "No time"})
    assert response.status_code == 422


def test_join_request_flow(client, mario, luigi):
    _, host_token = mario
    guest, guest_token = luigi
    meetup = create_meetup(client, host_token)

    response = client.post(f"/api/invites/{meetup['id']}/request", headers=auth(guest_token))
    assert response.status_code == 201
    request_id = response.json()["request"]["id"]

    duplicate = client.post(f"/api/invites/{meetup['id']}/request", headers=auth(guest_token))
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Already requested this invite"

    mine = client.get("/api/invites/my", headers=auth(host_token)).json()
    assert mine[0]["requests"][0]["user"]["username"] == "luigi"
    assert mine[0]["requests"][0]["status"] == "pending"

    # only the host can decide
    assert client.post(f"/api/requests/{request_id}/accept", headers=auth(guest_token)).status_code == 403

    response = client.post(f"/api/requests/{request_id}/accept", headers=auth(host_token))
    assert response.status_code == 200
    assert response.json()["request"]["status"] == "accepted"

    response = client.post(f"/api/requests/{request_id}/reject", headers=auth(host_token))
    assert response.json()["request"]["status"] == "rejected"


def test_unknown_meetup_and_request(client, mario):
    _, token = mario
    assert client.post("/api/invites/nope/request", headers=auth(token)).status_code == 404
    response = client.post("/api/requests/nope/accept", headers=auth(token))
    assert response.status_code == 404
    assert response.json()["detail"] == "Request not found"


def test_listing_is_public(client, mario):
    _, token = mario
    meetup = create_meetup(client, token)

    response = client.get("/api/invites/")
    assert response.status_code == 200
    assert [m["id"] for m in response.json()] == [meetup["id"]]

    assert client.get("/api/invites/my").status_code == 401
