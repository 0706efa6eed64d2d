"""
Tests for onboarding preferences and profile editing
"""
from backend import redis_backend
from conftest import auth, make_user

ANSWERS = {
    "ageRange": "25-34",
    "coffeePersonality": "slow",
    "socialEnergy": "introvert",
    "conversationTopics": "work, hobbies",
    "groupPreference": "one_on_one",
    "locationPreference": "quiet",
    "timePreference": "planned",
    "socialGoals": "friendship",
    "meetingFrequency": "weekly",
}


def test_save_and_read_preferences(client, mario):
    user, token = mario
    response = client.post("/api/user/preferences", headers=auth(token), json=ANSWERS)
    assert response.status_code == 200
    assert response.json()["user"]["onboardingCompleted"] is True

    preferences = client.get("/api/user/preferences", headers=auth(token)).json()["preferences"]
    assert preferences["coffeePersonality"] == "slow"
    assert preferences["conversationTopics"] == "work,hobbies"
    assert preferences["onboardingCompleted"] is True
    assert len(redis_backend.get_preferences_log()) == 1


def test_preferences_reject_unknown_options(client, mario):
    _, token = mario
    response = client.post("/api/user/preferences", headers=auth(token), json={"coffeePersonality": "decaf"})
    assert response.status_code == 422
    assert redis_backend.get_preferences_log() == []


def test_partial_preferences_can_leave_onboarding_open(client, mario):
    user, token = mario
    response = client.post("/api/user/preferences", headers=auth(token),
                           json={"ageRange": "18-24", "completed": False})
    assert response.status_code == 200
    assert redis_backend.get_user(user["id"])["onboardingCompleted"] is False


def test_patch_single_preference(client, mario):
    user, token = mario
    response = client.patch("/api/user/preferences/socialEnergy", headers=auth(token), json={"value": "extrovert"})
    assert response.status_code == 200
    assert redis_backend.get_user(user["id"])["socialEnergy"] == "extrovert"

    response = client.patch("/api/user/preferences/socialEnergy", headers=auth(token), json={"value": "loud"})
    assert response.status_code == 400

    response = client.patch("/api/user/preferences/email", headers=auth(token), json={"value": "x@y.z"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Field cannot be modified"


def test_profile_update(client, mario):
    user, token = mario
    redis_backend.set_user_profile(user["id"], {"userId": user["id"], "name": "stale"})

    response = client.patch("/api/user/profile", headers=auth(token),
                            json={"firstName": "Marietto", "bio": "Ristretto only", "username": "mario_r"})
    assert response.status_code == 200
    body = response.json()["user"]
    assert body["firstName"] == "Marietto"
    assert body["username"] == "mario_r"

    assert redis_backend.get_user_by_username("mario_r")["id"] == user["id"]
    assert redis_backend.get_user_by_username("mario") is None
    assert redis_backend.get_user_profile(user["id"]) is None

    profile = client.get("/api/user/profile", headers=auth(token)).json()["user"]
    assert profile["bio"] == "Ristretto only"
    assert "password" not in profile


def test_profile_update_validation(client, mario, luigi):
    _, token = mario
    response = client.patch("/api/user/profile", headers=auth(token), json={"username": "luigi"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Username already in use"

    # keeping your own username is fine
    assert client.patch("/api/user/profile", headers=auth(token), json={"username": "mario"}).status_code == 200

    assert client.patch("/api/user/profile", headers=auth(token), json={"firstName": "M"}).status_code == 422
    assert client.patch("/api/user/profile", headers=auth(token), json={"username": "has space"}).status_code == 422
    assert client.patch("/api/user/profile", headers=auth(token), json={"bio": "x" * 501}).status_code == 422


def test_onboarding_stats(client, fake_redis):
    for i, personality in enumerate(["slow", "slow", "quick"]):
        _, token = make_user(f"user{i}")
        client.post("/api/user/preferences", headers=auth(token), json={"coffeePersonality": personality})

    response = client.get("/api/user/onboarding-stats", headers=auth(token))
    body = response.json()
    assert body["totalSubmissions"] == 3
    assert body["stats"]["coffeePersonality"] == {"slow": 2, "quick": 1}
    assert body["stats"]["ageRange"] == {}
