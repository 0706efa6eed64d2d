from collections import Counter

from fastapi import APIRouter, Depends, HTTPException

from backend import redis_backend, utc_now
from schemas.users import (
    PREFERENCE_FIELDS, PreferencesRequest, PreferenceUpdateRequest, ProfileUpdateRequest,
    public_user, validate_preference,
)
from security import get_current_user
from logging_config import get_logger

logger = get_logger(__name__)

users_router = APIRouter(prefix="/api/user", tags=["users"])


def _require_user(user_id: str) -> dict:
    user = redis_backend.get_user(user_id)
    if not user:
        logger.warning(f"User {user_id} not found")
        raise HTTPException(status_code=404, detail="User not found")
    return user


@users_router.post("/preferences")
async def save_preferences(body: PreferencesRequest, current_user: dict = Depends(get_current_user)):
    user_id = current_user["id"]
    _require_user(user_id)

    preferences = body.preferences()
    completed = True if body.completed is None else body.completed
    user = redis_backend.update_user(user_id, {**preferences, "onboardingCompleted": completed})
    redis_backend.log_preferences(user_id, preferences)
    logger.info(f"Onboarding preferences saved for user {user_id}: {sorted(preferences)}")

    return {
        "message": "Preferences saved",
        "success": True,
        "user": {
            "id": user["id"],
            "firstName": user.get("firstName"),
            "lastName": user.get("lastName"),
            "onboardingCompleted": user.get("onboardingCompleted"),
        },
    }


@users_router.get("/preferences")
async def get_preferences(current_user: dict = Depends(get_current_user)):
    user = _require_user(current_user["id"])
    preferences = {field: user.get(field) for field in PREFERENCE_FIELDS}
    preferences["onboardingCompleted"] = user.get("onboardingCompleted", False)
    return {"success": True, "preferences": preferences}


@users_router.patch("/preferences/{field}")
async def update_preference(field: str, body: PreferenceUpdateRequest, current_user: dict = Depends(get_current_user)):
    if field not in PREFERENCE_FIELDS:
        logger.warning(f"Rejected update of unknown preference field {field}")
        raise HTTPException(status_code=400, detail="Field cannot be modified")
    try:
        value = validate_preference(field, body.value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    _require_user(current_user["id"])
    redis_backend.update_user(current_user["id"], {field: value})
    logger.info(f"Preference {field} updated for user {current_user['id']}")
    return {"message": "Preference updated", "success": True, "field": field, "value": value}


@users_router.get("/profile")
async def get_profile(current_user: dict = Depends(get_current_user)):
    user = _require_user(current_user["id"])
    return {"success": True, "user": public_user(user)}


@users_router.patch("/profile")
async def update_profile(body: ProfileUpdateRequest, current_user: dict = Depends(get_current_user)):
    user_id = current_user["id"]
    _require_user(user_id)

    if body.username and redis_backend.is_username_taken(body.username, exclude_id=user_id):
        logger.warning(f"Profile update failed: username {body.username} already in use")
        raise HTTPException(status_code=400, detail="Username already in use")

    fields = body.model_dump(by_alias=True, exclude_unset=True)
    # empty names are ignored, an empty bio clears it
    fields = {k: v for k, v in fields.items() if v or k == "bio"}
    if "bio" in fields and fields["bio"] is None:
        fields["bio"] = ""

    user = redis_backend.update_user(user_id, fields)
    # the public profile seen on the map is rebuilt on next lookup
    redis_backend.invalidate_user_profile(user_id)
    logger.info(f"Profile updated for user {user_id}: {sorted(fields)}")

    return {
        "message": "Profile updated",
        "success": True,
        "user": {k: user.get(k) for k in ("id", "firstName", "lastName", "username", "bio", "updatedAt")},
    }


@users_router.get("/onboarding-stats")
async def onboarding_stats(current_user: dict = Depends(get_current_user)):
    counts = {field: Counter() for field in PREFERENCE_FIELDS}
    snapshots = redis_backend.get_preferences_log()
    for snapshot in snapshots:
        for field, value in snapshot.get("preferences", {}).items():
            if field in counts and value:
                counts[field][value] += 1

    return {
        "success": True,
        "message": "Onboarding statistics",
        "totalSubmissions": len(snapshots),
        "stats": {field: dict(counter) for field, counter in counts.items()},
        "timestamp": utc_now(),
    }
