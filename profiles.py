from typing import Optional

from backend import redis_backend
from schemas.users import public_profile


def get_profile(user_id: str) -> Optional[dict]:
    """Cached public profile, filled from the account store on a miss."""
    profile = redis_backend.get_user_profile(user_id)
    if profile:
        return profile
    user = redis_backend.get_user(user_id)
    if not user:
        return None
    profile = public_profile(user)
    redis_backend.set_user_profile(user_id, profile)
    return profile


def placeholder_profile(user_id: str) -> dict:
    return {"userId": user_id, "name": f"User {user_id[-4:]}", "avatar": None, "cached": False}
