"""Fan-out helpers: every real-time event goes through Redis pub/sub so that
sockets held by any instance receive it."""
from typing import Optional

from backend import redis_backend, utc_now
from logging_config import get_logger

logger = get_logger(__name__)


def envelope(event: str, data: dict, exclude_user: Optional[str] = None) -> dict:
    message = {"event": event, "data": data}
    if exclude_user:
        message["exclude"] = exclude_user
    return message


def emit_to_city(city: str, event: str, data: dict, exclude_user: Optional[str] = None) -> int:
    return redis_backend.publish(redis_backend.city_channel(city), envelope(event, data, exclude_user))


def emit_to_user(user_id: str, event: str, data: dict) -> int:
    """Returns the number of listening instances; 0 means the user is offline."""
    receivers = redis_backend.publish(redis_backend.user_channel(user_id), envelope(event, data))
    if not receivers:
        logger.debug(f"User {user_id} not connected, {event} not delivered live")
    return receivers


def city_room(city: str) -> str:
    return f"city:{city.lower()}"


def location_event(location: dict) -> dict:
    return {
        "userId": location["userId"],
        "latitude": location["latitude"],
        "longitude": location["longitude"],
        "isAvailable": location.get("isAvailable", True),
        "timestamp": location.get("timestamp") or utc_now(),
    }
