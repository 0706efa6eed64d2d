from fastapi import APIRouter, Depends, HTTPException
import redis

from backend import redis_backend
from schemas.meetups import MeetupCreateRequest
from security import get_current_user
from logging_config import get_logger

logger = get_logger(__name__)

meetups_router = APIRouter(prefix="/api/invites", tags=["meetups"])


def user_summary(user_id: str) -> dict:
    user = redis_backend.get_user(user_id) or {}
    return {
        "id": user_id,
        "firstName": user.get("firstName"),
        "lastName": user.get("lastName"),
        "username": user.get("username"),
    }


@meetups_router.post("/", status_code=201)
async def create_meetup(body: MeetupCreateRequest, current_user: dict = Depends(get_current_user)):
    logger.info(f"Meetup creation request from user {current_user['id']}: {body.title}")
    try:
        meetup = redis_backend.create_meetup(current_user["id"], body.model_dump(mode="json"))
    except redis.RedisError as e:
        logger.error(f"Error creating meetup: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create invite")
    return {"message": "Invite created", "invite": meetup}


@meetups_router.get("/")
async def list_meetups():
    meetups = redis_backend.list_open_meetups()
    return [{**meetup, "host": user_summary(meetup["hostId"])} for meetup in meetups]


@meetups_router.get("/my")
async def my_meetups(current_user: dict = Depends(get_current_user)):
    meetups = []
    for meetup in redis_backend.list_meetups_by_host(current_user["id"]):
        requests = [
            {**request, "user": user_summary(request["userId"])}
            for request in redis_backend.get_requests_for_meetup(meetup["id"])
        ]
        meetups.append({**meetup, "requests": requests})
    return meetups


@meetups_router.post("/{meetup_id}/request", status_code=201)
async def request_to_join(meetup_id: str, current_user: dict = Depends(get_current_user)):
    user_id = current_user["id"]
    meetup = redis_backend.get_meetup(meetup_id)
    if not meetup:
        logger.warning(f"Join request failed: meetup {meetup_id} not found")
        raise HTTPException(status_code=404, detail="Invite not found")
    if redis_backend.find_request(meetup_id, user_id):
        logger.warning(f"Join request failed: user {user_id} already requested meetup {meetup_id}")
        raise HTTPException(status_code=400, detail="Already requested this invite")

    request = redis_backend.create_request(meetup_id, user_id)
    return {"message": "Request sent", "request": request}
