from fastapi import APIRouter, Depends, HTTPException

from backend import redis_backend
from security import get_current_user
from logging_config import get_logger

logger = get_logger(__name__)

requests_router = APIRouter(prefix="/api/requests", tags=["requests"])


def _set_status(request_id: str, user_id: str, status: str) -> dict:
    request = redis_backend.get_request(request_id)
    if not request:
        logger.warning(f"Request {request_id} not found")
        raise HTTPException(status_code=404, detail="Request not found")

    meetup = redis_backend.get_meetup(request["meetupId"])
    if not meetup or meetup.get("hostId") != user_id:
        logger.warning(f"User {user_id} tried to manage request {request_id} without hosting the meetup")
        raise HTTPException(status_code=403, detail="Not authorized to manage this request")

    request = redis_backend.update_request(request_id, status)
    logger.info(f"Request {request_id} {status} by host {user_id}")
    return request


@requests_router.post("/{request_id}/accept")
async def accept_request(request_id: str, current_user: dict = Depends(get_current_user)):
    request = _set_status(request_id, current_user["id"], "accepted")
    return {"message": "Request accepted", "request": request}


@requests_router.post("/{request_id}/reject")
async def reject_request(request_id: str, current_user: dict = Depends(get_current_user)):
    request = _set_status(request_id, current_user["id"], "rejected")
    return {"message": "Request rejected", "request": request}
