import secrets
import time
from typing import Optional

from backend import redis_backend, utc_now
from events import emit_to_user
from logging_config import get_logger

logger = get_logger(__name__)

RESPONSE_STATUS = {"accept": "accepted", "decline": "declined"}


class InviteError(Exception):
    status_code = 400


class InviteNotFound(InviteError):
    status_code = 404


class InviteForbidden(InviteError):
    status_code = 403


def new_invite_id() -> str:
    return f"invite_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def send_invite(from_user_id: str, to_user_id: str, message: Optional[str], default_message: str,
                coffee_shop_id: Optional[str] = None, coffee_shop_name: Optional[str] = None,
                proposed_time: Optional[str] = None) -> dict:
    """Store a pending invite and push it to the recipient if they are online."""
    invite = {
        "id": new_invite_id(),
        "fromUserId": from_user_id,
        "toUserId": to_user_id,
        "message": message or default_message,
        "coffeeShopId": coffee_shop_id,
        "coffeeShopName": coffee_shop_name,
        "proposedTime": proposed_time,
        "timestamp": utc_now(),
        "status": "pending",
    }
    redis_backend.set_invite(invite)
    emit_to_user(to_user_id, "invite:received", invite)
    logger.info(f"Invite {invite['id']} sent from {from_user_id} to {to_user_id}")
    return invite


def respond_to_invite(invite_id: str, user_id: str, response: str) -> dict:
    invite = redis_backend.get_invite(invite_id)
    if not invite:
        raise InviteNotFound("Invite not found or expired")
    if invite["toUserId"] != user_id:
        raise InviteForbidden("Unauthorized to respond to this invite")
    if response not in RESPONSE_STATUS:
        raise InviteError("Response must be 'accept' or 'decline'")

    invite["status"] = RESPONSE_STATUS[response]
    invite["responseTimestamp"] = utc_now()
    redis_backend.set_invite(invite)

    emit_to_user(invite["fromUserId"], "invite:response:received", {
        "inviteId": invite_id,
        "response": response,
        "fromUserId": user_id,
        "timestamp": invite["responseTimestamp"],
    })
    logger.info(f"Invite {invite_id} {invite['status']} by user {user_id}")
    return invite

