"""Real-time map gateway.

Each socket is subscribed to its user channel and, once it picks a city, to
that city's channel. Connections are tracked in memory per instance; Redis
pub/sub carries events between instances and every instance forwards what it
receives to its own sockets.
"""
import asyncio
import json
import uuid
from typing import Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import redis

import geo
from backend import redis_backend, utc_now
from events import city_room, emit_to_city, location_event
from invites import InviteError, respond_to_invite, send_invite
from profiles import get_profile
from security import AuthError, decode_access_token, token_from_websocket
from logging_config import get_logger

logger = get_logger(__name__)

ws_router = APIRouter()

DEFAULT_INVITE_MESSAGE = "Would you like to get coffee together?"

# Format: {channel: {connection_id: websocket}}
channel_connections: Dict[str, Dict[str, WebSocket]] = {}

# Format: {channel: task}
channel_tasks: Dict[str, asyncio.Task] = {}


class SocketSession:
    def __init__(self, websocket: WebSocket, user_id: str):
        self.websocket = websocket
        self.user_id = user_id
        self.connection_id = str(uuid.uuid4())
        self.city: Optional[str] = None

    @property
    def room(self) -> Optional[str]:
        return city_room(self.city) if self.city else None

    async def emit(self, event: str, data: dict):
        await self.websocket.send_text(json.dumps({"event": event, "data": data}))

    async def error(self, message: str):
        await self.emit("error", {"message": message})


# Format: {connection_id: session}
sessions: Dict[str, SocketSession] = {}


def connected_users_count() -> int:
    return len({session.user_id for session in sessions.values()})


def connected_users_by_city() -> Dict[str, list]:
    rooms: Dict[str, list] = {}
    for session in sessions.values():
        if session.room:
            rooms.setdefault(session.room, []).append(session.user_id)
    return rooms


async def listen_to_redis_channel(channel: str, pubsub):
    """Forward messages from a Redis channel to the local sockets subscribed to it."""
    logger.info(f"Starting Redis pub/sub listener for channel: {channel}")
    loop = asyncio.get_running_loop()

    def get_message():
        try:
            return pubsub.get_message(timeout=1.0, ignore_subscribe_messages=True)
        except (redis.RedisError, ValueError) as e:
            logger.error(f"Error in pubsub.get_message() for channel {channel}: {e}", exc_info=True)
            return None

    try:
        while channel_connections.get(channel):
            message = await loop.run_in_executor(None, get_message)
            if message is None or message.get("type") != "message":
                continue

            try:
                payload = json.loads(message["data"])
            except json.JSONDecodeError as e:
                logger.error(f"Error parsing message from Redis channel {channel}: {e}")
                continue

            frame = json.dumps({"event": payload.get("event"), "data": payload.get("data")})
            excluded = payload.get("exclude")
            targets = [
                ws for conn_id, ws in list(channel_connections.get(channel, {}).items())
                if not (excluded and conn_id in sessions and sessions[conn_id].user_id == excluded)
            ]
            if targets:
                results = await asyncio.gather(*(ws.send_text(frame) for ws in targets), return_exceptions=True)
                failures = [r for r in results if isinstance(r, Exception)]
                if failures:
                    logger.warning(f"Failed to deliver {payload.get('event')} to {len(failures)} sockets on {channel}")
                logger.debug(f"Forwarded {payload.get('event')} to {len(targets) - len(failures)} sockets on {channel}")
    except asyncio.CancelledError:
        logger.info(f"Redis listener task cancelled for channel: {channel}")
    finally:
        try:
            pubsub.close()
        except redis.RedisError as e:
            logger.debug(f"Error closing pub/sub for channel {channel}: {e}")
        if channel_tasks.get(channel) is asyncio.current_task():
            del channel_tasks[channel]
        logger.debug(f"Listener stopped for channel: {channel}")


def join_channel(channel: str, session: SocketSession):
    connections = channel_connections.setdefault(channel, {})
    connections[session.connection_id] = session.websocket

    task = channel_tasks.get(channel)
    if task is None or task.done():
        # subscribe before returning so nothing published after the join is missed
        pubsub = redis_backend.subscribe(channel)
        channel_tasks[channel] = asyncio.create_task(listen_to_redis_channel(channel, pubsub))
        logger.debug(f"Started Redis pub/sub listener for channel: {channel}")


async def leave_channel(channel: str, session: SocketSession):
    connections = channel_connections.get(channel)
    if connections is None:
        return
    connections.pop(session.connection_id, None)
    if connections:
        return

    del channel_connections[channel]
    task = channel_tasks.pop(channel, None)
    if task and not task.done():
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    logger.info(f"No more local connections on {channel}, listener stopped")


async def move_to_city(session: SocketSession, city: str):
    city = city.lower()
    if session.city == city:
        return
    if session.city:
        await leave_channel(redis_backend.city_channel(session.city), session)
    join_channel(redis_backend.city_channel(city), session)
    session.city = city


# ============================================
# EVENT HANDLERS
# ============================================

async def handle_location_update(session: SocketSession, data: dict):
    latitude, longitude, city = data.get("latitude"), data.get("longitude"), data.get("city")
    if not city or not isinstance(city, str) or not geo.is_valid_coordinate(latitude, longitude):
        await session.error("Invalid location data")
        return

    is_available = data.get("isAvailable")
    location = redis_backend.set_user_location(session.user_id, {
        "latitude": latitude,
        "longitude": longitude,
        "city": city.lower(),
        "isAvailable": True if is_available is None else bool(is_available),
        "timestamp": utc_now(),
    })

    await move_to_city(session, city)
    redis_backend.add_user_to_city(session.user_id, city)
    emit_to_city(city, "user:location:new", location_event(location), exclude_user=session.user_id)

    await session.emit("location:updated", {"success": True, "city": session.room, "timestamp": location["timestamp"]})
    logger.debug(f"Location updated for user {session.user_id} in {city}")


async def handle_availability_toggle(session: SocketSession, data: dict):
    location = redis_backend.get_user_location(session.user_id)
    if not location:
        await session.error("No location found. Please update location first.")
        return

    is_available = data.get("isAvailable")
    if not isinstance(is_available, bool):
        await session.error("isAvailable must be a boolean value")
        return

    location["isAvailable"] = is_available
    location["timestamp"] = utc_now()
    redis_backend.set_user_location(session.user_id, location)
    redis_backend.set_user_availability(session.user_id, is_available)

    if session.city:
        emit_to_city(session.city, "user:availability:changed", {
            "userId": session.user_id,
            "isAvailable": is_available,
            "timestamp": location["timestamp"],
        }, exclude_user=session.user_id)

    await session.emit("availability:updated", {
        "success": True,
        "isAvailable": is_available,
        "timestamp": location["timestamp"],
    })


async def handle_invite_send(session: SocketSession, data: dict):
    to_user_id = data.get("toUserId")
    if not to_user_id:
        await session.error("Recipient user ID is required")
        return

    invite = send_invite(
        session.user_id,
        str(to_user_id),
        data.get("message"),
        DEFAULT_INVITE_MESSAGE,
        coffee_shop_id=data.get("coffeeShopId"),
        coffee_shop_name=data.get("coffeeShopName"),
        proposed_time=data.get("proposedTime"),
    )
    await session.emit("invite:sent", {"success": True, "inviteId": invite["id"], "timestamp": invite["timestamp"]})


async def handle_invite_response(session: SocketSession, data: dict):
    invite_id, response = data.get("inviteId"), data.get("response")
    if not invite_id or not response:
        await session.error("Invite ID and response are required")
        return

    try:
        invite = respond_to_invite(invite_id, session.user_id, response)
    except InviteError as e:
        logger.warning(f"Invite response from {session.user_id} rejected: {e}")
        await session.error(str(e))
        return

    await session.emit("invite:response:sent", {
        "success": True,
        "inviteId": invite_id,
        "response": response,
        "timestamp": invite["responseTimestamp"],
    })


async def handle_join_city(session: SocketSession, data: dict):
    city = data.get("city")
    if not city or not isinstance(city, str):
        await session.error("City is required")
        return

    await move_to_city(session, city)
    await session.emit("city:joined", {"success": True, "city": session.room, "timestamp": utc_now()})
    logger.debug(f"User {session.user_id} joined city room: {session.room}")


async def handle_leave_city(session: SocketSession, data: dict):
    room = session.room
    if session.city:
        await leave_channel(redis_backend.city_channel(session.city), session)
        session.city = None
    await session.emit("city:left", {"success": True, "city": room, "timestamp": utc_now()})


async def handle_profile_request(session: SocketSession, data: dict):
    user_id = data.get("userId")
    if not user_id:
        await session.error("User ID is required")
        return

    profile = get_profile(str(user_id)) or {"userId": user_id, "name": "Unknown User", "cached": False}
    await session.emit("user:profile:response", {"success": True, "profile": profile, "timestamp": utc_now()})


EVENT_HANDLERS = {
    "user:location:update": (handle_location_update, "Failed to update location"),
    "user:availability:toggle": (handle_availability_toggle, "Failed to update availability"),
    "invite:send": (handle_invite_send, "Failed to send invite"),
    "invite:response": (handle_invite_response, "Failed to respond to invite"),
    "join:city": (handle_join_city, "Failed to join city"),
    "leave:city": (handle_leave_city, "Failed to leave city"),
    "user:profile:request": (handle_profile_request, "Failed to get user profile"),
}


async def dispatch(session: SocketSession, raw: str):
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        await session.error("Invalid message format")
        return
    if not isinstance(frame, dict):
        await session.error("Invalid message format")
        return

    event = frame.get("event")
    data = frame.get("data")
    if not isinstance(data, dict):
        data = {}

    handler = EVENT_HANDLERS.get(event)
    if handler is None:
        logger.debug(f"Unknown event {event} from user {session.user_id}")
        await session.error("Unknown event")
        return

    func, failure_message = handler
    try:
        await func(session, data)
    except WebSocketDisconnect:
        raise
    except Exception as e:
        logger.error(f"Error handling {event} for user {session.user_id}: {e}", exc_info=True)
        await session.error(failure_message)


async def disconnect(session: SocketSession):
    sessions.pop(session.connection_id, None)
    await leave_channel(redis_backend.user_channel(session.user_id), session)

    if session.city:
        city = session.city
        await leave_channel(redis_backend.city_channel(city), session)
        session.city = None
        try:
            emit_to_city(city, "user:disconnected", {"userId": session.user_id, "timestamp": utc_now()},
                         exclude_user=session.user_id)
        except redis.RedisError as e:
            logger.debug(f"Could not broadcast disconnect for user {session.user_id}: {e}")

    logger.info(f"User disconnected: {session.user_id} (connection {session.connection_id})")


@ws_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Query parameters:
    - token: JWT, alternatively sent as an ``Authorization: Bearer`` header
    """
    token = token_from_websocket(websocket)
    if not token:
        logger.warning("WebSocket connection rejected: no token provided")
        await websocket.close(code=1008, reason="Authentication error: No token provided")
        return
    try:
        user = decode_access_token(token)
    except AuthError as e:
        logger.warning(f"WebSocket connection rejected: {e.message}")
        await websocket.close(code=1008, reason=f"Authentication error: {e.message}")
        return

    await websocket.accept()
    session = SocketSession(websocket, user["id"])
    sessions[session.connection_id] = session
    logger.info(f"User connected: {session.user_id} (connection {session.connection_id})")

    try:
        join_channel(redis_backend.user_channel(session.user_id), session)
        await session.emit("connection:success", {
            "message": "Connected to Caffis Map Service",
            "userId": session.user_id,
            "timestamp": utc_now(),
        })

        while True:
            raw = await websocket.receive_text()
            await dispatch(session, raw)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for user {session.user_id}")
    except redis.RedisError as e:
        logger.error(f"WebSocket error for user {session.user_id}: {e}", exc_info=True)
    finally:
        await disconnect(session)
