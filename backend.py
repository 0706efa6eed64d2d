import json
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

import redis

from constants import (
    REDIS_HOST, REDIS_PORT, REDIS_PASSWORD,
    LOCATION_TTL, CITY_USERS_TTL, AVAILABILITY_TTL, INVITE_TTL, COFFEE_SHOPS_TTL, USER_PROFILE_TTL,
)
from redis_keys import (
    REDIS_LOCATION_KEY, REDIS_CITY_USERS_KEY, REDIS_AVAILABILITY_KEY, REDIS_INVITE_KEY,
    REDIS_COFFEE_SHOPS_KEY, REDIS_PROFILE_KEY, REDIS_CITY_CHANNEL, REDIS_USER_CHANNEL,
    REDIS_USER_KEY, REDIS_USER_EMAIL_KEY, REDIS_USER_USERNAME_KEY, REDIS_PREFERENCES_LOG_KEY,
    REDIS_VERIFICATION_KEY, REDIS_MEETUP_KEY, REDIS_OPEN_MEETUPS_KEY, REDIS_HOST_MEETUPS_KEY,
    REDIS_REQUEST_KEY, REDIS_MEETUP_REQUESTS_KEY,
)
from logging_config import get_logger

logger = get_logger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _encode_hash(data: dict) -> Dict[str, str]:
    # Every field is JSON so bools/ints survive the round trip; None is skipped
    return {k: json.dumps(v) for k, v in data.items() if v is not None}


def _decode_hash(data: dict) -> dict:
    result = {}
    for k, v in data.items():
        try:
            result[k] = json.loads(v)
        except (json.JSONDecodeError, TypeError):
            result[k] = v
    return result


class RedisBackend:
    def __init__(self):
        logger.info(f"Initializing RedisBackend with connection to {REDIS_HOST}:{REDIS_PORT}")
        self.redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
        # Separate connection for pub/sub (required by Redis)
        self.pubsub_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
        self.is_connected = False

    def connect(self):
        try:
            self.redis_client.ping()
            self.pubsub_client.ping()
            self.is_connected = True
            logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        except redis.RedisError as e:
            self.is_connected = False
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
            raise

    def close(self):
        for client in (self.redis_client, self.pubsub_client):
            try:
                client.close()
            except redis.RedisError as e:
                logger.debug(f"Error closing Redis client: {e}")
        self.is_connected = False
        logger.info("Redis disconnected")

    # ============================================
    # GENERIC JSON VALUES
    # ============================================

    def set_json(self, key: str, value, ttl: Optional[int] = None):
        payload = json.dumps(value)
        if ttl:
            self.redis_client.setex(key, ttl, payload)
        else:
            self.redis_client.set(key, payload)
        return True

    def get_json(self, key: str):
        data = self.redis_client.get(key)
        if data is None:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt JSON stored at {key}: {e}")
            return None

    # ============================================
    # LOCATION OPERATIONS
    # ============================================

    def set_user_location(self, user_id: str, location_data: dict) -> dict:
        key = REDIS_LOCATION_KEY.format(user_id=user_id)
        data = {**location_data, "userId": user_id, "timestamp": location_data.get("timestamp") or utc_now()}
        self.set_json(key, data, LOCATION_TTL)
        logger.info(f"Location saved for user {user_id}")
        return data

    def get_user_location(self, user_id: str) -> Optional[dict]:
        return self.get_json(REDIS_LOCATION_KEY.format(user_id=user_id))

    def remove_user_location(self, user_id: str):
        deleted = self.redis_client.delete(REDIS_LOCATION_KEY.format(user_id=user_id))
        logger.info(f"Location removed for user {user_id} (deleted={deleted})")
        return bool(deleted)

    # ============================================
    # CITY-BASED USER GROUPS
    # ============================================

    def add_user_to_city(self, user_id: str, city: str):
        key = REDIS_CITY_USERS_KEY.format(city=city.lower())
        self.redis_client.sadd(key, user_id)
        self.redis_client.expire(key, CITY_USERS_TTL)
        logger.debug(f"User {user_id} added to city {city}")

    def remove_user_from_city(self, user_id: str, city: str):
        key = REDIS_CITY_USERS_KEY.format(city=city.lower())
        removed = self.redis_client.srem(key, user_id)
        logger.debug(f"User {user_id} removed from city {city} (removed={removed})")

    def get_city_user_ids(self, city: str):
        return self.redis_client.smembers(REDIS_CITY_USERS_KEY.format(city=city.lower()))

    def get_users_in_city(self, city: str) -> List[dict]:
        """Location records for members of a city set; expired locations are skipped."""
        locations = []
        for user_id in sorted(self.get_city_user_ids(city)):
            location = self.get_user_location(user_id)
            if location:
                locations.append(location)
        logger.debug(f"City {city} has {len(locations)} users with live locations")
        return locations

    # ============================================
    # AVAILABILITY
    # ============================================

    def set_user_availability(self, user_id: str, is_available: bool):
        data = {"userId": user_id, "isAvailable": is_available, "timestamp": utc_now()}
        self.set_json(REDIS_AVAILABILITY_KEY.format(user_id=user_id), data, AVAILABILITY_TTL)
        logger.info(f"Availability set for user {user_id}: {is_available}")
        return data

    def get_user_availability(self, user_id: str) -> Optional[dict]:
        return self.get_json(REDIS_AVAILABILITY_KEY.format(user_id=user_id))

    # ============================================
    # MAP INVITES
    # ============================================

    def set_invite(self, invite: dict):
        self.set_json(REDIS_INVITE_KEY.format(invite_id=invite["id"]), invite, INVITE_TTL)
        logger.info(f"Invite stored: {invite['id']}")
        return invite

    def get_invite(self, invite_id: str) -> Optional[dict]:
        return self.get_json(REDIS_INVITE_KEY.format(invite_id=invite_id))

    def get_invites_for_user(self, user_id: str) -> List[dict]:
        invites = []
        for key in self.redis_client.scan_iter(match=REDIS_INVITE_KEY.format(invite_id="*")):
            invite = self.get_json(key)
            if invite and user_id in (invite.get("fromUserId"), invite.get("toUserId")):
                invites.append(invite)
        invites.sort(key=lambda i: i.get("timestamp", ""), reverse=True)
        return invites

    # ============================================
    # COFFEE SHOP CACHE
    # ============================================

    def set_coffee_shops(self, city: str, shops: list):
        self.set_json(REDIS_COFFEE_SHOPS_KEY.format(city=city.lower()), shops, COFFEE_SHOPS_TTL)
        logger.info(f"Coffee shops cached for {city} ({len(shops)} shops)")

    def get_coffee_shops(self, city: str) -> Optional[list]:
        return self.get_json(REDIS_COFFEE_SHOPS_KEY.format(city=city.lower()))

    # ============================================
    # USER PROFILE CACHE
    # ============================================

    def set_user_profile(self, user_id: str, profile: dict):
        self.set_json(REDIS_PROFILE_KEY.format(user_id=user_id), profile, USER_PROFILE_TTL)
        logger.debug(f"Profile cached for user {user_id}")

    def get_user_profile(self, user_id: str) -> Optional[dict]:
        return self.get_json(REDIS_PROFILE_KEY.format(user_id=user_id))

    def invalidate_user_profile(self, user_id: str):
        self.redis_client.delete(REDIS_PROFILE_KEY.format(user_id=user_id))

    # ============================================
    # STATISTICS
    # ============================================

    def _count_keys(self, pattern: str) -> int:
        return sum(1 for _ in self.redis_client.scan_iter(match=pattern))

    def get_map_statistics(self) -> dict:
        try:
            return {
                "totalKeys": self.redis_client.dbsize(),
                "activeUsers": self._count_keys(REDIS_LOCATION_KEY.format(user_id="*")),
                "availableUsers": self._count_keys(REDIS_AVAILABILITY_KEY.format(user_id="*")),
                "pendingInvites": self._count_keys(REDIS_INVITE_KEY.format(invite_id="*")),
                "timestamp": utc_now(),
            }
        except redis.RedisError as e:
            logger.error(f"Error getting map statistics: {e}", exc_info=True)
            return {"totalKeys": 0, "activeUsers": 0, "availableUsers": 0, "pendingInvites": 0, "timestamp": utc_now()}

    def get_city_stats(self) -> Dict[str, int]:
        prefix = REDIS_CITY_USERS_KEY.format(city="")
        stats = {}
        for key in self.redis_client.scan_iter(match=f"{prefix}*"):
            stats[key[len(prefix):]] = self.redis_client.scard(key)
        return stats

    # ============================================
    # USER ACCOUNTS
    # ============================================

    def create_user(self, user_data: dict) -> Optional[dict]:
        """Store a new account. Returns None if the email or username was claimed concurrently."""
        user_id = uuid.uuid4().hex
        email = user_data["email"].lower()
        username = user_data["username"]
        email_key = REDIS_USER_EMAIL_KEY.format(email=email)
        username_key = REDIS_USER_USERNAME_KEY.format(username=username.lower())

        if not self.redis_client.set(email_key, user_id, nx=True):
            logger.warning(f"Email {email} already registered")
            return None
        if not self.redis_client.set(username_key, user_id, nx=True):
            self.redis_client.delete(email_key)
            logger.warning(f"Username {username} already registered")
            return None

        now = utc_now()
        user = {
            **user_data,
            "id": user_id,
            "email": email,
            "isEmailVerified": False,
            "isPhoneVerified": False,
            "onboardingCompleted": False,
            "createdAt": now,
            "updatedAt": now,
        }
        self.redis_client.hset(REDIS_USER_KEY.format(user_id=user_id), mapping=_encode_hash(user))
        logger.info(f"User {user_id} created ({username})")
        return user

    def get_user(self, user_id: str) -> Optional[dict]:
        data = self.redis_client.hgetall(REDIS_USER_KEY.format(user_id=user_id))
        if not data:
            return None
        return _decode_hash(data)

    def get_user_by_email(self, email: str) -> Optional[dict]:
        user_id = self.redis_client.get(REDIS_USER_EMAIL_KEY.format(email=email.lower()))
        return self.get_user(user_id) if user_id else None

    def get_user_by_username(self, username: str) -> Optional[dict]:
        user_id = self.redis_client.get(REDIS_USER_USERNAME_KEY.format(username=username.lower()))
        return self.get_user(user_id) if user_id else None

    def is_username_taken(self, username: str, exclude_id: Optional[str] = None) -> bool:
        owner = self.redis_client.get(REDIS_USER_USERNAME_KEY.format(username=username.lower()))
        return owner is not None and owner != exclude_id

    def update_user(self, user_id: str, fields: dict) -> Optional[dict]:
        user = self.get_user(user_id)
        if not user:
            return None

        new_username = fields.get("username")
        if new_username and new_username.lower() != str(user.get("username", "")).lower():
            self.redis_client.delete(REDIS_USER_USERNAME_KEY.format(username=str(user["username"]).lower()))
            self.redis_client.set(REDIS_USER_USERNAME_KEY.format(username=new_username.lower()), user_id)

        updates = {**fields, "updatedAt": utc_now()}
        self.redis_client.hset(REDIS_USER_KEY.format(user_id=user_id), mapping=_encode_hash(updates))
        logger.debug(f"User {user_id} updated fields: {sorted(fields)}")
        return {**user, **{k: v for k, v in updates.items() if v is not None}}

    def log_preferences(self, user_id: str, preferences: dict):
        snapshot = {"userId": user_id, "preferences": preferences, "completedAt": utc_now()}
        self.redis_client.rpush(REDIS_PREFERENCES_LOG_KEY, json.dumps(snapshot))

    def get_preferences_log(self) -> List[dict]:
        return [json.loads(item) for item in self.redis_client.lrange(REDIS_PREFERENCES_LOG_KEY, 0, -1)]

    # ============================================
    # VERIFICATION CODES
    # ============================================

    def store_verification_code(self, user_id: str, purpose: str, record: dict, ttl: int):
        key = REDIS_VERIFICATION_KEY.format(user_id=user_id, purpose=purpose)
        # A new code replaces any previous one for the same purpose
        self.redis_client.delete(key)
        self.redis_client.hset(key, mapping=_encode_hash(record))
        self.redis_client.expire(key, ttl)

    def get_verification_code(self, user_id: str, purpose: str) -> Optional[dict]:
        data = self.redis_client.hgetall(REDIS_VERIFICATION_KEY.format(user_id=user_id, purpose=purpose))
        if not data:
            return None
        record = _decode_hash(data)
        # the code is kept as a string even though it is all digits
        record["code"] = str(record.get("code", ""))
        return record

    def increment_verification_attempts(self, user_id: str, purpose: str) -> int:
        return self.redis_client.hincrby(REDIS_VERIFICATION_KEY.format(user_id=user_id, purpose=purpose), "attempts", 1)

    def delete_verification_code(self, user_id: str, purpose: str):
        self.redis_client.delete(REDIS_VERIFICATION_KEY.format(user_id=user_id, purpose=purpose))

    # ============================================
    # MEETUPS AND JOIN REQUESTS
    # ============================================

    def create_meetup(self, host_id: str, meetup_data: dict) -> dict:
        meetup_id = uuid.uuid4().hex
        created = datetime.now(timezone.utc)
        meetup = {**meetup_data, "id": meetup_id, "hostId": host_id, "open": True, "createdAt": created.isoformat()}
        self.set_json(REDIS_MEETUP_KEY.format(meetup_id=meetup_id), meetup)
        score = created.timestamp()
        self.redis_client.zadd(REDIS_OPEN_MEETUPS_KEY, {meetup_id: score})
        self.redis_client.zadd(REDIS_HOST_MEETUPS_KEY.format(host_id=host_id), {meetup_id: score})
        logger.info(f"Meetup {meetup_id} created by {host_id}")
        return meetup

    def get_meetup(self, meetup_id: str) -> Optional[dict]:
        return self.get_json(REDIS_MEETUP_KEY.format(meetup_id=meetup_id))

    def _meetups_from_index(self, index_key: str) -> List[dict]:
        meetups = []
        for meetup_id in self.redis_client.zrevrange(index_key, 0, -1):
            meetup = self.get_meetup(meetup_id)
            if meetup:
                meetups.append(meetup)
        return meetups

    def list_open_meetups(self) -> List[dict]:
        return [m for m in self._meetups_from_index(REDIS_OPEN_MEETUPS_KEY) if m.get("open")]

    def list_meetups_by_host(self, host_id: str) -> List[dict]:
        return self._meetups_from_index(REDIS_HOST_MEETUPS_KEY.format(host_id=host_id))

    def create_request(self, meetup_id: str, user_id: str) -> dict:
        request_id = uuid.uuid4().hex
        request = {
            "id": request_id,
            "meetupId": meetup_id,
            "userId": user_id,
            "status": "pending",
            "createdAt": utc_now(),
        }
        self.set_json(REDIS_REQUEST_KEY.format(request_id=request_id), request)
        self.redis_client.sadd(REDIS_MEETUP_REQUESTS_KEY.format(meetup_id=meetup_id), request_id)
        logger.info(f"Request {request_id} created for meetup {meetup_id} by {user_id}")
        return request

    def get_request(self, request_id: str) -> Optional[dict]:
        return self.get_json(REDIS_REQUEST_KEY.format(request_id=request_id))

    def update_request(self, request_id: str, status: str) -> Optional[dict]:
        request = self.get_request(request_id)
        if not request:
            return None
        request["status"] = status
        request["updatedAt"] = utc_now()
        self.set_json(REDIS_REQUEST_KEY.format(request_id=request_id), request)
        return request

    def get_requests_for_meetup(self, meetup_id: str) -> List[dict]:
        requests = []
        for request_id in self.redis_client.smembers(REDIS_MEETUP_REQUESTS_KEY.format(meetup_id=meetup_id)):
            request = self.get_request(request_id)
            if request:
                requests.append(request)
        requests.sort(key=lambda r: r["createdAt"])
        return requests

    def find_request(self, meetup_id: str, user_id: str) -> Optional[dict]:
        for request in self.get_requests_for_meetup(meetup_id):
            if request["userId"] == user_id:
                return request
        return None

    # ============================================
    # PUB/SUB
    # ============================================

    def city_channel(self, city: str) -> str:
        return REDIS_CITY_CHANNEL.format(city=city.lower())

    def user_channel(self, user_id: str) -> str:
        return REDIS_USER_CHANNEL.format(user_id=user_id)

    def publish(self, channel: str, message: dict):
        """Publish a message to a Redis pub/sub channel."""
        subscribers = self.redis_client.publish(channel, json.dumps(message))
        logger.debug(f"Published {message.get('event', 'unknown')} to {channel}, {subscribers} subscribers")
        return subscribers

    def subscribe(self, channel: str):
        """Create a pubsub subscriber for a channel."""
        logger.debug(f"Subscribing to Redis channel {channel}")
        pubsub = self.pubsub_client.pubsub()
        pubsub.subscribe(channel)
        return pubsub

    # ============================================
    # HEALTH
    # ============================================

    def ping(self) -> bool:
        return bool(self.redis_client.ping())

    def memory_info(self) -> List[str]:
        info = self.redis_client.info("memory")
        return [f"{k}:{v}" for k, v in info.items() if k.startswith("used_memory")]

    def connection_status(self) -> dict:
        return {"connected": self.is_connected, "client": self.redis_client is not None}


redis_backend = RedisBackend()
