from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from constants import JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRES_DAYS
from logging_config import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72


class AuthError(Exception):
    message = "Invalid token"


class InvalidToken(AuthError):
    message = "Invalid token"


class TokenExpired(AuthError):
    message = "Token expired"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8")[:BCRYPT_MAX_BYTES], bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:BCRYPT_MAX_BYTES], password_hash.encode("utf-8"))
    except (ValueError, AttributeError):
        return False


def create_access_token(user_id: str, expires_days: int = JWT_EXPIRES_DAYS, **claims) -> str:
    payload = {
        **claims,
        "id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(days=expires_days),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode a token issued by the main app; accepts both ``id`` and ``userId`` claims."""
    try:
        decoded = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidTokenError:
        raise InvalidToken()

    user_id = decoded.get("id") or decoded.get("userId")
    if not user_id:
        raise InvalidToken()
    return {**decoded, "id": str(user_id), "email": decoded.get("email")}


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> dict:
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")

    try:
        user = decode_access_token(credentials.credentials)
    except TokenExpired:
        logger.warning("Rejected expired token")
        raise HTTPException(status_code=401, detail="Access denied. Token expired.")
    except InvalidToken:
        logger.warning("Rejected invalid token")
        raise HTTPException(status_code=401, detail="Access denied. Invalid token.")

    logger.debug(f"User {user['id']} authenticated")
    return user


def token_from_websocket(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    auth_header = websocket.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    return None
