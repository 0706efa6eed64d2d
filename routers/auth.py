from fastapi import APIRouter, Depends, HTTPException, Request
import redis

from backend import redis_backend
from schemas.auth import RegisterRequest, LoginRequest, LoginResponse, SendVerificationRequest, VerifyCodeRequest
from schemas.users import public_user
from security import get_current_user, hash_password, verify_password, create_access_token
from verification import VerificationError, send_email_verification, send_sms_verification, verify_code
from logging_config import get_logger

logger = get_logger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/register", status_code=201)
def register(body: RegisterRequest, request: Request):
    logger.info(f"Registration request from {request.client.host if request.client else 'unknown'}: {body.username}")

    if redis_backend.get_user_by_email(body.email):
        logger.warning(f"Registration failed: email {body.email} already in use")
        raise HTTPException(status_code=400, detail="Email already in use")
    if redis_backend.is_username_taken(body.username):
        logger.warning(f"Registration failed: username {body.username} already in use")
        raise HTTPException(status_code=400, detail="Username already in use")

    try:
        user = redis_backend.create_user({
            "username": body.username,
            "firstName": body.first_name,
            "lastName": body.last_name,
            "email": body.email,
            "phoneNumber": body.phone_number,
            "password": hash_password(body.password),
        })
    except redis.RedisError as e:
        logger.error(f"Register error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Server error")

    if not user:
        raise HTTPException(status_code=400, detail="Email or username already in use")

    return {"message": "User created", "user": public_user(user)}


@auth_router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest):
    identifier = body.email_or_username.strip()
    logger.info(f"Login attempt for {identifier}")

    if "@" in identifier:
        user = redis_backend.get_user_by_email(identifier)
    else:
        user = redis_backend.get_user_by_username(identifier)

    if not user or not verify_password(body.password, str(user.get("password", ""))):
        logger.warning(f"Login failed for {identifier}")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token(user["id"], email=user.get("email"))
    logger.info(f"Login successful for user {user['id']}")
    return LoginResponse(message="Login successful", token=token)


@auth_router.get("/me")
async def me(current_user: dict = Depends(get_current_user)):
    user = redis_backend.get_user(current_user["id"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return public_user(user)


@auth_router.post("/verification/send")
def send_verification(body: SendVerificationRequest, current_user: dict = Depends(get_current_user)):
    # sync handler: SMTP and Twilio calls block
    user = redis_backend.get_user(current_user["id"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    try:
        if body.type == "EMAIL":
            return send_email_verification(user["id"], user["email"], body.purpose, user.get("firstName", ""))
        if not user.get("phoneNumber"):
            raise HTTPException(status_code=400, detail="No phone number on file")
        return send_sms_verification(user["id"], user["phoneNumber"], body.purpose)
    except VerificationError as e:
        logger.error(f"Verification send failed for user {user['id']}: {e}")
        raise HTTPException(status_code=503, detail=str(e))


@auth_router.post("/verification/verify")
async def verify(body: VerifyCodeRequest, current_user: dict = Depends(get_current_user)):
    ok, message = verify_code(current_user["id"], body.code, body.purpose)
    if not ok:
        raise HTTPException(status_code=400, detail=message)
    return {"success": True, "message": message}
