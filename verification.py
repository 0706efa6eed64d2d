import secrets
import smtplib
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from typing import Tuple

import requests

from backend import redis_backend
from constants import (
    EMAIL_HOST, EMAIL_PORT, EMAIL_USER, EMAIL_PASS, EMAIL_FROM,
    TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER,
    VERIFICATION_CODE_EXPIRY_MINUTES, MAX_VERIFICATION_ATTEMPTS, HTTP_TIMEOUT_SECONDS,
)
from logging_config import get_logger

logger = get_logger(__name__)

PURPOSES = ("REGISTRATION", "LOGIN")
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

EMAIL_TEMPLATE = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: linear-gradient(135deg, #6BBF59, #FF6B6B); padding: 20px; text-align: center;">
    <h1 style="color: white; margin: 0;">Caffis</h1>
  </div>
  <div style="padding: 30px; background: #f9f9f9;">
    <h2 style="color: #333;">{heading}</h2>
    <p style="color: #666; font-size: 16px;">{intro}</p>
    <div style="background: white; padding: 20px; text-align: center; border-radius: 10px; margin: 20px 0;">
      <h1 style="color: #6BBF59; font-size: 32px; letter-spacing: 3px; margin: 0;">{code}</h1>
    </div>
    <p style="color: #666; font-size: 14px;">The code expires in {minutes} minutes.</p>
    <p style="color: #999; font-size: 12px; margin-top: 30px;">If you did not request this code, ignore this email.</p>
  </div>
</div>
"""


class VerificationError(Exception):
    pass


def generate_verification_code() -> str:
    return str(secrets.randbelow(900000) + 100000)


def _issue_code(user_id: str, purpose: str, code_type: str) -> str:
    if purpose not in PURPOSES:
        raise VerificationError(f"Unknown verification purpose: {purpose}")
    code = generate_verification_code()
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=VERIFICATION_CODE_EXPIRY_MINUTES)
    redis_backend.store_verification_code(user_id, purpose, {
        "code": code,
        "type": code_type,
        "purpose": purpose,
        "attempts": 0,
        "expires_at": expires_at.isoformat(),
    }, ttl=VERIFICATION_CODE_EXPIRY_MINUTES * 60)
    logger.info(f"Issued {code_type} verification code for user {user_id} ({purpose})")
    return code


def build_email(email: str, purpose: str, code: str, user_name: str = "") -> EmailMessage:
    if purpose == "REGISTRATION":
        subject = "Confirm your Caffis account"
        heading = f"Hi {user_name}!" if user_name else "Hi!"
        intro = "Welcome to Caffis! Enter this code to complete your registration:"
    else:
        subject = "Your Caffis login code"
        heading = "Login code"
        intro = "Here is your code to sign in to Caffis:"

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = EMAIL_FROM
    message["To"] = email
    message.set_content(f"{intro} {code}")
    message.add_alternative(
        EMAIL_TEMPLATE.format(heading=heading, intro=intro, code=code, minutes=VERIFICATION_CODE_EXPIRY_MINUTES),
        subtype="html",
    )
    return message


def send_email_verification(user_id: str, email: str, purpose: str, user_name: str = "") -> dict:
    if not EMAIL_HOST:
        raise VerificationError("Email service not configured")
    code = _issue_code(user_id, purpose, "EMAIL")
    message = build_email(email, purpose, code, user_name)
    try:
        with smtplib.SMTP(EMAIL_HOST, EMAIL_PORT, timeout=HTTP_TIMEOUT_SECONDS) as smtp:
            smtp.starttls()
            if EMAIL_USER:
                smtp.login(EMAIL_USER, EMAIL_PASS or "")
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Email sending error for user {user_id}: {e}", exc_info=True)
        raise VerificationError("Failed to send email") from e
    logger.info(f"Verification email sent to user {user_id}")
    return {"success": True, "message": "Email sent successfully"}


def sms_configured() -> bool:
    return bool(TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_ACCOUNT_SID.startswith("AC") and TWILIO_PHONE_NUMBER)


def send_sms_verification(user_id: str, phone_number: str, purpose: str) -> dict:
    if not sms_configured():
        raise VerificationError("SMS service not configured")
    code = _issue_code(user_id, purpose, "SMS")
    if purpose == "REGISTRATION":
        body = f"Caffis: your verification code is {code}. It expires in {VERIFICATION_CODE_EXPIRY_MINUTES} minutes."
    else:
        body = f"Caffis: login code {code}. It expires in {VERIFICATION_CODE_EXPIRY_MINUTES} minutes."
    try:
        response = requests.post(
            TWILIO_MESSAGES_URL.format(sid=TWILIO_ACCOUNT_SID),
            data={"Body": body, "From": TWILIO_PHONE_NUMBER, "To": phone_number},
            auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
            timeout=HTTP_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"SMS sending error for user {user_id}: {e}", exc_info=True)
        raise VerificationError("Failed to send SMS") from e
    logger.info(f"Verification SMS sent to user {user_id}")
    return {"success": True, "message": "SMS sent successfully"}


def verify_code(user_id: str, code: str, purpose: str) -> Tuple[bool, str]:
    record = redis_backend.get_verification_code(user_id, purpose)
    if not record:
        logger.info(f"No valid verification code for user {user_id} ({purpose})")
        return False, "Invalid or expired code"

    expires_at = record.get("expires_at")
    if expires_at and datetime.fromisoformat(expires_at) <= datetime.now(timezone.utc):
        redis_backend.delete_verification_code(user_id, purpose)
        return False, "Invalid or expired code"

    if int(record.get("attempts", 0)) >= MAX_VERIFICATION_ATTEMPTS:
        logger.warning(f"Max verification attempts exceeded for user {user_id} ({purpose})")
        return False, "Too many attempts. Request a new code."

    redis_backend.increment_verification_attempts(user_id, purpose)

    if not secrets.compare_digest(record["code"], str(code)):
        logger.info(f"Verification code mismatch for user {user_id} ({purpose})")
        return False, "Incorrect code"

    redis_backend.delete_verification_code(user_id, purpose)
    flag = "isEmailVerified" if record.get("type") == "EMAIL" else "isPhoneVerified"
    redis_backend.update_user(user_id, {flag: True})
    logger.info(f"Verification code accepted for user {user_id} ({purpose})")
    return True, "Code verified successfully"
