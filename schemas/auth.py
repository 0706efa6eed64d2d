import re
from typing import Literal, Optional

from pydantic import EmailStr, Field, field_validator

from schemas.common import CamelModel


class RegisterRequest(CamelModel):
    username: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    password: str
    phone_number: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if len(value) < 8:
            raise ValueError("Password must be at least 8 characters")
        if not re.search(r"[a-z]", value):
            raise ValueError("Must include lowercase")
        if not re.search(r"[A-Z]", value):
            raise ValueError("Must include uppercase")
        if not re.search(r"\d", value):
            raise ValueError("Must include a number")
        return value

    @field_validator("username", "first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Field is required")
        return value


class LoginRequest(CamelModel):
    email_or_username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginResponse(CamelModel):
    message: str
    token: str


class SendVerificationRequest(CamelModel):
    type: Literal["EMAIL", "SMS"] = "EMAIL"
    purpose: Literal["REGISTRATION", "LOGIN"] = "REGISTRATION"


class VerifyCodeRequest(CamelModel):
    code: str = Field(min_length=6, max_length=6)
    purpose: Literal["REGISTRATION", "LOGIN"] = "REGISTRATION"
