from pydantic import BaseModel, EmailStr, Field
from typing import Any, Dict, Optional
from datetime import datetime


class CamelModel(BaseModel):
    """Request/response bodies use camelCase keys on the wire."""

    class Config:
        populate_by_name = True
        str_strip_whitespace = True
        extra = "ignore"


class SignUpRequest(CamelModel):
    name: str = Field(min_length=3)
    username: str = Field(min_length=3)
    email: EmailStr
    password: str = Field(min_length=6)
    confirm_password: str = Field(alias="confirmPassword", min_length=1)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)


class VerifyEmailRequest(CamelModel):
    email: EmailStr
    otp: str = Field(min_length=1)


class EmailRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1)
    new_password: str = Field(alias="newPassword", min_length=6)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(alias="currentPassword", min_length=1)
    new_password: str = Field(alias="newPassword", min_length=6)
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


class TokenPair(CamelModel):
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")


class UserPublic(CamelModel):
    """What clients may see of a user; no hashes, no tokens."""
    id: str
    name: str
    username: str
    email: str
    is_email_verified: bool = Field(alias="isEmailVerified")
    role: str
    avatar: str = ""
    preferences: Dict[str, Any] = Field(default_factory=dict)
    last_login: Optional[datetime] = Field(default=None, alias="lastLogin")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "UserPublic":
        return cls(
            id=str(doc["_id"]),
            name=doc.get("name", ""),
            username=doc.get("username", ""),
            email=doc.get("email", ""),
            is_email_verified=bool(doc.get("is_email_verified", False)),
            role=doc.get("role", "developer"),
            avatar=doc.get("avatar") or "",
            preferences=doc.get("preferences") or {},
            last_login=doc.get("last_login"),
        )


class AuthSession(BaseModel):
    user: UserPublic
    tokens: TokenPair
