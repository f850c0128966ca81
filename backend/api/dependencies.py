import json
from typing import Any, Dict, Optional
from fastapi import Depends, Request
from core.errors import UnauthorizedError
from core.security import TokenExpiredError, TokenError, verify_access_token
from db.repository import UserRepository
from services.auth_service import AuthService
from utils.responses import ACCESS_COOKIE
import logging

logger = logging.getLogger(__name__)


def get_user_repository(request: Request) -> UserRepository:
    return request.app.state.users


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


async def _body_field(request: Request, field: str) -> Optional[str]:
    body = await request.body()
    if not body:
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get(field), str):
        return payload[field]
    return None


async def extract_access_token(request: Request) -> Optional[str]:
    """Cookie first, then the JSON body's accessToken, then a Bearer header."""
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    token = await _body_field(request, "accessToken")
    if token:
        return token
    auth_header = request.headers.get("authorization") or ""
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def get_current_user(
    request: Request,
    users: UserRepository = Depends(get_user_repository),
) -> Dict[str, Any]:
    token = await extract_access_token(request)
    if not token:
        raise UnauthorizedError("Access token required")

    try:
        claims = verify_access_token(token)
    except TokenExpiredError:
        raise UnauthorizedError("Access token expired", code="TOKEN_EXPIRED")
    except TokenError:
        raise UnauthorizedError("Invalid token")

    user = await users.find_by_id(claims.get("user_id"))
    if not user:
        raise UnauthorizedError("User not found")
    if not user.get("is_email_verified"):
        raise UnauthorizedError("Email not verified")

    request.state.user = user
    return user
