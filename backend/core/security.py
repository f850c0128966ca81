from datetime import datetime, timedelta, timezone
from typing import Any, Dict
import uuid
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from core.config import settings
import logging

logger = logging.getLogger(__name__)

# Fixed lifetimes; not configurable per call
ACCESS_TOKEN_EXPIRE = timedelta(minutes=15)
REFRESH_TOKEN_EXPIRE = timedelta(days=7)
PASSWORD_RESET_TOKEN_EXPIRE = timedelta(hours=1)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
PASSWORD_RESET_TOKEN_TYPE = "password_reset"

# Claims added at signing time and stripped again on verification
_REGISTERED_CLAIMS = ("exp", "iat", "jti", "type")

# Password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpiredError(TokenError):
    pass


class InvalidTokenError(TokenError):
    pass


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False

def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return pwd_context.hash(password)

def dummy_verify_password() -> None:
    """Spend the same time as a real verify when there is no user to check against."""
    pwd_context.dummy_verify()


def _encode(data: Dict[str, Any], secret: str, lifetime: timedelta, token_type: str) -> str:
    now = datetime.now(timezone.utc)
    to_encode = data.copy()
    to_encode.update({
        "iat": now,
        "exp": now + lifetime,
        "jti": uuid.uuid4().hex,
        "type": token_type,
    })
    return jwt.encode(to_encode, secret, algorithm=settings.ALGORITHM)

def _decode(token: str, secret: str, token_type: str) -> Dict[str, Any]:
    if not token or not isinstance(token, str):
        raise InvalidTokenError("Token is missing")
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError as e:
        raise TokenExpiredError(f"{token_type} token expired") from e
    except JWTError as e:
        logger.debug(f"JWT decode failed for {token_type} token: {e}")
        raise InvalidTokenError(f"Invalid {token_type} token") from e
    if payload.get("type") != token_type:
        raise InvalidTokenError(f"Token is not a {token_type} token")
    return {k: v for k, v in payload.items() if k not in _REGISTERED_CLAIMS}


def create_access_token(data: dict) -> str:
    """Create JWT access token"""
    return _encode(data, settings.JWT_SECRET, ACCESS_TOKEN_EXPIRE, ACCESS_TOKEN_TYPE)

def create_refresh_token(data: dict) -> str:
    """Create JWT refresh token"""
    return _encode(data, settings.JWT_REFRESH_SECRET, REFRESH_TOKEN_EXPIRE, REFRESH_TOKEN_TYPE)

def create_password_reset_token(data: dict) -> str:
    """Create single-purpose JWT for the password reset link"""
    return _encode(data, settings.PASSWORD_RESET_SECRET, PASSWORD_RESET_TOKEN_EXPIRE, PASSWORD_RESET_TOKEN_TYPE)

def verify_access_token(token: str) -> Dict[str, Any]:
    """Return the subject claims of an access token.

    Raises TokenExpiredError when the signature is good but the token is past
    its expiry, InvalidTokenError for everything else.
    """
    return _decode(token, settings.JWT_SECRET, ACCESS_TOKEN_TYPE)

def verify_refresh_token(token: str) -> Dict[str, Any]:
    return _decode(token, settings.JWT_REFRESH_SECRET, REFRESH_TOKEN_TYPE)

def verify_password_reset_token(token: str) -> Dict[str, Any]:
    return _decode(token, settings.PASSWORD_RESET_SECRET, PASSWORD_RESET_TOKEN_TYPE)
