"""One-time numeric codes used to prove control of an e-mail address."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import re
import secrets

from core.security import pwd_context

OTP_LENGTH = 6
OTP_EXPIRE = timedelta(minutes=10)

_OTP_PATTERN = re.compile(r"[0-9]{%d}" % OTP_LENGTH)


@dataclass(frozen=True)
class OTPBundle:
    code: str
    hash: str
    expires_at: datetime


def generate_otp() -> OTPBundle:
    """Generate a zero-padded 6-digit code, its salted hash and its expiry."""
    code = f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"
    # bcrypt draws a fresh salt per call, so equal codes never share a hash
    hashed = pwd_context.hash(code)
    return OTPBundle(code=code, hash=hashed, expires_at=datetime.now(timezone.utc) + OTP_EXPIRE)


def verify_otp(candidate, hashed) -> bool:
    if not isinstance(candidate, str) or not _OTP_PATTERN.fullmatch(candidate):
        return False
    if not hashed or not isinstance(hashed, str):
        return False
    try:
        return pwd_context.verify(candidate, hashed)
    except (ValueError, TypeError):
        return False
