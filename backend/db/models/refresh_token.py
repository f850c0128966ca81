from datetime import datetime
from typing import Any, Dict

from core.security import REFRESH_TOKEN_EXPIRE


def new_refresh_token_entry(token: str, now: datetime) -> Dict[str, Any]:
    """Entry stored in a user's refresh_tokens array; one per signed-in device."""
    return {
        "token": token,
        "created_at": now,
        "expires_at": now + REFRESH_TOKEN_EXPIRE,
    }
