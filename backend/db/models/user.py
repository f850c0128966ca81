from datetime import datetime
from typing import Any, Dict, Optional

ROLES = ("admin", "project_manager", "developer", "tester", "viewer")
DEFAULT_ROLE = "developer"

# Never returned by a repository read unless explicitly requested
SENSITIVE_FIELDS = (
    "password_hash",
    "refresh_tokens",
    "verification_token",
    "reset_password_token",
)


def normalize_email(email: str) -> str:
    """Emails are stored case-insensitively."""
    return (email or "").strip().lower()


def new_user_document(
    name: str,
    username: str,
    email: str,
    password_hash: str,
    verification_token: str,
    verification_token_expires: datetime,
    now: datetime,
) -> Dict[str, Any]:
    return {
        "name": name,
        "username": username,
        "email": normalize_email(email),
        "password_hash": password_hash,
        "role": DEFAULT_ROLE,
        "avatar": "",
        "preferences": {
            "theme": "light",
            "notifications": True,
            "timezone": "UTC",
        },
        "is_active": True,
        "is_email_verified": False,
        "verification_token": verification_token,
        "verification_token_expires": verification_token_expires,
        "reset_password_token": None,
        "reset_password_token_expires": None,
        "refresh_tokens": [],
        "last_login": None,
        "created_at": now,
        "updated_at": now,
    }


def strip_sensitive(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    return {k: v for k, v in doc.items() if k not in SENSITIVE_FIELDS}
