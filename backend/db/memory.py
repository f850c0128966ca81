"""Process-local user store, used when USE_MONGO is off (local runs and tests)."""
import asyncio
import copy
from typing import Any, Dict, Optional
from bson import ObjectId
from db.models.user import strip_sensitive
from db.repository import DuplicateEmailError, UserRepository


class InMemoryUserRepository(UserRepository):
    def __init__(self):
        self._users: Dict[str, Dict[str, Any]] = {}
        # Serializes check-and-mutate steps the way a single document update would
        self._lock = asyncio.Lock()

    def _read(self, doc: Optional[Dict[str, Any]], include_sensitive: bool):
        if doc is None:
            return None
        doc = copy.deepcopy(doc)
        return doc if include_sensitive else strip_sensitive(doc)

    async def find_by_email(self, email, *, include_sensitive=False):
        for doc in self._users.values():
            if doc.get("email") == email:
                return self._read(doc, include_sensitive)
        return None

    async def find_by_id(self, user_id, *, include_sensitive=False):
        return self._read(self._users.get(str(user_id)), include_sensitive)

    async def create(self, doc):
        async with self._lock:
            if any(u.get("email") == doc.get("email") for u in self._users.values()):
                raise DuplicateEmailError(doc.get("email"))
            stored = copy.deepcopy(doc)
            stored.setdefault("_id", ObjectId())
            self._users[str(stored["_id"])] = stored
            return str(stored["_id"])

    async def update_fields(self, user_id, fields):
        async with self._lock:
            doc = self._users.get(str(user_id))
            if doc is None:
                return False
            doc.update(copy.deepcopy(fields))
            return True

    async def mark_email_verified(self, user_id, now):
        async with self._lock:
            doc = self._users.get(str(user_id))
            if doc is None or doc.get("is_email_verified"):
                return False
            doc.update({
                "is_email_verified": True,
                "verification_token": None,
                "verification_token_expires": None,
                "last_login": now,
                "updated_at": now,
            })
            return True

    async def add_refresh_token(self, user_id, entry):
        async with self._lock:
            doc = self._users.get(str(user_id))
            if doc is not None:
                doc.setdefault("refresh_tokens", []).append(copy.deepcopy(entry))

    async def prune_refresh_tokens(self, user_id, now):
        async with self._lock:
            doc = self._users.get(str(user_id))
            if doc is not None:
                doc["refresh_tokens"] = [t for t in doc.get("refresh_tokens", []) if t["expires_at"] > now]

    async def take_refresh_token(self, user_id, token, now):
        async with self._lock:
            doc = self._users.get(str(user_id))
            if doc is None:
                return False
            entries = doc.get("refresh_tokens", [])
            if not any(t["token"] == token and t["expires_at"] > now for t in entries):
                return False
            doc["refresh_tokens"] = [t for t in entries if t["token"] != token]
            return True

    async def remove_refresh_token(self, user_id, token):
        async with self._lock:
            doc = self._users.get(str(user_id))
            if doc is None:
                return False
            entries = doc.get("refresh_tokens", [])
            kept = [t for t in entries if t["token"] != token]
            doc["refresh_tokens"] = kept
            return len(kept) != len(entries)

    async def replace_password(self, user_id, expected_hash, new_hash, keep_token, now):
        async with self._lock:
            doc = self._users.get(str(user_id))
            if doc is None or doc.get("password_hash") != expected_hash:
                return False
            doc["password_hash"] = new_hash
            doc["updated_at"] = now
            doc["refresh_tokens"] = [t for t in doc.get("refresh_tokens", []) if keep_token and t["token"] == keep_token]
            return True

    async def consume_reset_token(self, user_id, token, now, fields):
        async with self._lock:
            doc = self._users.get(str(user_id))
            if doc is None or not token or doc.get("reset_password_token") != token:
                return False
            expires = doc.get("reset_password_token_expires")
            if expires is None or expires <= now:
                return False
            doc.update(copy.deepcopy(fields))
            return True

    async def ping(self):
        return True
