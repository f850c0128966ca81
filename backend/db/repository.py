from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional


class DuplicateEmailError(Exception):
    """Raised by create() when the unique email constraint is violated."""


class UserRepository(ABC):
    """Credential store used by the auth service and the access guard.

    Reads exclude db.models.user.SENSITIVE_FIELDS unless include_sensitive is
    set. Every refresh-token mutation is a single atomic document update.
    """

    @abstractmethod
    async def find_by_email(self, email: str, *, include_sensitive: bool = False) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def find_by_id(self, user_id: str, *, include_sensitive: bool = False) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def create(self, doc: Dict[str, Any]) -> str:
        """Insert a user document and return its id as a string."""

    @abstractmethod
    async def update_fields(self, user_id: str, fields: Dict[str, Any]) -> bool: ...

    @abstractmethod
    async def mark_email_verified(self, user_id: str, now: datetime) -> bool:
        """Flip is_email_verified from false to true, clear the pending code, stamp last_login.

        Returns False when the user was already verified (or is missing).
        """

    @abstractmethod
    async def add_refresh_token(self, user_id: str, entry: Dict[str, Any]) -> None: ...

    @abstractmethod
    async def prune_refresh_tokens(self, user_id: str, now: datetime) -> None:
        """Drop entries whose expires_at is at or before now."""

    @abstractmethod
    async def take_refresh_token(self, user_id: str, token: str, now: datetime) -> bool:
        """Remove token if it is a current, unexpired entry; report whether it was."""

    @abstractmethod
    async def remove_refresh_token(self, user_id: str, token: str) -> bool: ...

    @abstractmethod
    async def replace_password(
        self,
        user_id: str,
        expected_hash: str,
        new_hash: str,
        keep_token: Optional[str],
        now: datetime,
    ) -> bool:
        """Swap expected_hash for new_hash and drop every refresh entry except keep_token.

        Both changes land in one document update, applied only while the stored
        hash still equals expected_hash. With no keep_token every entry goes.
        """

    @abstractmethod
    async def consume_reset_token(self, user_id: str, token: str, now: datetime, fields: Dict[str, Any]) -> bool:
        """Apply fields only if token is the stored, unexpired reset token."""

    @abstractmethod
    async def ping(self) -> bool: ...

    async def close(self) -> None:
        return None
