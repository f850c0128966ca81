import logging
import asyncio
from datetime import datetime
from typing import Any, Dict, Optional
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError
import certifi
from db.models.user import SENSITIVE_FIELDS
from db.repository import DuplicateEmailError, UserRepository

logger = logging.getLogger(__name__)

_SENSITIVE_PROJECTION = {field: 0 for field in SENSITIVE_FIELDS}


def _to_object_id(user_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(str(user_id))
    except (InvalidId, TypeError):
        return None


class MongoDatabase:
    """Owns the Motor client. Built at startup, closed at shutdown."""

    def __init__(self, uri: str, db_name: str):
        self.uri = uri
        self.db_name = db_name
        self._client: Optional[AsyncIOMotorClient] = None
        self._db: Optional[AsyncIOMotorDatabase] = None

    def connect(self) -> AsyncIOMotorDatabase:
        if self._db is not None:
            return self._db
        client_kwargs = {
            "serverSelectionTimeoutMS": 30000,
            "connectTimeoutMS": 20000,
            "socketTimeoutMS": 20000,
            "tz_aware": True,
        }
        # Atlas and other TLS endpoints: pass the CA bundle explicitly to avoid local OpenSSL issues
        if "mongodb.net" in self.uri or self.uri.startswith("mongodb+srv://"):
            client_kwargs.update({
                "tls": True,
                "tlsCAFile": certifi.where(),
                "retryWrites": True,
            })
        if self.uri.startswith("mongodb+srv://"):
            client_kwargs["directConnection"] = False
        self._client = AsyncIOMotorClient(self.uri, **client_kwargs)
        self._db = self._client[self.db_name]
        return self._db

    @property
    def db(self) -> AsyncIOMotorDatabase:
        if self._db is None:
            raise RuntimeError("MongoDatabase.connect() has not been called")
        return self._db

    async def init_indexes(self, attempts: int = 5) -> bool:
        # Retry ping and index creation to allow primary election / networking delays
        for attempt in range(1, attempts + 1):
            try:
                await self.db.command({"ping": 1})
                await self.db.users.create_index("email", unique=True, name="u_email")
                await self.db.users.create_index("refresh_tokens.token", name="i_refresh_token")
                return True
            except Exception as e:
                wait_s = min(2 ** attempt, 15)
                logger.warning(f"Mongo not ready (attempt {attempt}): {e}; retrying in {wait_s}s")
                await asyncio.sleep(wait_s)
        logger.error("Mongo index initialization failed after retries")
        return False

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("Closed Mongo client")
        self._client = None
        self._db = None


class MongoUserRepository(UserRepository):
    def __init__(self, collection: AsyncIOMotorCollection, database: Optional[MongoDatabase] = None):
        self._users = collection
        self._database = database

    @classmethod
    def from_database(cls, database: MongoDatabase) -> "MongoUserRepository":
        return cls(database.db.users, database)

    @staticmethod
    def _projection(include_sensitive: bool):
        return None if include_sensitive else _SENSITIVE_PROJECTION

    async def find_by_email(self, email, *, include_sensitive=False):
        return await self._users.find_one({"email": email}, projection=self._projection(include_sensitive))

    async def find_by_id(self, user_id, *, include_sensitive=False):
        oid = _to_object_id(user_id)
        if oid is None:
            return None
        return await self._users.find_one({"_id": oid}, projection=self._projection(include_sensitive))

    async def create(self, doc):
        try:
            result = await self._users.insert_one(doc)
        except DuplicateKeyError as e:
            raise DuplicateEmailError(doc.get("email")) from e
        return str(result.inserted_id)

    async def _update(self, user_id: str, extra_filter: Dict[str, Any], update: Dict[str, Any]) -> bool:
        oid = _to_object_id(user_id)
        if oid is None:
            return False
        result = await self._users.update_one({"_id": oid, **extra_filter}, update)
        return result.modified_count > 0

    async def update_fields(self, user_id, fields):
        return await self._update(user_id, {}, {"$set": fields})

    async def mark_email_verified(self, user_id, now: datetime):
        return await self._update(
            user_id,
            {"is_email_verified": False},
            {"$set": {
                "is_email_verified": True,
                "verification_token": None,
                "verification_token_expires": None,
                "last_login": now,
                "updated_at": now,
            }},
        )

    async def add_refresh_token(self, user_id, entry):
        await self._update(user_id, {}, {"$push": {"refresh_tokens": entry}})

    async def prune_refresh_tokens(self, user_id, now):
        await self._update(user_id, {}, {"$pull": {"refresh_tokens": {"expires_at": {"$lte": now}}}})

    async def take_refresh_token(self, user_id, token, now):
        # The filter and the pull run as one document update, so a token can be claimed once
        return await self._update(
            user_id,
            {"refresh_tokens": {"$elemMatch": {"token": token, "expires_at": {"$gt": now}}}},
            {"$pull": {"refresh_tokens": {"token": token}}},
        )

    async def remove_refresh_token(self, user_id, token):
        return await self._update(user_id, {"refresh_tokens.token": token}, {"$pull": {"refresh_tokens": {"token": token}}})

    async def replace_password(self, user_id, expected_hash, new_hash, keep_token, now):
        update = {"$set": {"password_hash": new_hash, "updated_at": now}}
        if keep_token:
            update["$pull"] = {"refresh_tokens": {"token": {"$ne": keep_token}}}
        else:
            update["$set"]["refresh_tokens"] = []
        return await self._update(user_id, {"password_hash": expected_hash}, update)

    async def consume_reset_token(self, user_id, token, now, fields):
        return await self._update(
            user_id,
            {"reset_password_token": token, "reset_password_token_expires": {"$gt": now}},
            {"$set": fields},
        )

    async def ping(self):
        try:
            await self._users.database.command({"ping": 1})
            return True
        except Exception as e:
            logger.warning(f"Mongo ping failed: {e}")
            return False

    async def close(self):
        if self._database is not None:
            self._database.close()
