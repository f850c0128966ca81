"""
Unit tests for the Mongo user repository against a mocked Motor collection.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from db.models.user import SENSITIVE_FIELDS
from db.mongodb import MongoDatabase, MongoUserRepository
from db.repository import DuplicateEmailError
from utils.timing import utc_now

USER_ID = "507f1f77bcf86cd799439011"


@pytest.fixture
def collection():
    mock = AsyncMock()
    mock.update_one.return_value = MagicMock(modified_count=1)
    return mock


@pytest.fixture
def repo(collection):
    return MongoUserRepository(collection)


def _update_call(collection):
    args = collection.update_one.await_args.args
    return args[0], args[1]


@pytest.mark.database
class TestMongoUserRepository:

    @pytest.mark.asyncio
    async def test_reads_hide_sensitive_fields_by_default(self, repo, collection):
        await repo.find_by_email("john@example.com")
        projection = collection.find_one.await_args.kwargs["projection"]
        assert set(projection) == set(SENSITIVE_FIELDS)
        assert all(v == 0 for v in projection.values())

        await repo.find_by_email("john@example.com", include_sensitive=True)
        assert collection.find_one.await_args.kwargs["projection"] is None

    @pytest.mark.asyncio
    async def test_find_by_invalid_id_skips_the_query(self, repo, collection):
        assert await repo.find_by_id("not-an-object-id") is None
        collection.find_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate_key_becomes_duplicate_email(self, repo, collection):
        collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")
        with pytest.raises(DuplicateEmailError):
            await repo.create({"email": "john@example.com"})

    @pytest.mark.asyncio
    async def test_take_refresh_token_is_a_conditional_pull(self, repo, collection):
        now = utc_now()
        assert await repo.take_refresh_token(USER_ID, "tok", now) is True

        query, update = _update_call(collection)
        assert query["_id"] == ObjectId(USER_ID)
        assert query["refresh_tokens"] == {"$elemMatch": {"token": "tok", "expires_at": {"$gt": now}}}
        assert update == {"$pull": {"refresh_tokens": {"token": "tok"}}}

    @pytest.mark.asyncio
    async def test_take_refresh_token_reports_misses(self, repo, collection):
        collection.update_one.return_value = MagicMock(modified_count=0)
        assert await repo.take_refresh_token(USER_ID, "tok", utc_now()) is False

    @pytest.mark.asyncio
    async def test_prune_pulls_expired_entries(self, repo, collection):
        now = utc_now()
        await repo.prune_refresh_tokens(USER_ID, now)
        _, update = _update_call(collection)
        assert update == {"$pull": {"refresh_tokens": {"expires_at": {"$lte": now}}}}

    @pytest.mark.asyncio
    async def test_replace_password_is_one_conditional_update(self, repo, collection):
        now = utc_now()
        assert await repo.replace_password(USER_ID, "old-hash", "new-hash", "keep", now) is True
        collection.update_one.assert_awaited_once()
        query, update = _update_call(collection)
        assert query == {"_id": ObjectId(USER_ID), "password_hash": "old-hash"}
        assert update == {
            "$set": {"password_hash": "new-hash", "updated_at": now},
            "$pull": {"refresh_tokens": {"token": {"$ne": "keep"}}},
        }

    @pytest.mark.asyncio
    async def test_replace_password_without_token_drops_all_sessions(self, repo, collection):
        now = utc_now()
        await repo.replace_password(USER_ID, "old-hash", "new-hash", None, now)
        _, update = _update_call(collection)
        assert update == {"$set": {"password_hash": "new-hash", "updated_at": now, "refresh_tokens": []}}

    @pytest.mark.asyncio
    async def test_consume_reset_token_matches_token_and_expiry(self, repo, collection):
        now = utc_now()
        await repo.consume_reset_token(USER_ID, "reset", now, {"reset_password_token": None})
        query, update = _update_call(collection)
        assert query["reset_password_token"] == "reset"
        assert query["reset_password_token_expires"] == {"$gt": now}
        assert update == {"$set": {"reset_password_token": None}}

    @pytest.mark.asyncio
    async def test_mark_email_verified_only_from_unverified(self, repo, collection):
        await repo.mark_email_verified(USER_ID, utc_now())
        query, update = _update_call(collection)
        assert query["is_email_verified"] is False
        assert update["$set"]["is_email_verified"] is True
        assert update["$set"]["verification_token"] is None


@pytest.mark.database
def test_database_requires_connect():
    database = MongoDatabase("mongodb://localhost:27017", "nexus_test")
    with pytest.raises(RuntimeError):
        database.db
