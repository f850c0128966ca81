"""
Pytest configuration and fixtures for the backend tests.
"""
import os
import tempfile

# Settings are read at import time, so the environment has to be ready first
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-key-for-testing")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-jwt-refresh-secret-key-for-testing")
os.environ.setdefault("PASSWORD_RESET_SECRET", "test-password-reset-secret-key-for-testing")
os.environ.setdefault("USE_MONGO", "false")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="nexus-logs-"))

import pytest
from typing import Any, Dict
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from faker import Faker

from core.security import get_password_hash
from db.memory import InMemoryUserRepository
from db.models.user import new_user_document
from main import create_app
from services.auth_service import AuthService
from utils.email import EmailService
from utils.timing import utc_now

# Initialize Faker for test data generation
fake = Faker()

DEFAULT_PASSWORD = "Password@123"


@pytest.fixture
def repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def mailer() -> AsyncMock:
    """E-mail collaborator that records calls instead of talking SMTP."""
    mock = AsyncMock(spec=EmailService)
    mock.send_verification_email.return_value = True
    mock.send_password_reset_email.return_value = True
    mock.send_welcome_email.return_value = True
    return mock


@pytest.fixture
def auth_service(repository, mailer) -> AuthService:
    return AuthService(repository, mailer)


@pytest.fixture
def client(repository, mailer) -> TestClient:
    app = create_app(repository=repository, email_service=mailer)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sample_signup_data() -> Dict[str, Any]:
    return {
        "name": fake.name(),
        "username": fake.user_name() + "x",
        "email": fake.unique.email(),
        "password": DEFAULT_PASSWORD,
        "confirmPassword": DEFAULT_PASSWORD,
    }


async def _insert_user(repository: InMemoryUserRepository, verified: bool, password: str = DEFAULT_PASSWORD) -> Dict[str, Any]:
    now = utc_now()
    doc = new_user_document(
        name=fake.name(),
        username=fake.user_name() + "x",
        email=fake.unique.email(),
        password_hash=get_password_hash(password),
        verification_token=None,
        verification_token_expires=None,
        now=now,
    )
    doc["is_email_verified"] = verified
    user_id = await repository.create(doc)
    return await repository.find_by_id(user_id, include_sensitive=True)


@pytest.fixture
async def verified_user(repository) -> Dict[str, Any]:
    return await _insert_user(repository, verified=True)


@pytest.fixture
async def unverified_user(repository) -> Dict[str, Any]:
    return await _insert_user(repository, verified=False)
