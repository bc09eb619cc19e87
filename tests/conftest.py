"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- Database setup/teardown
- FastAPI test client
- In-process fakes for the cache, email sender and identity providers
"""

import os

# Must be set before the application modules read their settings
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("MAGIC_LINK_INLINE", None)

from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from saveplate.core.cache import CacheStore
from saveplate.core.database import Base, get_db
from saveplate.core.deps import (
    get_cache,
    get_email_service,
    get_facebook_provider,
    get_google_provider,
    get_token_codec,
)
from saveplate.core.exceptions import CacheError, OAuthProviderError
from saveplate.core.security import TokenCodec, get_password_hash
from saveplate.crud import user as user_crud
from saveplate.models.user import User
from saveplate.services.oauth_providers import OAuthIdentity
from main import app


# Use in-memory SQLite for testing (fast, isolated)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_PASSWORD = "Password123"


class FakeCache(CacheStore):
    """Dict-backed cache that records TTLs. fail_writes makes set() raise."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.fail_writes = False

    async def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    async def set(self, key: str, value: str, ttl_ms: int) -> None:
        if self.fail_writes:
            raise CacheError(f"SET {key} failed: backend down")
        self.store[key] = value
        self.ttls[key] = ttl_ms

    async def delete(self, key: str) -> bool:
        self.ttls.pop(key, None)
        return self.store.pop(key, None) is not None


class FakeEmailService:
    def __init__(self):
        self.magic_links: List[Tuple[str, str]] = []
        self.codes: List[Tuple[str, str]] = []
        self.fail = False

    def send_magic_link_email(self, to_email: str, magic_link: str) -> bool:
        if self.fail:
            return False
        self.magic_links.append((to_email, magic_link))
        return True

    def send_verification_email(self, to_email: str, verification_code: str,
                                user_name: Optional[str] = None) -> bool:
        if self.fail:
            return False
        self.codes.append((to_email, verification_code))
        return True


class FakeGoogleProvider:
    """Maps known codes and ID tokens to identities; anything else is rejected."""

    def __init__(self):
        self.codes: Dict[str, OAuthIdentity] = {}
        self.id_tokens: Dict[str, OAuthIdentity] = {}

    def get_authorization_url(self, state: str) -> str:
        return f"https://accounts.google.com/o/oauth2/v2/auth?client_id=test&state={state}"

    async def identity_from_code(self, code: str) -> OAuthIdentity:
        if code not in self.codes:
            raise OAuthProviderError("google rejected the code")
        return self.codes[code]

    async def identity_from_id_token(self, id_token: str) -> OAuthIdentity:
        if id_token not in self.id_tokens:
            raise OAuthProviderError("google rejected the ID token")
        return self.id_tokens[id_token]


class FakeFacebookProvider:
    def __init__(self):
        self.codes: Dict[str, OAuthIdentity] = {}
        self.access_tokens: Dict[str, OAuthIdentity] = {}
        self.redirect_uris: List[Optional[str]] = []

    async def identity_from_code(self, code: str, redirect_uri: Optional[str] = None) -> OAuthIdentity:
        self.redirect_uris.append(redirect_uri)
        if code not in self.codes:
            raise OAuthProviderError("facebook rejected the code")
        return self.codes[code]

    async def identity_from_access_token(self, access_token: str) -> OAuthIdentity:
        if access_token not in self.access_tokens:
            raise OAuthProviderError("facebook rejected the token")
        return self.access_tokens[access_token]


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the rate limiter and health check."""

    def __init__(self, fail: bool = False):
        self.counters: Dict[str, int] = {}
        self.expiries: Dict[str, int] = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def incr(self, key: str) -> int:
        self._check()
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self._check()
        self.expiries[key] = seconds
        return True

    async def ttl(self, key: str) -> int:
        self._check()
        return self.expiries.get(key, -1)

    async def delete(self, key: str) -> int:
        self._check()
        self.expiries.pop(key, None)
        return 1 if self.counters.pop(key, None) is not None else 0

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        pass


@pytest.fixture
def db_session():
    """
    Create a fresh database session for each test.
    Tables are dropped after the test completes.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def codec():
    return TokenCodec("test-secret")


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def mailer():
    return FakeEmailService()


@pytest.fixture
def google():
    return FakeGoogleProvider()


@pytest.fixture
def facebook():
    return FakeFacebookProvider()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def override_dependencies(db_session, codec, cache, mailer, google, facebook):
    """
    Route every collaborator of the auth endpoints to the test fakes.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_codec] = lambda: codec
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_email_service] = lambda: mailer
    app.dependency_overrides[get_google_provider] = lambda: google
    app.dependency_overrides[get_facebook_provider] = lambda: facebook

    yield

    app.dependency_overrides.clear()


@pytest.fixture
def client(override_dependencies):
    """
    FastAPI test client with overridden dependencies.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def password_user(db_session) -> User:
    """A password account with role NONE."""
    return user_crud.create_user(
        db_session,
        email="alice@example.com",
        username="alice",
        hashed_password=get_password_hash(TEST_PASSWORD),
    )
