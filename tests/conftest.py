import os

# Must be set before the app (and its Settings) is imported
os.environ["ENV"] = "testing"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from typing import AsyncGenerator

from main import app
from core.database import Base, get_db
from models.users import User
from services.attempt_limiter import AttemptLimiter
from services.credential_store import CredentialStore
from services.security_codes import SecurityCodeManager
from services.token_service import TokenService
from utils.hashing import get_password_hash
from utils.verification import utcnow

# Async SQLite file database, same driver family as the app
SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

TEST_PASSWORD = "TestPassword123!"


@pytest.fixture
async def engine():
    """
    Creates a fresh, empty database for each test and drops it afterwards.
    """
    engine = create_async_engine(SQLALCHEMY_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as db:
        yield db


@pytest.fixture
async def client(session: AsyncSession):
    """
    Yields an HTTP client that talks to the app in-process using the test database.
    """
    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def email_service():
    """The app's EmailService; in testing mode every message lands in `outbox`."""
    service = app.state.email_service
    service.outbox.clear()
    yield service
    service.outbox.clear()


async def create_user(session: AsyncSession, email: str, username: str, verified: bool) -> User:
    user = User(
        email=email,
        username=username,
        hashed_password=get_password_hash(TEST_PASSWORD),
        email_verified=verified,
        verified_at=utcnow() if verified else None
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest.fixture
async def verified_user(session):
    return await create_user(session, "verified@example.com", "verified_user", verified=True)


@pytest.fixture
async def unverified_user(session):
    return await create_user(session, "unverified@example.com", "unverified_user", verified=False)


@pytest.fixture
def store(session):
    return CredentialStore(session)


@pytest.fixture
def token_service(store):
    return TokenService(store)


@pytest.fixture
def attempt_limiter(store):
    return AttemptLimiter(store)


@pytest.fixture
def security_codes(store, token_service, attempt_limiter):
    return SecurityCodeManager(store, token_service, attempt_limiter)


@pytest.fixture
def login(client):
    """Log a user in through the API and return the response."""
    async def _login(email: str, password: str = TEST_PASSWORD, remember_me: bool = False):
        return await client.post("/auth/login", json={
            "email": email,
            "password": password,
            "remember_me": remember_me
        })
    return _login
