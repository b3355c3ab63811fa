"""
Shared test fixtures and configuration for the auth backend tests.
"""
import os
from datetime import datetime
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DEBUG"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

TEST_ACCESS_SECRET = "test-access-secret-key-for-testing-only-min-32-chars"
TEST_REFRESH_SECRET = "test-refresh-secret-key-for-testing-only-min-32-chars"

ALICE = {"email": "alice@example.com", "username": "alice", "password": "Str0ngP@ssw0rd!"}


@pytest.fixture
def test_settings():
    """Development settings with cheap bcrypt and an in-memory database."""
    from app.core.config import Settings

    return Settings(
        _env_file=None,
        ENVIRONMENT="development",
        DEBUG=True,
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        ACCESS_TOKEN_SECRET=TEST_ACCESS_SECRET,
        REFRESH_TOKEN_SECRET=TEST_REFRESH_SECRET,
        BCRYPT_ROUNDS=4,
        RATE_LIMIT_ENABLED=False,
        LOG_LEVEL="WARNING",
    )


@pytest_asyncio.fixture
async def database(test_settings):
    """Fresh in-memory SQLite database with all tables created."""
    from app.db.session import Database

    db = Database(test_settings.DATABASE_URL)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def file_database(tmp_path):
    """File-backed SQLite database where every session has its own connection."""
    from app.db.session import Database

    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}", pool_timeout=10)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def file_client(test_settings, file_database) -> AsyncGenerator[AsyncClient, None]:
    from app.main import create_app

    app = create_app(test_settings, file_database)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session() as session:
        yield session


@pytest.fixture
def token_issuer(test_settings):
    from app.core.security import TokenIssuer

    return TokenIssuer(test_settings)


@pytest.fixture
def auth_service(db_session, test_settings, token_issuer):
    from app.services.auth import AuthService

    return AuthService(db_session, test_settings, issuer=token_issuer)


@pytest.fixture
def app(test_settings, database):
    from app.main import create_app

    return create_app(test_settings, database)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def alice_tokens(client) -> dict:
    """Register and log in alice; returns the login response body."""
    response = await client.post("/api/auth/register", json=ALICE)
    assert response.status_code == 201, response.text
    response = await client.post(
        "/api/auth/login", json={"email": ALICE["email"], "password": ALICE["password"]}
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def alice_headers(alice_tokens) -> dict:
    return {"Authorization": f"Bearer {alice_tokens['accessToken']}"}


@pytest.fixture
def mock_db_session():
    """Create a mock async database session."""
    session = AsyncMock(spec=AsyncSession)
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    session.delete = AsyncMock()
    return session


@pytest.fixture
def mock_user():
    """Create a mock user for testing."""
    user = MagicMock()
    user.id = "7d3c5e1a-0000-4000-8000-000000000001"
    user.email = "test@example.com"
    user.username = "testuser"
    user.hashed_password = "$2b$04$invalidinvalidinvalidinvalidinvalidinvalidinvalidinva"
    user.is_active = True
    user.is_verified = False
    user.created_at = datetime(2026, 1, 1, 12, 0, 0)
    user.updated_at = datetime(2026, 1, 1, 12, 0, 0)
    user.last_login = None
    return user

