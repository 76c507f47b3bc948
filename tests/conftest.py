"""Pytest fixtures for testing."""
import os

# Settings are read when db.session is imported, so configure them first.
# Tests always run against a fresh in-memory SQLite database.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-key-that-is-at-least-32-characters-long"

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from core.config import get_settings  # noqa: E402
from core.security import create_access_token  # noqa: E402
from db.session import build_engine  # noqa: E402
from models.base import Base  # noqa: E402
from models.user import User  # noqa: E402
from services.metadata_resolver import EMPTY_METADATA, Metadata  # noqa: E402
from services.user_service import register_user  # noqa: E402

TEST_PASSWORD = "correct-horse-battery"


class FakeResolver:
    """Metadata resolver stand-in that records requested URLs."""

    def __init__(self, metadata: Metadata = EMPTY_METADATA) -> None:
        self.metadata = metadata
        self.calls: list[str] = []

    async def __call__(self, url: str) -> Metadata:
        self.calls.append(url)
        return self.metadata


class RecordingSender:
    """Reset code sender stand-in that keeps the last code per email."""

    def __init__(self) -> None:
        self.codes: dict[str, str] = {}

    async def __call__(self, email: str, code: str) -> None:
        self.codes[email] = code


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an async engine over a fresh in-memory database."""
    engine = build_engine(os.environ["DATABASE_URL"])

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_connection(async_engine: AsyncEngine) -> AsyncGenerator[AsyncConnection]:
    """
    Create a connection with a transaction that will be rolled back after the test.

    This provides test isolation - each test runs in its own transaction
    that is rolled back, so tests don't affect each other.
    """
    async with async_engine.connect() as connection:
        transaction = await connection.begin()
        try:
            yield connection
        finally:
            await transaction.rollback()


@pytest.fixture
async def db_session(db_connection: AsyncConnection) -> AsyncGenerator[AsyncSession]:
    """
    Create an async session bound to the test transaction.

    Uses savepoints so the session's flush/commit and the services' own
    begin_nested() calls all work within the outer test transaction.
    """
    session_factory = async_sessionmaker(
        bind=db_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )

    async with session_factory() as session:
        yield session


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Registered user with the system collection and default tags."""
    return await register_user(db_session, "user@example.com", TEST_PASSWORD, "Test User")


@pytest.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Second registered user for isolation tests."""
    return await register_user(db_session, "other@example.com", TEST_PASSWORD, "Other User")


@pytest.fixture
def fake_resolver() -> FakeResolver:
    """Resolver returning empty metadata unless a test sets `metadata`."""
    return FakeResolver()


@pytest.fixture
def reset_sender() -> RecordingSender:
    """Captures password reset codes instead of delivering them."""
    return RecordingSender()


def auth_headers_for(user: User) -> dict[str, str]:
    """Bearer header for a user."""
    token = create_access_token(user.id, user.email, get_settings())
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def anon_client(
    db_session: AsyncSession,
    fake_resolver: FakeResolver,
    reset_sender: RecordingSender,
) -> AsyncGenerator[AsyncClient]:
    """Unauthenticated test client with database session and collaborators overridden."""
    from api.dependencies import get_metadata_resolver, get_reset_code_sender
    from api.main import app
    from db.session import get_async_session

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_metadata_resolver] = lambda: fake_resolver
    app.dependency_overrides[get_reset_code_sender] = lambda: reset_sender

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
async def client(anon_client: AsyncClient, test_user: User) -> AsyncClient:
    """Test client authenticated as `test_user`."""
    anon_client.headers.update(auth_headers_for(test_user))
    return anon_client


@pytest.fixture
async def other_client(anon_client: AsyncClient, other_user: User) -> AsyncGenerator[AsyncClient]:
    """Test client authenticated as `other_user`, sharing the app overrides."""
    async with AsyncClient(
        transport=anon_client._transport,
        base_url="http://test",
        headers=auth_headers_for(other_user),
    ) as test_client:
        yield test_client
