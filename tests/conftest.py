"""Pytest configuration and fixtures for tokengate tests.

Tests run against an in-memory SQLite database through aiosqlite; each
test gets a fresh schema.
"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ["JWT_SECRET_KEY"] = "0" * 64
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["TOKEN_CLEANUP_INTERVAL_SECONDS"] = "0"

TEST_PASSWORD = "password123"
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingNotifier:
    """Notifier double that keeps every link it was asked to send."""

    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []

    async def send_reset_password_link(self, email: str, token: str) -> None:
        self.sent.append(("reset_password", email, token))

    async def send_verification_link(self, email: str, token: str) -> None:
        self.sent.append(("verify_email", email, token))


# --- Login Rate Limiter Reset ---


@pytest.fixture(autouse=True)
def reset_login_rate_limiter():
    """Clear recorded login failures so tests never hit 429."""
    from tokengate.api.auth import _login_attempts

    _login_attempts.clear()
    yield
    _login_attempts.clear()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create an in-memory SQLite engine with all tables."""
    from tokengate.core.database import Base
    from tokengate.models import Token, User  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database override."""
    from tokengate.core.database import get_db
    from tokengate.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def file_session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a file-backed SQLite database.

    Sessions from it use separate connections, so two of them can race
    on the same rows the way two concurrent requests do.
    """
    from tokengate.core.database import Base
    from tokengate.models import Token, User  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tokens.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# --- Factories ---


@pytest.fixture
def user_factory(db_session: AsyncSession) -> Callable[..., Awaitable]:
    """Factory for creating users through the principal store."""
    from tokengate.core.roles import Role
    from tokengate.services.user import UserService

    counter = {"n": 0}

    async def _create(
        email: str | None = None,
        password: str = TEST_PASSWORD,
        name: str | None = "Test User",
        role: Role = Role.USER,
    ):
        counter["n"] += 1
        return await UserService(db_session).create(
            email=email or f"user{counter['n']}@example.com",
            password=password,
            name=name,
            role=role,
        )

    return _create


@pytest_asyncio.fixture
async def user(user_factory):
    return await user_factory(email="user@example.com")


@pytest_asyncio.fixture
async def admin(user_factory):
    from tokengate.core.roles import Role

    return await user_factory(email="admin@example.com", name="Admin", role=Role.ADMIN)


@pytest.fixture
def signer():
    from tokengate.services.signer import get_signer

    return get_signer()


@pytest.fixture
def expired_access_token(signer) -> Callable[[UUID], str]:
    """Sign an access token for a subject whose expiry has already passed."""
    from tokengate.models.token import TokenType
    from tokengate.services.signer import TokenPayload

    def _make(subject: UUID) -> str:
        now = datetime.now(UTC)
        return signer.sign(
            TokenPayload(
                subject=subject,
                issued_at=now - timedelta(hours=2),
                expires_at=now - timedelta(hours=1),
                type=TokenType.ACCESS,
            )
        )

    return _make


# --- Cookie helpers ---


def cookie_header(access: str | None = None, refresh: str | None = None) -> dict[str, str]:
    """Build an explicit Cookie header carrying the given tokens."""
    from tokengate.core import settings

    parts = []
    if access is not None:
        parts.append(f"{settings.access_cookie_name}={access}")
    if refresh is not None:
        parts.append(f"{settings.refresh_cookie_name}={refresh}")
    return {"Cookie": "; ".join(parts)}


def set_cookies(response: Response) -> dict[str, str]:
    """Map cookie name to the raw Set-Cookie header sent in a response."""
    cookies = {}
    for header in response.headers.get_list("set-cookie"):
        name = header.split("=", 1)[0].strip()
        cookies[name] = header
    return cookies


def set_cookie_value(response: Response, name: str) -> str | None:
    header = set_cookies(response).get(name)
    if header is None:
        return None
    return header.split(";", 1)[0].split("=", 1)[1].strip('"')
