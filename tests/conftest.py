"""Test configuration and fixtures.

Most tests run against in-memory stores injected through
``app.dependency_overrides``; no database is needed. The SQL store tests use
``db_session``, which needs PostgreSQL at ``settings.test_database_url`` and
skips when it is unreachable. Each of those tests runs inside a transaction
that is rolled back afterwards.
"""

import asyncio
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
import sqlalchemy
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine

from app.config import settings
from app.database import Base, build_engine
from app.exceptions import EmailAlreadyRegistered
from app.main import app
from app.models.account import EmailVerification, User
from app.services.email import get_email_sender
from app.services.verification import VerificationCodeManager
from app.stores import Stores, get_stores


# ---------------------------------------------------------------------------
# In-memory stores
# ---------------------------------------------------------------------------

class FakeClock:
    """Settable clock; call it to read the current time."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class InMemoryAccountStore:
    def __init__(self) -> None:
        self.users: list[User] = []
        self._next_id = 1

    async def get_by_email(self, email: str) -> User | None:
        return next((u for u in self.users if u.email == email), None)

    async def find_by_google_id_or_email(self, google_id: str, email: str) -> User | None:
        return next(
            (u for u in self.users if u.google_id == google_id or u.email == email),
            None,
        )

    async def add(self, user: User) -> User:
        if any(u.email == user.email for u in self.users):
            raise EmailAlreadyRegistered()
        user.id = self._next_id
        self._next_id += 1
        if user.is_email_verified is None:
            user.is_email_verified = False
        now = datetime.now(UTC)
        user.created_at = user.created_at or now
        user.updated_at = user.updated_at or now
        self.users.append(user)
        return user

    async def save(self, user: User) -> User:
        return user

    async def mark_email_verified(self, email: str, now: datetime) -> int:
        count = 0
        for user in self.users:
            if user.email == email:
                user.is_email_verified = True
                user.updated_at = now
                count += 1
        return count


class RacingAccountStore(InMemoryAccountStore):
    """Lookups miss, as if another request inserted the row after the check."""

    async def get_by_email(self, email: str) -> User | None:
        return None


class InMemoryVerificationCodeStore:
    def __init__(self) -> None:
        self.rows: list[EmailVerification] = []
        self._next_id = 1

    async def add(self, email: str, code: str, expires_at: datetime) -> EmailVerification:
        row = EmailVerification(
            id=self._next_id,
            email=email,
            verification_code=code,
            expires_at=expires_at,
            created_at=datetime.now(UTC),
        )
        self._next_id += 1
        self.rows.append(row)
        return row

    async def find(self, email: str, code: str) -> EmailVerification | None:
        return next(
            (r for r in self.rows if r.email == email and r.verification_code == code),
            None,
        )

    async def list_live(self, email: str, now: datetime) -> list[EmailVerification]:
        return [r for r in self.rows if r.email == email and r.expires_at > now]

    async def delete_expired(self, email: str, now: datetime) -> int:
        before = len(self.rows)
        self.rows = [r for r in self.rows if not (r.email == email and r.expires_at < now)]
        return before - len(self.rows)

    async def delete(self, verification_id: int) -> int:
        before = len(self.rows)
        self.rows = [r for r in self.rows if r.id != verification_id]
        return before - len(self.rows)

    def for_email(self, email: str) -> list[EmailVerification]:
        return [r for r in self.rows if r.email == email]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def accounts() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def codes() -> InMemoryVerificationCodeStore:
    return InMemoryVerificationCodeStore()


@pytest.fixture
def sender() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def manager(
    accounts: InMemoryAccountStore,
    codes: InMemoryVerificationCodeStore,
    sender: AsyncMock,
    clock: FakeClock,
) -> VerificationCodeManager:
    return VerificationCodeManager(accounts, codes, sender, clock=clock)


@pytest.fixture(autouse=True)
def _isolate_settings() -> None:
    """Snapshot settings before each test and restore after to prevent mutation bleed."""
    original = settings.model_dump()
    yield  # type: ignore[misc]
    for key, value in original.items():
        object.__setattr__(settings, key, value)


@pytest_asyncio.fixture
async def client(
    accounts: InMemoryAccountStore,
    codes: InMemoryVerificationCodeStore,
    sender: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client backed by the in-memory stores and a mock sender."""

    async def override_get_stores() -> AsyncGenerator[Stores, None]:
        yield Stores(accounts=accounts, codes=codes)

    app.dependency_overrides[get_stores] = override_get_stores
    app.dependency_overrides[get_email_sender] = lambda: sender

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# PostgreSQL fixtures (SQL store tests only)
# ---------------------------------------------------------------------------

async def _create_tables() -> None:
    engine = create_async_engine(settings.test_database_url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()


async def _drop_tables() -> None:
    engine = create_async_engine(settings.test_database_url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    finally:
        await engine.dispose()


@pytest.fixture(scope="session")
def _test_database() -> str:
    """Create tables once per session; skip if PostgreSQL is unavailable."""
    try:
        asyncio.run(_create_tables())
    except (OSError, sqlalchemy.exc.SQLAlchemyError) as e:
        pytest.skip(f"PostgreSQL not available: {e}")

    yield settings.test_database_url  # type: ignore[misc]

    asyncio.run(_drop_tables())


@pytest_asyncio.fixture
async def _engine(_test_database: str) -> AsyncGenerator[AsyncEngine, None]:
    engine = build_engine(_test_database)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Per-test session wrapped in a transaction that rolls back after the test.

    Store calls to session.commit() commit the inner SAVEPOINT, not the outer
    transaction, so data is still rolled back at the end.
    """
    async with _engine.connect() as conn:
        txn = await conn.begin()
        await conn.begin_nested()

        session = AsyncSession(bind=conn, expire_on_commit=False)

        @sqlalchemy.event.listens_for(session.sync_session, "after_transaction_end")
        def reopen_nested(session_sync, transaction):  # type: ignore[no-untyped-def]
            if conn.closed:
                return
            if not conn.in_nested_transaction():
                conn.sync_connection.begin_nested()  # type: ignore[union-attr]

        yield session

        await session.close()
        await txn.rollback()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_user(
    email: str = "test@example.com",
    *,
    verified: bool = False,
    google_id: str | None = None,
    password_hash: str | None = "digest",
) -> User:
    """Factory for a transient User row."""
    return User(
        email=email,
        first_name="Test",
        last_name="User",
        password_hash=password_hash,
        google_id=google_id,
        is_email_verified=verified,
    )


def make_registration_data(email: str = "new@example.com") -> dict:
    """Factory for registerUser payload."""
    return {
        "email": email,
        "first_name": "Jane",
        "last_name": "Doe",
        "password": "Sup3rSecret",
        "phone_number": "+15555550100",
        "marketing_emails": True,
    }
