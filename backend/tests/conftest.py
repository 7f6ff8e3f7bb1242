"""
Shared fixtures for the API, service and client tests.

Strategy:
- Each test gets its own in-memory SQLite database (aiosqlite + StaticPool)
  with the schema created from the ORM metadata; the app's ``get_db`` is
  overridden to hand out sessions bound to it.
- User fixtures insert rows directly and mint access tokens with
  ``create_access_token``; the login/2FA flow itself is covered in test_auth.
- Verification queries go through ``session_factory`` (a fresh session)
  so they never read stale identity-map state.
"""

from __future__ import annotations

from typing import Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ems.core.security import create_access_token, hash_password
from ems.db.models import Base, Department, User
from ems.db.seed import DEPARTMENTS
from ems.db.session import get_db
from ems.main import app

DEFAULT_PASSWORD = "Passw0rd!"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncSession:
    """Raw DB session for arranging data directly."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# HTTP client fixture
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncClient:
    """HTTPX async client against the app, bound to the test database."""

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_db, None)


# ---------------------------------------------------------------------------
# Users and tokens
# ---------------------------------------------------------------------------


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest_asyncio.fixture
async def make_user(session_factory) -> Callable[..., Awaitable[User]]:
    async def _make(
        email: str,
        role: str = "employee",
        name: str | None = None,
        password: str = DEFAULT_PASSWORD,
        **extra,
    ) -> User:
        is_active = extra.pop("is_active", True)
        async with session_factory() as session:
            user = User(
                email=email,
                name=name or email.split("@")[0].title(),
                password_hash=hash_password(password),
                role=role,
                is_active=is_active,
                **extra,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make


@pytest_asyncio.fixture
async def admin_user(make_user) -> User:
    return await make_user("admin@ems.test", role="admin", name="Admin User")


@pytest_asyncio.fixture
async def hr_user(make_user) -> User:
    return await make_user("hr@ems.test", role="hr", name="Harriet Reyes")


@pytest_asyncio.fixture
async def employee_user(make_user) -> User:
    return await make_user("priya@ems.test", role="employee", name="Priya Sharma")


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return auth_headers(admin_user)


@pytest.fixture
def hr_headers(hr_user: User) -> dict:
    return auth_headers(hr_user)


@pytest.fixture
def employee_headers(employee_user: User) -> dict:
    return auth_headers(employee_user)


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def departments(session_factory) -> list[Department]:
    async with session_factory() as session:
        rows = [Department(id=i, name=n, description=d) for i, n, d in DEPARTMENTS]
        session.add_all(rows)
        await session.commit()
    return rows
