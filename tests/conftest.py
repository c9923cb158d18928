"""
Test configuration and shared fixtures.
Uses an in-memory SQLite database for fast, isolated tests.
"""
from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date
from decimal import Decimal
from typing import Any

# Settings are read at import time; point them at SQLite before importing the app.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-characters")

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from taskify.core.security import create_access_token  # noqa: E402
from taskify.crud.client import crud_client  # noqa: E402
from taskify.crud.user import crud_user  # noqa: E402
from taskify.db.base import Base  # noqa: E402
from taskify.db.session import get_db  # noqa: E402
from taskify.main import app  # noqa: E402
from taskify.models.client import Client  # noqa: E402
from taskify.models.task import Task  # noqa: E402
from taskify.models.user import User  # noqa: E402

# ── Test database ─────────────────────────────────────────────────────────────
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

TaskFactory = Callable[..., Awaitable[Task]]


@pytest_asyncio.fixture(scope="session", loop_scope="session", autouse=True)
async def create_tables():
    """Create all tables once per test session."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture(loop_scope="session")
async def db() -> AsyncGenerator[AsyncSession, None]:
    """Provide a transactional test database session that rolls back after each test."""
    async with TestSessionLocal() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest_asyncio.fixture(loop_scope="session")
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP test client with the test DB injected."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Helper fixtures ───────────────────────────────────────────────────────────

@pytest_asyncio.fixture(loop_scope="session")
async def user(db: AsyncSession) -> User:
    return await crud_user.create_user(db, name="Test User", email="testuser@example.com")


@pytest_asyncio.fixture(loop_scope="session")
async def other_user(db: AsyncSession) -> User:
    return await crud_user.create_user(db, name="Other User", email="other@example.com")


@pytest_asyncio.fixture(loop_scope="session")
async def auth_headers(user: User) -> dict[str, str]:
    """Return Authorization headers for the test user."""
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest_asyncio.fixture(loop_scope="session")
async def other_headers(other_user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(other_user.id)}"}


@pytest_asyncio.fixture(loop_scope="session")
async def acme(db: AsyncSession) -> Client:
    """A client to bill tasks to."""
    return await crud_client.create_from_dict(
        db,
        obj_in={
            "name": "Acme",
            "tin": "PL1234567890",
            "address": "1 Market Street",
            "email": "billing@acme.io",
        },
    )


@pytest_asyncio.fixture(loop_scope="session")
async def make_task(db: AsyncSession, user: User, acme: Client) -> TaskFactory:
    """
    Factory for tasks inserted straight into the database.
    Defaults to a completed, uninvoiced task of ``user`` worth 100.00.
    """

    async def _make(**overrides: Any) -> Task:
        values: dict[str, Any] = {
            "title": "Design review",
            "description": "Review the landing page design",
            "priority": "medium",
            "starting_date": date(2026, 1, 5),
            "due_date": date(2026, 1, 9),
            "status": "completed",
            "amount": Decimal("100.00"),
            "user_id": user.id,
            "client_id": acme.id,
            **overrides,
        }
        task = Task(**values)
        db.add(task)
        await db.flush()
        await db.refresh(task)
        return task

    return _make
