"""Shared pytest fixtures: a throwaway SQLite database per test and an authenticated client."""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("JWT_SECRET", "netyark-test-secret-0123456789abcdef")

import uuid
from pathlib import Path

import pytest
from fastapi_users.password import PasswordHelper
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.auth import current_active_superuser, current_active_user
from db.category import Category
from db.database import Base, get_async_session
from db.inventory.mutations import record_initial_stock
from db.product import Product
from db.users import User
from main import app


@pytest.fixture
async def engine(tmp_path: Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'netyark.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def admin(session_maker) -> User:
    user = User(
        id=uuid.uuid4(),
        email="admin@netyark.com",
        hashed_password=PasswordHelper().hash("correct-horse"),
        name="Store Admin",
        is_active=True,
        is_superuser=True,
        is_verified=True,
    )
    async with session_maker() as session:
        session.add(user)
        await session.commit()
    return user


@pytest.fixture
async def category(session_maker) -> Category:
    cat = Category(id=uuid.uuid4(), name="Gadgets", slug="gadgets")
    async with session_maker() as session:
        session.add(cat)
        await session.commit()
    return cat


@pytest.fixture
def make_product(session_maker, category, admin):
    """Create a product with its `initial` ledger entry already written."""

    async def _make(*, stock: int = 10, threshold: int = 10, name: str = "Widget", price: float = 20.0) -> Product:
        product = Product(
            id=uuid.uuid4(),
            name=name,
            description=f"{name} for tests",
            price=price,
            category_id=category.id,
            low_stock_threshold=threshold,
        )
        async with session_maker() as session:
            await record_initial_stock(session, product, stock, admin_id=admin.id)
            await session.commit()
        return product

    return _make


@pytest.fixture
async def anon_client(session_maker):
    """Client with the real auth dependencies in place."""

    async def _session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = _session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def client(anon_client, admin):
    """Client acting as the seeded super-admin."""
    app.dependency_overrides[current_active_user] = lambda: admin
    app.dependency_overrides[current_active_superuser] = lambda: admin
    yield anon_client
