"""
Pytest configuration and fixtures for contact service tests.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from contactsvc.config import Settings
from contactsvc.contacts.memory_repository import InMemoryContactRepository
from contactsvc.contacts.models import ContactStatus, Segment
from contactsvc.contacts.repository import ContactRepository
from contactsvc.contacts.schemas import CandidateContact, ContactCreate
from contactsvc.shared.database import Base


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        app_env="dev",
        debug=True,
        database_url="sqlite+aiosqlite:///:memory:",
        import_max_rows=50,
    )


@pytest_asyncio.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[Any, None]:
    """Create test database engine."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine: Any) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session


@pytest.fixture
def sql_repository(db_session: AsyncSession) -> ContactRepository:
    return ContactRepository(db_session)


@pytest.fixture
def repository() -> InMemoryContactRepository:
    """Create an empty in-memory contact repository."""
    return InMemoryContactRepository()


@pytest_asyncio.fixture
async def segment(repository: InMemoryContactRepository) -> Segment:
    return await repository.create_segment("Newsletter", "Monthly newsletter")


@pytest.fixture
def make_candidate():
    """Factory for candidate contacts."""

    def _make(**overrides: Any) -> CandidateContact:
        data: dict[str, Any] = {"name": "Jo Bloggs", "phone": "5551000"}
        data.update(overrides)
        return CandidateContact(**data)

    return _make


@pytest.fixture
def seed_contact(repository: InMemoryContactRepository):
    """Factory that stores a contact directly in the in-memory repository."""

    async def _seed(
        name: str = "Existing",
        phone: str = "5551000",
        email: str | None = None,
        status: ContactStatus = ContactStatus.ACTIVE,
        comment: str | None = None,
    ):
        return await repository.create(
            ContactCreate(name=name, phone=phone, email=email, status=status, comment=comment)
        )

    return _seed


@pytest_asyncio.fixture
async def client(
    repository: InMemoryContactRepository,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app with the repository dependency overridden."""
    from contactsvc.contacts.router import get_contact_repository
    from contactsvc.main import create_app

    app = create_app()
    app.dependency_overrides[get_contact_repository] = lambda: repository

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
