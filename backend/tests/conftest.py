"""
Test configuration and fixtures for the CRM backend tests.
"""
import os
import pytest
import pytest_asyncio
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from ispecia.main import app
from ispecia.db.base import Base, get_db
from ispecia.core.config import settings
from ispecia.core.security import get_password_hash, create_access_token
from ispecia.models.role import Role
from ispecia.models.user import User
from ispecia.models.pipeline import LeadPipeline, LeadStage, DealStage
from ispecia.services.maintenance import seed_defaults


# Use a file-based SQLite DB to avoid :memory: multiple-connection issues
# with SQLAlchemy + aiosqlite (each new connection would see an empty DB).
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
    # Clean up test database file
    try:
        os.remove("./test.db")
    except OSError:
        pass


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def seeded(db_session: AsyncSession) -> dict:
    """Default roles, admin user, lookups and both default pipelines."""
    return await seed_defaults(db_session)


@pytest_asyncio.fixture
async def roles(db_session: AsyncSession, seeded) -> dict[str, Role]:
    result = await db_session.execute(select(Role))
    return {role.name: role for role in result.scalars().all()}


async def create_user(
    db: AsyncSession,
    role: Role,
    email: str,
    name: str = "Test User",
    reports_to: User | None = None,
    password: str = "secret123",
) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=get_password_hash(password),
        role_id=role.id,
        reports_to_id=reports_to.id if reports_to else None,
        status=True,
    )
    db.add(user)
    await db.flush()
    return user


def headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(subject=user.id)}"}


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession, seeded) -> User:
    """The seeded administrator (ADMIN_EMAIL)."""
    result = await db_session.execute(select(User).where(User.email == settings.ADMIN_EMAIL))
    return result.scalar_one()


@pytest_asyncio.fixture
async def auth_headers(admin_user: User) -> dict:
    """Authorization headers for the administrator."""
    return headers_for(admin_user)


@pytest_asyncio.fixture
async def manager_user(db_session: AsyncSession, roles) -> User:
    return await create_user(db_session, roles["Manager"], "manager@example.com", name="Maria Manager")


@pytest_asyncio.fixture
async def lead_user(db_session: AsyncSession, roles, manager_user: User) -> User:
    return await create_user(
        db_session, roles["Lead"], "lead@example.com", name="Leo Lead", reports_to=manager_user
    )


@pytest_asyncio.fixture
async def employee_user(db_session: AsyncSession, roles, lead_user: User) -> User:
    return await create_user(
        db_session, roles["Employee"], "employee@example.com", name="Emma Employee", reports_to=lead_user
    )


@pytest_asyncio.fixture
async def lead_stages(db_session: AsyncSession, seeded) -> dict[str, LeadStage]:
    """Stages of the default lead pipeline keyed by name."""
    pipeline = (await db_session.execute(
        select(LeadPipeline).where(LeadPipeline.is_default.is_(True))
    )).scalar_one()
    result = await db_session.execute(select(LeadStage).where(LeadStage.pipeline_id == pipeline.id))
    return {stage.name: stage for stage in result.scalars().all()}


@pytest_asyncio.fixture
async def deal_stages(db_session: AsyncSession, seeded) -> dict[str, DealStage]:
    result = await db_session.execute(select(DealStage))
    return {stage.name: stage for stage in result.scalars().all()}


