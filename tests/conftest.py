"""
Pytest configuration and fixtures for MaskWise job lifecycle tests.

Provides:
- Async test database with SQLite
- Test client for API testing, with a fresh notifier and lock registry
- Factory fixtures for creating test data
"""

import uuid
from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import Settings, get_settings
from app.core.database import get_db
from app.core.datetime_utils import get_expiry, utc_now
from app.core.locks import DatasetLocks
from app.main import app
from app.models import Base
from app.models.dataset import Dataset, DatasetStatus
from app.models.job import Job, JobStatus, JobType
from app.models.policy import Policy
from app.models.project import Project
from app.models.user import Session, User
from app.services.notifier import ProgressNotifier

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

WORKER_TOKEN = "test-worker-token"


# Override settings for testing
class TestSettings(Settings):
    database_url: str = TEST_DATABASE_URL
    debug: bool = True
    secret_key: str = "test-secret-key"
    worker_api_token: str = WORKER_TOKEN
    base_url: str = "http://localhost:8000"


@pytest_asyncio.fixture
async def db_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
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
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def notifier() -> ProgressNotifier:
    """Notifier with no heartbeat task; tests call heartbeat() directly."""
    return ProgressNotifier(heartbeat_seconds=3600, queue_size=10)


@pytest.fixture
def locks() -> DatasetLocks:
    return DatasetLocks()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    notifier: ProgressNotifier,
    locks: DatasetLocks,
) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with database override."""
    from app.core.rate_limit import limiter

    async def override_get_db():
        yield db_session

    def override_get_settings():
        return TestSettings()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = override_get_settings

    # ASGITransport does not run the lifespan handler
    app.state.notifier = notifier
    app.state.dataset_locks = locks

    # Reset rate limiter storage before each test
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def worker_headers() -> dict[str, str]:
    return {"X-Worker-Token": WORKER_TOKEN}


# ============================================================================
# Factory Fixtures
#
# Factories commit: lifecycle operations own the transaction and roll the
# session back on failure, which would discard merely flushed rows.
# ============================================================================


@pytest_asyncio.fixture
async def user_factory(db_session: AsyncSession):
    """Factory for creating test users."""

    async def _create_user(email: str = None, is_active: bool = True) -> User:
        if email is None:
            email = f"test-{uuid.uuid4().hex[:8]}@example.com"

        user = User(email=email, first_name="Test", last_name="User", is_active=is_active)
        db_session.add(user)
        await db_session.commit()
        return user

    return _create_user


@pytest_asyncio.fixture
async def session_factory(db_session: AsyncSession, user_factory):
    """Factory for creating test sessions."""

    async def _create_session(user: User = None, expired: bool = False) -> Session:
        if user is None:
            user = await user_factory()

        expires_at = utc_now() - timedelta(hours=1) if expired else get_expiry(days=30)
        session = Session(user_id=user.id, expires_at=expires_at)
        db_session.add(session)
        await db_session.commit()
        return session

    return _create_session


@pytest_asyncio.fixture
async def project_factory(db_session: AsyncSession, user_factory):
    """Factory for creating test projects."""

    async def _create_project(owner: User = None, name: str = "Test Project") -> Project:
        if owner is None:
            owner = await user_factory()

        project = Project(name=name, user_id=owner.id)
        db_session.add(project)
        await db_session.commit()
        return project

    return _create_project


@pytest_asyncio.fixture
async def dataset_factory(db_session: AsyncSession, project_factory):
    """Factory for creating test datasets."""

    async def _create_dataset(
        owner: User = None,
        project: Project = None,
        status: DatasetStatus = DatasetStatus.PENDING,
        name: str = "customers.csv",
    ) -> Dataset:
        if project is None:
            project = await project_factory(owner=owner)

        dataset = Dataset(name=name, filename=name, status=status, project=project)
        db_session.add(dataset)
        await db_session.commit()
        return dataset

    return _create_dataset


@pytest_asyncio.fixture
async def policy_factory(db_session: AsyncSession):
    """Factory for creating test policies."""

    async def _create_policy(name: str = "GDPR Default", version: str = "1.0.0") -> Policy:
        policy = Policy(name=name, version=version)
        db_session.add(policy)
        await db_session.commit()
        return policy

    return _create_policy


@pytest_asyncio.fixture
async def job_factory(db_session: AsyncSession, dataset_factory):
    """Factory for creating test jobs.

    The job's creator is the dataset's project owner unless given.
    """

    async def _create_job(
        dataset: Dataset = None,
        owner: User = None,
        status: JobStatus = JobStatus.QUEUED,
        type: JobType = JobType.ANALYZE_PII,
        metadata: dict = None,
        policy: Policy = None,
        progress: int = 0,
        created_at=None,
    ) -> Job:
        if dataset is None:
            dataset = await dataset_factory(owner=owner)

        now = utc_now()
        job = Job(
            type=type,
            status=status,
            progress=progress,
            dataset_id=dataset.id,
            created_by_id=owner.id if owner else dataset.project.user_id,
            policy_id=policy.id if policy else None,
            metadata_json=metadata or {},
            created_at=created_at or now,
            updated_at=now,
            started_at=now if status != JobStatus.QUEUED else None,
            ended_at=now if status in (JobStatus.COMPLETED, JobStatus.FAILED) else None,
            error="Processing failed" if status == JobStatus.FAILED else None,
        )
        db_session.add(job)
        await db_session.commit()
        await db_session.refresh(job, attribute_names=["dataset", "created_by", "policy"])
        return job

    return _create_job


@pytest_asyncio.fixture
async def owner(user_factory) -> User:
    """A user who owns the data created through the default factories."""
    return await user_factory(email="owner@example.com")


@pytest_asyncio.fixture
async def auth_cookies(session_factory, owner: User) -> dict[str, str]:
    """Session cookie authenticating as `owner`."""
    session = await session_factory(user=owner)
    return {"session_id": str(session.id)}
