"""
Test configuration and fixtures.

Provides:
- SQLite in-memory database session (fresh schema per test)
- In-memory ordered-set store, lock and clock for the job queue
- HTTPX AsyncClient wired to the app with the test session and queue
- Organization / project / integration factories
"""
import os
import uuid
from dataclasses import dataclass, field
from typing import AsyncGenerator, Generator

from cryptography.fernet import Fernet

# Settings are read at import time; configure them before importing qcsat.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["REDIS_URL"] = "memory://"
os.environ["LOG_FORMAT"] = "text"
os.environ["CREDENTIALS_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["CREDENTIALS_ENCRYPTION_KEY_PREVIOUS"] = ""
os.environ["RESPONDENT_HASH_SALT"] = "test-respondent-salt"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from qcsat.core.deps import get_db
from qcsat.db.base import Base
from qcsat.db.enums import IntegrationDirection, IntegrationType
from qcsat.db.models import Integration, Organization, Project, ProjectIntegration
from qcsat.jobs.queue import JobQueue
from qcsat.main import app
from qcsat.services import integration_service


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Session on a private in-memory SQLite database.

    StaticPool keeps a single connection so every session in the test sees
    the same data; service code is free to commit.
    """
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False)()

    yield session

    session.close()
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    """Create a test organization."""
    org = Organization(
        name="Test Organization",
        slug=f"test-org-{uuid.uuid4().hex[:8]}",
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
def test_project(db: Session, test_org: Organization) -> Project:
    project = Project(organization_id=test_org.id, name="Checkout")
    db.add(project)
    db.commit()
    return project


@pytest.fixture(scope="function")
def make_integration(db: Session, test_org: Organization, test_project: Project):
    """
    Factory for an integration linked to test_project.

    make_integration(IntegrationType.ZENDESK, secret="s", moment_id="checkout")
    """

    def _make(
        integration_type: IntegrationType,
        *,
        secret: str | None = None,
        moment_id: str | None = None,
        link_project: bool = True,
        settings: dict | None = None,
        direction: IntegrationDirection | None = None,
    ) -> Integration:
        catalog = integration_service.INTEGRATION_CATALOG[integration_type]
        integration = Integration(
            organization_id=test_org.id,
            type=integration_type.value,
            direction=(direction or catalog["direction"]).value,
            display_name=catalog["name"],
        )
        db.add(integration)
        db.commit()
        if secret is not None:
            integration_service.set_webhook_secret(db, integration, secret)
        if link_project:
            db.add(
                ProjectIntegration(
                    project_id=test_project.id,
                    integration_id=integration.id,
                    moment_id=moment_id,
                    settings=settings or {},
                )
            )
            db.commit()
        return integration

    return _make


# =============================================================================
# Job Queue Fakes
# =============================================================================

class FakeOrderedSetStore:
    """Dict-backed ordered set with Redis ZSET ordering (score, then member)."""

    def __init__(self):
        self.sets: dict[str, dict[str, float]] = {}

    async def add_scored(self, key: str, score: float, value: str) -> None:
        self.sets.setdefault(key, {})[value] = score

    async def remove_by_value(self, key: str, value: str) -> int:
        return 1 if self.sets.get(key, {}).pop(value, None) is not None else 0

    def _sorted(self, key: str) -> list[tuple[float, str]]:
        return sorted((score, member) for member, score in self.sets.get(key, {}).items())

    async def range_by_score(
        self, key: str, min_score: float, max_score: float, limit: int
    ) -> list[str]:
        members = [m for s, m in self._sorted(key) if min_score <= s <= max_score]
        return members[:limit]

    async def range_all(self, key: str, limit: int | None = None) -> list[str]:
        members = [m for _, m in self._sorted(key)]
        return members if limit is None else members[:limit]

    async def count(self, key: str) -> int:
        return len(self.sets.get(key, {}))

    async def clear(self, key: str) -> int:
        return len(self.sets.pop(key, {}))

    def scores(self, key: str) -> list[float]:
        return [s for s, _ in self._sorted(key)]


class FakeLock:
    def __init__(self):
        self.held: dict[str, str] = {}

    async def acquire(self, key: str, ttl_ms: int) -> str | None:
        if key in self.held:
            return None
        token = uuid.uuid4().hex
        self.held[key] = token
        return token

    async def release(self, key: str, token: str) -> bool:
        if self.held.get(key) != token:
            return False
        del self.held[key]
        return True


@dataclass
class FakeClock:
    """Seconds since the epoch, advanced by hand."""
    now: float = 1_700_000_000.0
    calls: list[float] = field(default_factory=list)

    def __call__(self) -> float:
        self.calls.append(self.now)
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def store() -> FakeOrderedSetStore:
    return FakeOrderedSetStore()


@pytest.fixture
def lock() -> FakeLock:
    return FakeLock()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue(store: FakeOrderedSetStore, lock: FakeLock, clock: FakeClock) -> JobQueue:
    return JobQueue(store, lock, poll_interval=0.01, clock=clock)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session, queue: JobQueue) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the app, using the test session and fake queue."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.state.job_queue = queue

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    app.state.job_queue = None
