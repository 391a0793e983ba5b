"""
Test configuration and fixtures for Platewise.

- Function-scoped in-memory SQLite engine (StaticPool so the TestClient
  thread sees the same database)
- Mock model client wired through a real ToolInvoker and orchestrator
- TestClient with database and orchestrator dependency overrides
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import platewise.models  # noqa: F401  registers tables on Base
from platewise.api.analysis import get_orchestrator
from platewise.database import Base, get_db
from platewise.main import app
from platewise.services.orchestrator import AnalysisOrchestrator
from platewise.services.result_cache import ResultCache
from platewise.services.storage import SqlAlchemyStorage
from platewise.services.tool_invoker import RetryPolicy, ToolInvoker
from tests.fixtures.mocks import FakeClock, MockModelClient, RecordingSleep


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def test_engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(test_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(bind=test_engine, autoflush=False)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def storage(db: Session) -> SqlAlchemyStorage:
    return SqlAlchemyStorage(db)


# =============================================================================
# Pipeline Fixtures
# =============================================================================


@pytest.fixture
def mock_model_client() -> MockModelClient:
    """Scripted model client; configure replies per test with set_responses."""
    return MockModelClient()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tool_invoker(mock_model_client, recording_sleep) -> ToolInvoker:
    return ToolInvoker(
        mock_model_client,
        retry_policy=RetryPolicy(max_attempts=3, base_delay=2.0, sleep=recording_sleep),
    )


@pytest.fixture
def result_cache(fake_clock) -> ResultCache:
    return ResultCache(clock=fake_clock)


@pytest.fixture
def orchestrator(tool_invoker, result_cache) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(tool_invoker, cache=result_cache, timeout=5)


# =============================================================================
# TestClient Fixtures
# =============================================================================


@pytest.fixture
def client(db: Session, orchestrator) -> Generator[TestClient, None, None]:
    """
    TestClient with database and orchestrator dependency overrides.

    The database session is injected into the app's get_db dependency.
    """

    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close - managed by db fixture

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
