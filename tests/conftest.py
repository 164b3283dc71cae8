"""
Pytest configuration and fixtures for Coachline tests.

Provides an in-memory SQLite database, the fakes from ``tests.fakes`` for
every external collaborator and a FastAPI test client wired to them.
"""

from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from coachline.coaching.context_builder import ContextBuilder
from coachline.coaching.metrics import InMemoryMetricsStore, MetricsRecorder
from coachline.coaching.usage import UsageLimiter
from coachline.config import DEFAULT_USAGE_LIMITS, DEFAULT_USAGE_WARNING_THRESHOLDS
from coachline.db.repositories import EmbeddingRepository, UsageRepository
from coachline.models.db import Base
from coachline.retrieval.service import RetrievalService
from tests.fakes import (
    USER_ID,
    FakeEmbeddingProvider,
    FakeGoalSource,
    FakeJournalSource,
    FakeLLMProvider,
    FakeVoicePlatform,
)


# ===== Database =====


@pytest.fixture(scope="session")
def test_engine():
    """Create a test database engine using SQLite in-memory."""
    from sqlalchemy import JSON, event
    from sqlalchemy.dialects import postgresql

    # Replace JSONB with JSON for SQLite
    @event.listens_for(Base.metadata, "before_create")
    def _set_json_type(target, connection, **kw):
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, postgresql.JSONB):
                    column.type = JSON()

    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={
            "check_same_thread": False
        },  # Allow cross-thread access for TestClient and worker threads
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside the test transaction
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """
    Create a new database session for a test.

    Each test gets a fresh session with a transaction that is rolled back
    after the test completes, ensuring test isolation.
    """
    connection = test_engine.connect()
    transaction = connection.begin()
    session = sessionmaker(bind=connection)()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


# ===== Services =====


@pytest.fixture
def metrics() -> MetricsRecorder:
    return MetricsRecorder(InMemoryMetricsStore())


@pytest.fixture
def goal_source() -> FakeGoalSource:
    return FakeGoalSource()


@pytest.fixture
def journal_source() -> FakeJournalSource:
    return FakeJournalSource()


@pytest.fixture
def voice_platform() -> FakeVoicePlatform:
    return FakeVoicePlatform()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def llm_provider() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture
def usage_limiter(db_session: Session) -> UsageLimiter:
    return UsageLimiter(
        UsageRepository(db_session),
        limits=dict(DEFAULT_USAGE_LIMITS),
        warning_thresholds=dict(DEFAULT_USAGE_WARNING_THRESHOLDS),
    )


@pytest.fixture
def retrieval(
    db_session: Session,
    embedding_provider: FakeEmbeddingProvider,
    usage_limiter: UsageLimiter,
) -> RetrievalService:
    return RetrievalService(
        EmbeddingRepository(db_session),
        embedding_provider,
        usage_limiter=usage_limiter,
    )


@pytest.fixture
def context_builder(
    goal_source: FakeGoalSource,
    journal_source: FakeJournalSource,
    retrieval: RetrievalService,
    metrics: MetricsRecorder,
) -> ContextBuilder:
    return ContextBuilder(goal_source, journal_source, retrieval, metrics)


# ===== API =====


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"X-User-Id": USER_ID}


@pytest.fixture
def api_client(
    db_session: Session,
    goal_source: FakeGoalSource,
    journal_source: FakeJournalSource,
    voice_platform: FakeVoicePlatform,
    embedding_provider: FakeEmbeddingProvider,
    llm_provider: FakeLLMProvider,
    metrics: MetricsRecorder,
):
    """Create a test client for FastAPI with every collaborator overridden."""
    from fastapi.testclient import TestClient

    from coachline.api import dependencies
    from coachline.api.app import app
    from coachline.db.connection import get_db

    # Override the get_db dependency to use test database
    def override_get_db():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[dependencies.get_goal_source] = lambda: goal_source
    app.dependency_overrides[dependencies.get_journal_source] = lambda: journal_source
    app.dependency_overrides[dependencies.get_voice_platform] = lambda: voice_platform
    app.dependency_overrides[dependencies.get_embedding_provider] = (
        lambda: embedding_provider
    )
    app.dependency_overrides[dependencies.get_llm_provider] = lambda: llm_provider
    app.dependency_overrides[dependencies.get_metrics] = lambda: metrics

    # No lifespan: TestClient is not entered as a context manager
    client = TestClient(app)
    yield client

    # Clean up
    app.dependency_overrides.clear()
