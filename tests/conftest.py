"""Pytest configuration and fixtures for CrispSync Core tests.

This module provides fixtures for:
- Database: SQLite in-memory engine shared across sessions (StaticPool)
- Sync components: writer, resolver and a mock upstream gateway
- HTTP client: AsyncClient for FastAPI testing
"""

from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.orm import Session, sessionmaker

from crispsync_core.config import Settings, get_settings
from crispsync_core.domain.models import Base
from crispsync_core.domain.services.resolver import ConversationResolver
from crispsync_core.domain.services.writer import IdempotentWriter
from crispsync_core.infra.db import create_store_engine
from crispsync_core.observability.metrics import get_metrics
from crispsync_core.providers.base import UpstreamGateway
from crispsync_core.providers.crisp import CrispAdapter


# -----------------------------------------------------------------------------
# Global state
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_global_state() -> Generator[None, None, None]:
    """Start every test with fresh metrics and settings."""
    get_metrics().reset()
    get_settings.cache_clear()
    yield
    get_metrics().reset()
    get_settings.cache_clear()


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        mysql_url="sqlite:///:memory:",
        crisp_identifier="test-identifier",
        crisp_key="test-key",
        crisp_api_url="https://crisp.test/v1",
        backfill_max_concurrency=3,
        event_queue_size=10,
        log_json=False,
    )


# -----------------------------------------------------------------------------
# Synchronous Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_store_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    """Create a synchronous session factory."""
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for assertions and setup."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# -----------------------------------------------------------------------------
# Sync component fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_gateway() -> MagicMock:
    """Mock upstream gateway; async methods are AsyncMocks."""
    gateway = MagicMock(spec=UpstreamGateway)
    gateway.list_conversations.return_value = []
    gateway.list_messages.return_value = []
    gateway.get_conversation.side_effect = RuntimeError("not configured")
    return gateway


@pytest.fixture
def writer(sync_session_factory) -> IdempotentWriter:
    return IdempotentWriter(sync_session_factory)


@pytest.fixture
def resolver(mock_gateway, writer) -> ConversationResolver:
    return ConversationResolver(gateway=mock_gateway, writer=writer)


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(test_settings, sync_session_factory) -> Generator[FastAPI, None, None]:
    """FastAPI application bound to the test database and a test gateway."""
    from crispsync_core.api.deps import get_db, get_session_factory
    from crispsync_core.main import app

    app.state.settings = test_settings
    app.state.gateway = CrispAdapter(
        identifier="test-identifier",
        key="test-key",
        base_url=test_settings.crisp_api_url,
    )
    app.state.ingestor = None

    def override_get_db():
        session = sync_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: sync_session_factory
    app.dependency_overrides[get_settings] = lambda: test_settings

    yield app

    app.dependency_overrides.clear()
    app.state.gateway = None
    app.state.ingestor = None


@pytest.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


# -----------------------------------------------------------------------------
# Mock Fixtures for External Services
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_httpx_client() -> Generator[AsyncMock, None, None]:
    """Mock httpx.AsyncClient for testing Crisp REST calls."""
    with patch("httpx.AsyncClient") as mock:
        mock_instance = AsyncMock()
        mock.return_value.__aenter__.return_value = mock_instance
        mock.return_value.__aexit__.return_value = None

        # Default response
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.return_value = {"error": False, "reason": "listed", "data": []}
        mock_instance.get.return_value = mock_response

        yield mock_instance
