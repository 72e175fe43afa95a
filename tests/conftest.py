"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from nodechat.config import NodeChatConfig
from nodechat.database.models import Base


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all NodeChat tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session for arranging rows directly."""
    with Session(db_engine, expire_on_commit=False) as session:
        yield session
        session.rollback()


@pytest.fixture
def config() -> NodeChatConfig:
    return NodeChatConfig()


@pytest.fixture
def make_client(db_engine: Engine):
    """Factory for a TestClient wired to the test engine.

    The client is entered as a context manager so the app lifespan runs
    and ``app.state`` is populated.
    """
    from fastapi.testclient import TestClient

    from nodechat.api.main import create_app

    clients: list[TestClient] = []

    def _make(config: NodeChatConfig | None = None) -> TestClient:
        app = create_app(engine=db_engine, config=config or NodeChatConfig())
        client = TestClient(app, raise_server_exceptions=False)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    """TestClient with default config (admin endpoints off)."""
    return make_client()
