"""
nodechat.database.engine — Database Connection & Async Helper
==============================================================

The WebSocket server runs on an ``asyncio`` event loop, while SQLAlchemy +
psycopg2 is **synchronous**.  Calling the DB directly from a connection
handler would stall every other connection until the query returns.

The bridge:

    1. A client event arrives on a WebSocket (async world).
    2. The coordinator calls ``await run_db(some_function, engine, ...)``.
    3. ``run_db`` ships the synchronous function to a **thread pool** via
       ``asyncio.to_thread()``.
    4. The DB work happens on a background thread; other connections keep
       being served.
    5. The result is awaited back in the handler, which replies or
       broadcasts.

Upserts go through :func:`dialect_insert`, which returns the PostgreSQL or
SQLite flavour of ``insert()`` so ``ON CONFLICT`` clauses work on both the
production database and the test database.

Usage::

    from nodechat.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    user = await run_db(establish_session, engine, token, nickname)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from nodechat.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    PostgreSQL gets a bounded pool (5 + 10 overflow, 10 s checkout timeout,
    hourly recycle, pre-ping).  Every connection handler may have one query
    in flight on the ``run_db`` thread pool, so the overflow absorbs bursts
    of joins.

    SQLite URLs are for local runs and tests.  They use the default pool
    with ``check_same_thread`` off and a 30 s busy timeout, so concurrent
    upserts from worker threads wait for the write lock instead of failing.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    else:
        engine = create_engine(
            url,
            echo=False,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_timeout=10,
            pool_recycle=3600,
        )
    logger.info("Database engine created → %s", engine.url.host or engine.url.database)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create any missing NodeChat tables; existing ones are left alone.

    Deployed databases are migrated with ``alembic upgrade head``.  This is
    for local SQLite files and the test suite, where no migration runs.
    """
    Base.metadata.create_all(engine)
    logger.info("Schema ready (%d tables)", len(Base.metadata.tables))


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """One unit of work: commit when the block exits cleanly, roll back if
    it raises.

    Objects stay readable after the block (``expire_on_commit=False``), so
    services can return ORM rows to the coordinator thread.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Upsert support
# ---------------------------------------------------------------------------
def dialect_insert(session: Session):
    """Return the dialect-specific ``insert`` construct for *session*'s bind.

    Both the PostgreSQL and SQLite variants expose
    ``on_conflict_do_update`` / ``on_conflict_do_nothing`` with the same
    signature, so callers can build one upsert for both backends.
    """
    name = session.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Unsupported database dialect for upserts: {name}")


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await ``func(*args, **kwargs)`` on a worker thread.

    The coordinator never calls a service directly::

        line = await run_db(post_message, engine, user_id, room_key, text)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
