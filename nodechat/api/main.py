"""
nodechat.api.main — FastAPI application entry point
====================================================

Serves the hot-room query API and the ``/ws`` session socket from one
process, because the fan-out registry lives in memory.

Run with::

    uvicorn nodechat.api.main:app --port 3001
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import Engine

load_dotenv()

from nodechat.api.routes.admin import router as admin_router  # noqa: E402
from nodechat.api.routes.public import router as public_router  # noqa: E402
from nodechat.api.routes.realtime import router as realtime_router  # noqa: E402
from nodechat.config import NodeChatConfig, load_config  # noqa: E402
from nodechat.database.engine import create_db_engine, init_db  # noqa: E402
from nodechat.live.coordinator import SessionCoordinator  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


def create_app(
    engine: Engine | None = None,
    config: NodeChatConfig | None = None,
) -> FastAPI:
    """Build the app.  Tests pass their own *engine* and *config*."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown lifecycle — build engine, schema and coordinator."""
        app.state.config = config or load_config()
        app.state.engine = engine or create_db_engine()
        init_db(app.state.engine)
        app.state.coordinator = SessionCoordinator(app.state.engine, app.state.config)
        logger.info(
            "%s API started — engine ready (%s)",
            app.state.config.service_name, app.state.engine.url.database,
        )
        yield
        logger.info(
            "%s API shutting down (%d live connections)",
            app.state.config.service_name, app.state.coordinator.active_sessions,
        )

    app = FastAPI(
        title="NodeChat API",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(public_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")
    app.include_router(realtime_router)

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
