"""
nodechat.api.deps — FastAPI dependency injection
=================================================

The engine, config and coordinator are built once in the app lifespan and
kept on ``app.state``; these helpers hand them to routes.
"""

from __future__ import annotations

from fastapi import Request
from sqlalchemy import Engine

from nodechat.config import NodeChatConfig
from nodechat.live.coordinator import SessionCoordinator


def get_engine(request: Request) -> Engine:
    return request.app.state.engine


def get_config(request: Request) -> NodeChatConfig:
    return request.app.state.config


def get_coordinator(request: Request) -> SessionCoordinator:
    return request.app.state.coordinator
