"""
nodechat.api.routes.admin — Maintenance endpoints
==================================================

There is no authentication in NodeChat, so these routes answer 404 unless
``admin_endpoints_enabled`` is set in ``config.yaml``.  Enable them only
behind a private network or reverse-proxy ACL.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import Engine

from nodechat.api.deps import get_config, get_engine
from nodechat.config import NodeChatConfig
from nodechat.services.reconciliation_service import reconcile_room_counters

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def require_admin_enabled(config: NodeChatConfig = Depends(get_config)) -> None:
    if not config.admin_endpoints_enabled:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Not Found")


@router.post("/reconcile", dependencies=[Depends(require_admin_enabled)])
def reconcile(engine: Engine = Depends(get_engine)):
    """Recount room visit/message counters from the logs and fix drift."""
    logger.info("Counter reconciliation requested via API")
    return reconcile_room_counters(engine)
