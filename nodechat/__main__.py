"""
nodechat.__main__ — Entry point for ``python -m nodechat``
===========================================================

Wiring:
1. Load .env (secrets).
2. Configure logging.
3. ``serve`` (default): run the API + WebSocket server under uvicorn.
   ``reconcile``: recount room counters from the logs once and exit.

Run with::

    python -m nodechat               # serve on $PORT (default 3001)
    python -m nodechat reconcile
"""

from __future__ import annotations

import argparse
import json
import logging
import os

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("nodechat")


def _serve(host: str, port: int) -> None:
    import uvicorn

    logger.info("Starting NodeChat on %s:%d…", host, port)
    uvicorn.run("nodechat.api.main:app", host=host, port=port, log_config=None)


def _reconcile() -> None:
    from nodechat.database.engine import create_db_engine, init_db
    from nodechat.services.reconciliation_service import reconcile_room_counters

    engine = create_db_engine()
    init_db(engine)
    result = reconcile_room_counters(engine)
    print(json.dumps(result, indent=2))


def main() -> None:
    """Bootstrap and run NodeChat."""
    load_dotenv()

    parser = argparse.ArgumentParser(prog="nodechat")
    parser.add_argument("command", nargs="?", default="serve", choices=("serve", "reconcile"))
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3001")))
    args = parser.parse_args()

    if args.command == "reconcile":
        _reconcile()
        return

    try:
        _serve(args.host, args.port)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
