"""
NodeChat — Anonymous Location-Style Chat Rooms
===============================================
Users join free-text "nodes", chat in real time, get nudged toward other
active nodes, and can browse the currently hot ones.  Every room change
is logged; the hot list is a time-decayed score over that log.

Package layout::

    nodechat/
    ├── config.py          # YAML → typed Python config
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, upsert helper, async bridge
    │   └── models.py      # users, rooms, transitions, messages
    ├── engine/
    │   ├── events.py      # WebSocket event schema + handler outcomes
    │   └── hotness.py     # Pure hot-room scoring
    ├── services/
    │   ├── identity_service.py       # localToken → User upsert
    │   ├── room_service.py           # Room upsert, lookup, recommendation
    │   ├── transition_service.py     # Transition log writes
    │   ├── message_service.py        # Message writes + oldest-N history
    │   ├── ranking_service.py        # Transition aggregation + ranking
    │   └── reconciliation_service.py # Cached counter drift repair
    ├── live/
    │   ├── groups.py      # Room key → live connections
    │   └── coordinator.py # Per-connection state machine
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # hot-rooms, presence, admin, /ws
"""

__version__ = "0.1.0"
