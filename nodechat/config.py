"""
nodechat.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for **soft** settings (history window, dwell clamp,
hot-room defaults).  Secrets and infrastructure (``DATABASE_URL``, CORS
origins) stay in the environment / ``.env``.

Unlike most deployments, the server must boot without a config file: a
missing file yields the built-in defaults.  A file that exists but holds
malformed values fails fast at startup.

Usage::

    from nodechat.config import load_config

    cfg = load_config()          # $NODECHAT_CONFIG or ./config.yaml
    print(cfg.history_limit)     # 50
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class NodeChatConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    service_name: str = "NodeChat"

    # Message store
    history_limit: int = 50  # Oldest-N window delivered on join

    # Transition log
    max_dwell_seconds: float = 21600.0  # Client-reported dwell is clamped to this

    # Hot-room query defaults (also the fallbacks for malformed parameters)
    hot_window_hours: float = 24.0
    hot_limit: int = 5
    hot_min_visits: int = 1

    # Maintenance endpoints (unauthenticated, so off by default)
    admin_endpoints_enabled: bool = False


_INT_FIELDS = {"history_limit", "hot_limit", "hot_min_visits"}
_FLOAT_FIELDS = {"max_dwell_seconds", "hot_window_hours"}


def _coerce(name: str, value: object) -> object:
    if name in _INT_FIELDS:
        result = int(value)
        if result < 1:
            raise ValueError(f"{name} must be >= 1 (got {value!r})")
        return result
    if name in _FLOAT_FIELDS:
        result = float(value)
        if result <= 0:
            raise ValueError(f"{name} must be > 0 (got {value!r})")
        return result
    if name == "admin_endpoints_enabled":
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    return str(value)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> NodeChatConfig:
    """Read *path* and return a :class:`NodeChatConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML file.  Defaults to ``$NODECHAT_CONFIG``
        and then ``config.yaml`` in the current working directory.

    Raises
    ------
    ValueError
        If a known key holds a value of the wrong type or range, or the
        file's top level is not a mapping.
    """
    config_path = Path(path or os.getenv("NODECHAT_CONFIG") or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        logger.info("No config file at %s, using defaults", config_path)
        return NodeChatConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"{config_path}: top level must be a mapping")

    known = {f.name for f in fields(NodeChatConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", config_path, unknown)

    values = {
        name: _coerce(name, value)
        for name, value in raw.items()
        if name in known and value is not None
    }
    return NodeChatConfig(**values)
