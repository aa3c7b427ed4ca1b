"""Runtime configuration helpers.

Defaults live on :class:`SyncConfig`; :meth:`SyncConfig.from_env` layers the
``AIRPORTSYNC_*`` environment variables on top, and explicit keyword
overrides (typically CLI flags) win over both.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://airports.pidgets.com/v1/airports"
DEFAULT_STATE = "California"
DEFAULT_TIMEOUT_S = 10.0


def home_dir() -> Path:
    """Return the data directory (``$AIRPORTSYNC_HOME`` or ``~/.airportsync``)."""
    home = os.environ.get("AIRPORTSYNC_HOME")
    if home:
        return Path(home).expanduser()
    return Path(os.path.expanduser("~/.airportsync"))


def _default_db_path() -> str:
    return str(home_dir() / "airports.sqlite")


def _env_bool(name: str) -> bool | None:
    raw = os.environ.get(name)
    if not raw:
        return None
    val = raw.strip().lower()
    if val in {"0", "false", "no"}:
        return False
    if val in {"1", "true", "yes"}:
        return True
    logger.warning("Invalid %s=%r", name, raw)
    return None


@dataclass(slots=True)
class SyncConfig:
    base_url: str = DEFAULT_URL
    state: str = DEFAULT_STATE
    timeout_s: float = DEFAULT_TIMEOUT_S
    db_path: str = field(default_factory=_default_db_path)
    # Persist the payload ``url`` in ``Airport.icao`` (historical behavior)
    icao_from_url: bool = True
    verify_tls: bool = True

    @property
    def params(self) -> dict[str, str]:
        """Query parameters sent with the airports request."""
        return {"state": self.state, "format": "json"}

    @classmethod
    def from_env(cls, **overrides: Any) -> "SyncConfig":
        """Build a config from defaults, environment, then *overrides*.

        Overrides whose value is None are ignored so argparse namespaces can
        be passed through directly.
        """
        cfg = cls()

        url = os.environ.get("AIRPORTSYNC_URL")
        if url:
            cfg.base_url = url
        state = os.environ.get("AIRPORTSYNC_STATE")
        if state:
            cfg.state = state

        _to = os.environ.get("AIRPORTSYNC_TIMEOUT_S")
        if _to:
            try:
                cfg.timeout_s = max(0.1, float(_to))
            except ValueError:
                logger.warning("Invalid AIRPORTSYNC_TIMEOUT_S=%r", _to)

        db = os.environ.get("AIRPORTSYNC_DB")
        if db:
            cfg.db_path = os.path.expanduser(db)

        icao_from_url = _env_bool("AIRPORTSYNC_ICAO_FROM_URL")
        if icao_from_url is not None:
            cfg.icao_from_url = icao_from_url
        verify_tls = _env_bool("AIRPORTSYNC_VERIFY_TLS")
        if verify_tls is not None:
            cfg.verify_tls = verify_tls

        explicit = {k: v for k, v in overrides.items() if v is not None}
        if "timeout_s" in explicit:
            explicit["timeout_s"] = max(0.1, float(explicit["timeout_s"]))
        return replace(cfg, **explicit)
