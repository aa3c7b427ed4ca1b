"""SQLite-backed airport store.

Holds the airports written by the most recent successful sync, plus a small
``meta`` key/value table describing that sync. Single statements commit on
return; :meth:`AirportStore.replace_all` and :meth:`AirportStore.transaction`
group a clear and its inserts into one commit or one rollback.
"""
from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Mapping, Optional

from airportsync.core.geo import haversine_nm
from airportsync.core.models import Airport
from airportsync.errors import StoreError

__all__ = ["AirportStore"]

_LOG = logging.getLogger(__name__)

_COLUMNS = (
    "code",
    "icao",
    "name",
    "city",
    "state",
    "latitude",
    "longitude",
    "runway_length",
)


def _ensure_dir(path: str) -> None:
    d = os.path.dirname(path)
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)


def _row_to_airport(row: Any) -> Airport:
    return Airport(**{k: row[k] for k in _COLUMNS})


class AirportStore:
    """Persistent collection of :class:`Airport` records keyed by ``code``.

    One connection is shared across threads behind a re-entrant lock, so
    writes may be pushed to a worker thread while the event loop reads
    between syncs. A reader never observes a half-applied transaction
    because the lock is held from ``BEGIN`` until ``COMMIT``/``ROLLBACK``.
    """

    def __init__(self, path: str) -> None:
        if path != ":memory:":
            path = os.path.expanduser(path)
            _ensure_dir(path)
        self.path = path
        self._lock = threading.RLock()
        self._depth = 0
        try:
            # Autocommit mode; transactions are opened explicitly.
            self._conn = sqlite3.connect(
                path, check_same_thread=False, isolation_level=None
            )
            self._conn.row_factory = sqlite3.Row
            self._create_schema()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open airport store {path}: {e}") from e

    def _create_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT);
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS airports (
              code TEXT PRIMARY KEY,
              icao TEXT NOT NULL,
              name TEXT NOT NULL,
              city TEXT NOT NULL,
              state TEXT NOT NULL,
              latitude REAL NOT NULL,
              longitude REAL NOT NULL,
              runway_length INTEGER
            );
            """
        )

    # Transactions ---------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["AirportStore"]:
        """Group writes into a single commit, rolling back on any error.

        Nested use joins the outer transaction.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreError(f"cannot begin transaction: {e}") from e
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._depth = 0
                try:
                    self._conn.execute("ROLLBACK")
                except sqlite3.Error:
                    _LOG.exception("rollback failed on %s", self.path)
                raise
            self._depth = 0
            try:
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                try:
                    self._conn.execute("ROLLBACK")
                except sqlite3.Error:
                    pass
                raise StoreError(f"commit failed: {e}") from e

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self._conn.execute(sql, tuple(params))
            except (sqlite3.Error, OverflowError) as e:
                # sqlite3 raises OverflowError for ints beyond 64 bits
                raise StoreError(str(e)) from e

    # Gateway --------------------------------------------------------------

    def clear_all(self) -> None:
        """Remove every airport."""
        self._execute("DELETE FROM airports")

    def insert(self, airport: Airport) -> None:
        """Insert one airport. A repeated ``code`` raises :class:`StoreError`."""
        self._execute(
            """
            INSERT INTO airports (
                code, icao, name, city, state, latitude, longitude, runway_length
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                airport.code,
                airport.icao,
                airport.name,
                airport.city,
                airport.state,
                float(airport.latitude),
                float(airport.longitude),
                airport.runway_length,
            ),
        )

    def query_all(self) -> List[Airport]:
        """Return every stored airport ordered by code."""
        with self._lock:
            rows = self._execute("SELECT * FROM airports ORDER BY code").fetchall()
        return [_row_to_airport(r) for r in rows]

    def get(self, code: str) -> Optional[Airport]:
        row = self._execute(
            "SELECT * FROM airports WHERE code = ?", (code,)
        ).fetchone()
        return _row_to_airport(row) if row is not None else None

    def count(self) -> int:
        row = self._execute("SELECT COUNT(*) FROM airports").fetchone()
        return int(row[0])

    def replace_all(
        self,
        airports: Iterable[Airport],
        *,
        meta: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Atomically swap the stored airports for *airports*.

        The clear, the inserts and any *meta* entries share one transaction;
        on failure the previous contents remain and :class:`StoreError` is
        raised. Returns the number of airports written.
        """
        inserted = 0
        with self.transaction():
            self.clear_all()
            for ap in airports:
                self.insert(ap)
                inserted += 1
            for key, value in (meta or {}).items():
                self._set_meta(key, value)
        _LOG.info("Replaced airports in %s (%d rows)", self.path, inserted)
        return inserted

    # Meta -----------------------------------------------------------------

    def _set_meta(self, key: str, value: Any) -> None:
        self._execute(
            "REPLACE INTO meta (key, value) VALUES (?, ?)",
            (key, None if value is None else str(value)),
        )

    def meta(self, key: str) -> Optional[str]:
        row = self._execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        return None if row is None else row[0]

    # Queries --------------------------------------------------------------

    def nearest(
        self,
        lat: float,
        lon: float,
        *,
        max_nm: float = 50.0,
        k: int = 3,
    ) -> List[Airport]:
        """Return up to k stored airports within max_nm, sorted by distance.

        Parameters
        ----------
        lat, lon: float
            Reference position in degrees.
        max_nm: float
            Maximum range in nautical miles for inclusion.
        k: int
            Maximum number of airports to return.
        """
        scored: list[tuple[float, Airport]] = []
        for ap in self.query_all():
            d = haversine_nm(lat, lon, ap.latitude, ap.longitude)
            if d <= max_nm:
                scored.append((d, ap))

        scored.sort(key=lambda t: t[0])
        return [ap for _, ap in scored[: max(0, int(k))]]

    # Lifecycle ------------------------------------------------------------

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "AirportStore":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
