from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import duckdb

from telemetry.sql import (
    CREATE_EVENTS_TABLE_SQL,
    INSERT_EVENTS_SQL,
    SUMMARY_SQL_TEMPLATE,
)

log = logging.getLogger(__name__)

MAX_BATCH = 250

_SUMMARY_KEYS = (
    "profile",
    "endpoint",
    "n",
    "avgTotalMs",
    "p50TotalMs",
    "p95TotalMs",
    "cacheHitRate",
    "errors",
)
_FLOAT_KEYS = ("avgTotalMs", "p50TotalMs", "p95TotalMs", "cacheHitRate")


@dataclass(frozen=True)
class SyncEvent:
    ts_ms: int
    endpoint: str
    profile: str
    south: float
    west: float
    north: float
    east: float
    stats_json: str

    @classmethod
    def create(
        cls,
        *,
        endpoint: str,
        profile: str,
        viewport: dict[str, float],
        stats: dict[str, Any],
    ) -> "SyncEvent":
        return cls(
            ts_ms=int(time.time() * 1000),
            endpoint=str(endpoint),
            profile=str(profile),
            south=float(viewport["south"]),
            west=float(viewport["west"]),
            north=float(viewport["north"]),
            east=float(viewport["east"]),
            stats_json=json.dumps(stats, ensure_ascii=False, default=str),
        )

    def as_row(self) -> tuple:
        return (
            self.ts_ms,
            self.endpoint,
            self.profile,
            self.south,
            self.west,
            self.north,
            self.east,
            self.stats_json,
        )


class TelemetryStore:
    """
    Append-only DuckDB log of sync passes and ingestion attempts.

    `record()` only appends to an in-memory buffer. A single writer thread moves
    the buffer into the table every `batch_interval_s` (or sooner once it holds
    MAX_BATCH events), so callers on the event loop never wait on disk.
    """

    def __init__(
        self,
        path: Path,
        conn: duckdb.DuckDBPyConnection,
        *,
        batch_interval_s: float = 0.5,
    ):
        self.path = path
        self.conn = conn
        self.batch_interval_s = batch_interval_s
        self._db_lock = threading.Lock()
        self._cv = threading.Condition()
        self._buffer: list[SyncEvent] = []
        self._writing = False
        self._closing = False
        self._thread: threading.Thread | None = None

    def ensure_schema(self) -> None:
        with self._db_lock:
            self.conn.execute(CREATE_EVENTS_TABLE_SQL)

    def start(self) -> None:
        with self._cv:
            if self._thread is not None:
                return
            self._closing = False
            self._thread = threading.Thread(
                target=self._writer_loop, name="telemetry-writer", daemon=True
            )
            self._thread.start()

    def stop(self, *, timeout_s: float = 2.0) -> None:
        """Write what is buffered and stop the writer thread."""
        with self._cv:
            thread, self._thread = self._thread, None
            self._closing = True
            self._cv.notify_all()
        if thread is not None and thread.is_alive():
            thread.join(timeout=timeout_s)

    def record(
        self,
        *,
        endpoint: str,
        profile: str,
        viewport: dict[str, float],
        stats: dict[str, Any],
    ) -> None:
        event = SyncEvent.create(
            endpoint=endpoint, profile=profile, viewport=viewport, stats=stats
        )
        self.start()
        with self._cv:
            self._buffer.append(event)
            if len(self._buffer) >= MAX_BATCH:
                self._cv.notify_all()

    def flush(self, *, timeout_s: float = 2.0) -> bool:
        """
        Ask the writer to drain now and wait for it. Returns False on timeout.
        """
        with self._cv:
            if self._thread is None:
                return not self._buffer
            self._cv.notify_all()
            return self._cv.wait_for(
                lambda: not self._buffer and not self._writing, timeout=timeout_s
            )

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        with self._db_lock:
            if params:
                return self.conn.execute(sql, list(params)).fetchall()
            return self.conn.execute(sql).fetchall()

    def summary(
        self,
        *,
        profile: str | None = None,
        endpoint: str | None = None,
        since_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        """Per (profile, endpoint): count, total-time percentiles, cache-hit rate, errors."""
        clauses: list[str] = []
        params: list[Any] = []
        for clause, value in (
            ("profile = ?", profile),
            ("endpoint = ?", endpoint),
            ("ts_ms >= ?", None if since_ms is None else int(since_ms)),
        ):
            if value is not None and value != "":
                clauses.append(clause)
                params.append(value)

        where_sql = "WHERE " + " AND ".join(clauses) if clauses else ""
        rows = self.query(SUMMARY_SQL_TEMPLATE.format(where_sql=where_sql), params)
        return [_summary_row(r) for r in rows]

    def reset(self) -> None:
        """Stop writing, close the connection and delete the database file."""
        self.stop(timeout_s=2.0)
        with self._db_lock:
            self.conn.close()
        self.path.unlink(missing_ok=True)

    def _writer_loop(self) -> None:
        while True:
            with self._cv:
                if not self._closing and len(self._buffer) < MAX_BATCH:
                    self._cv.wait(timeout=self.batch_interval_s)
                batch, self._buffer = self._buffer, []
                self._writing = bool(batch)
                closing = self._closing

            try:
                if batch:
                    self._insert(batch)
            finally:
                with self._cv:
                    self._writing = False
                    self._cv.notify_all()

            if closing:
                return

    def _insert(self, batch: list[SyncEvent]) -> None:
        try:
            with self._db_lock:
                self.conn.executemany(INSERT_EVENTS_SQL, [e.as_row() for e in batch])
        except duckdb.Error as e:
            log.warning("dropping %d telemetry events: %s", len(batch), e)


def _as_float(v: Any) -> float | None:
    if v is None:
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _summary_row(values: tuple) -> dict[str, Any]:
    row = dict(zip(_SUMMARY_KEYS, values))
    row["n"] = int(row["n"])
    row["errors"] = int(row["errors"] or 0)
    for key in _FLOAT_KEYS:
        row[key] = _as_float(row[key])
    return row
