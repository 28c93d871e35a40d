from __future__ import annotations

import logging
import threading
from pathlib import Path

import duckdb

from telemetry.config import telemetry_enabled, telemetry_path
from telemetry.store import TelemetryStore

log = logging.getLogger(__name__)


class _StoreHolder:
    """Process-wide store, reopened when PINSYNC_TELEMETRY_PATH changes."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.store: TelemetryStore | None = None

    def get(self, path: Path) -> TelemetryStore:
        with self.lock:
            if self.store is not None and self.store.path.resolve() == path.resolve():
                return self.store
            self.close()
            path.parent.mkdir(parents=True, exist_ok=True)
            store = TelemetryStore(path=path, conn=duckdb.connect(str(path)))
            store.ensure_schema()
            store.start()
            self.store = store
            return store

    def close(self) -> None:
        with self.lock:
            if self.store is not None:
                self.store.stop(timeout_s=2.0)
                self.store.conn.close()
                self.store = None


_holder = _StoreHolder()


def get_store() -> TelemetryStore | None:
    if not telemetry_enabled():
        return None
    return _holder.get(telemetry_path())


def reset_store() -> None:
    """Delete the telemetry database, open or not."""
    with _holder.lock:
        store, _holder.store = _holder.store, None
        if store is not None:
            store.reset()
        else:
            telemetry_path().unlink(missing_ok=True)


def open_store() -> TelemetryStore | None:
    """
    Open the store ahead of the first write. Failures are logged and left for
    `record_event` to retry.
    """
    try:
        return get_store()
    except (duckdb.Error, OSError) as e:
        log.warning("telemetry store unavailable: %s", e)
        return None


def record_event(
    *, endpoint: str, profile: str, viewport: dict[str, float], stats: dict
) -> None:
    """
    Best-effort write; telemetry problems never reach the loading path.
    """
    try:
        store = get_store()
        if store is not None:
            store.record(endpoint=endpoint, profile=profile, viewport=viewport, stats=stats)
    except (duckdb.Error, OSError) as e:
        log.debug("telemetry write skipped: %s", e)
