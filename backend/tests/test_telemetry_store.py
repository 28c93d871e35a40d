from __future__ import annotations

import asyncio

from fakes import PUNE, FakeSource, entity, fast_profile
from sync.session import MapSession
from telemetry import singleton
from telemetry.singleton import get_store, record_event, reset_store


def _enable(tmp_path, monkeypatch):
    db_path = tmp_path / "telemetry.duckdb"
    monkeypatch.setenv("PINSYNC_TELEMETRY_PATH", str(db_path))
    monkeypatch.setenv("PINSYNC_TELEMETRY", "1")
    return db_path


def test_telemetry_is_off_by_default():
    assert get_store() is None
    # Must not raise with telemetry disabled.
    record_event(endpoint="sync", profile="home", viewport=PUNE.as_dict(), stats={})


def test_telemetry_store_writes_rows(tmp_path, monkeypatch):
    _enable(tmp_path, monkeypatch)
    store = get_store()
    assert store is not None

    store.record(
        endpoint="sync",
        profile="home",
        viewport=PUNE.as_dict(),
        stats={"cache": {"cacheHit": False}, "timingsMs": {"total": 9.9}},
    )
    store.flush(timeout_s=2.0)

    # Use the existing connection; DuckDB disallows opening the same file with different configs.
    n = int(store.conn.execute("select count(*) from sync_events").fetchone()[0])
    assert n == 1

    row = store.conn.execute("select endpoint, profile, vp_south from sync_events limit 1").fetchone()
    assert row == ("sync", "home", 18.4)
    reset_store()


def test_summary_groups_by_profile_and_endpoint(tmp_path, monkeypatch):
    _enable(tmp_path, monkeypatch)
    store = get_store()
    assert store is not None

    for total, hit in ((10.0, False), (2.0, True), (30.0, False)):
        store.record(
            endpoint="sync",
            profile="home",
            viewport=PUNE.as_dict(),
            stats={"cache": {"cacheHit": hit}, "timingsMs": {"total": total}},
        )
    store.record(
        endpoint="ingest",
        profile="home",
        viewport=PUNE.as_dict(),
        stats={"error": "HTTP 500", "timingsMs": {"total": 5.0}},
    )
    store.flush(timeout_s=2.0)

    rows = {r["endpoint"]: r for r in store.summary(profile="home")}
    assert rows["sync"]["n"] == 3
    assert abs(rows["sync"]["avgTotalMs"] - 14.0) < 1e-6
    assert abs(rows["sync"]["cacheHitRate"] - 1 / 3) < 1e-6
    assert rows["sync"]["errors"] == 0
    assert rows["ingest"]["errors"] == 1
    assert store.summary(profile="admin") == []
    reset_store()


def test_session_records_sync_events(tmp_path, monkeypatch):
    _enable(tmp_path, monkeypatch)

    async def run():
        session = MapSession(fast_profile(), source=FakeSource(responses=[[entity("a")]]))
        await session.load(PUNE)
        await session.load(PUNE)
        await session.close()

    asyncio.run(run())
    store = get_store()
    store.flush(timeout_s=2.0)
    rows = store.summary(endpoint="sync")
    assert rows[0]["profile"] == "test"
    assert rows[0]["n"] == 2
    assert abs(rows[0]["cacheHitRate"] - 0.5) < 1e-6
    reset_store()


def test_telemetry_reset_deletes_db(tmp_path, monkeypatch):
    db_path = _enable(tmp_path, monkeypatch)

    store = get_store()
    assert store is not None
    store.record(endpoint="sync", profile="home", viewport=PUNE.as_dict(), stats={})
    assert store.path.resolve() == db_path.resolve()

    reset_store()
    assert not db_path.exists()


def test_session_from_profile_opens_the_store_up_front(tmp_path, monkeypatch):
    db_path = _enable(tmp_path, monkeypatch)
    assert singleton._holder.store is None

    session = MapSession.from_profile("home")
    opened = singleton._holder.store
    assert opened is not None
    assert db_path.exists()

    asyncio.run(session.close())
    # The first write reuses the connection opened above.
    record_event(endpoint="sync", profile="home", viewport=PUNE.as_dict(), stats={})
    assert get_store() is opened
    reset_store()


def test_session_from_profile_skips_the_store_when_disabled():
    session = MapSession.from_profile("home")
    assert singleton._holder.store is None
    asyncio.run(session.close())
