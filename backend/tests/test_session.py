from __future__ import annotations

import asyncio

from entities.types import EntityKind
from fakes import PUNE, PUNE_PANNED, FakeIngestion, FakeSource, RecordingNotifier, entity, fast_profile
from profiles.types import ProfileIngestion
from sync.errors import IngestionError
from sync.gate import LoadState
from sync.session import MapSession


def _session(source, *, ingestion=None, notifier=None) -> MapSession:
    return MapSession(fast_profile(), source=source, ingestion=ingestion, notifier=notifier)


def test_second_load_is_skipped_while_one_is_in_flight():
    async def run():
        source = FakeSource(
            responses=[[entity("a")]], block=asyncio.Event(), started=asyncio.Event()
        )
        session = _session(source)

        first = asyncio.create_task(session.load(PUNE))
        await source.started.wait()
        assert session.gate.state is LoadState.fetching_viewport

        skipped = await session.load(PUNE_PANNED)
        assert skipped is None
        assert len(source.calls) == 1

        source.block.set()
        result = await first
        assert result is not None and result.ok
        assert session.gate.state is LoadState.idle
        await session.close()

    asyncio.run(run())


def test_settled_move_loads_once():
    source = FakeSource(responses=[[entity("a"), entity("b")]])

    async def run():
        session = _session(source)
        for _ in range(5):
            session.on_viewport_changed(PUNE)
        await session.wait_idle()
        count = session.stats.count
        await session.close()
        return count

    count = asyncio.run(run())
    assert len(source.calls) == 1
    assert count == 2


def test_backfill_with_new_entities_forces_one_reload():
    source = FakeSource(responses=[[entity("a")], [entity("a"), entity("b"), entity("c")]])
    ingestion = FakeIngestion(added_count=3)

    async def run():
        session = _session(source, ingestion=ingestion)
        session.on_viewport_changed(PUNE)
        await session.wait_idle()
        count = session.stats.count
        await session.close()
        return count

    count = asyncio.run(run())
    assert len(ingestion.calls) == 1
    assert len(source.calls) == 2
    assert count == 3


def test_backfill_without_new_entities_does_not_reload():
    source = FakeSource(responses=[[entity("a")]])
    ingestion = FakeIngestion(added_count=0)

    async def run():
        session = _session(source, ingestion=ingestion)
        session.on_viewport_changed(PUNE)
        await session.wait_idle()
        await session.close()

    asyncio.run(run())
    assert len(ingestion.calls) == 1
    assert len(source.calls) == 1


def test_backfill_failure_is_invisible_to_the_user():
    notifier = RecordingNotifier()
    source = FakeSource(responses=[[entity("a")]])
    ingestion = FakeIngestion(error=IngestionError("HTTP 500"))

    async def run():
        session = _session(source, ingestion=ingestion, notifier=notifier)
        session.on_viewport_changed(PUNE)
        await session.wait_idle()
        count = session.stats.count
        await session.close()
        return count

    count = asyncio.run(run())
    assert notifier.seen == []
    assert count == 1


def test_ingestion_disabled_profile_has_no_background_pass():
    profile = fast_profile(ingestion=ProfileIngestion(enabled=False))
    ingestion = FakeIngestion(added_count=5)

    async def run():
        session = MapSession(profile, source=FakeSource(), ingestion=ingestion)
        assert session.background is None
        session.on_viewport_changed(PUNE)
        await session.wait_idle()
        await session.close()

    asyncio.run(run())
    assert ingestion.calls == []


def test_stats_subscription_and_unsubscribe():
    source = FakeSource(responses=[[entity("a", 4.5)], [entity("a", 4.5), entity("b")]])
    seen = []

    async def run():
        session = _session(source)
        unsubscribe = session.subscribe_stats(seen.append)
        await session.load(PUNE)
        unsubscribe()
        await session.load(PUNE_PANNED)
        await session.close()

    asyncio.run(run())
    assert [s.count for s in seen] == [1]


def test_filter_change_reloads_with_new_flags():
    source = FakeSource(responses=[[entity("a")]])

    async def run():
        session = _session(source)
        assert await session.reload() is None
        session.on_viewport_changed(PUNE)
        await session.wait_idle()
        unchanged = await session.set_filters(show_public=True)
        changed = await session.set_filters(show_private=False)
        await session.close()
        return unchanged, changed

    unchanged, changed = asyncio.run(run())
    assert unchanged is None
    assert changed is not None and changed.reset
    assert len(source.calls) == 2
    _viewport, filters = source.calls[-1]
    assert filters.show_public is True
    assert filters.show_private is False


def test_filter_change_during_fetch_is_not_lost():
    source = FakeSource(
        responses=[[entity("pub"), entity("priv", kind=EntityKind.private)]],
        block=asyncio.Event(),
        started=asyncio.Event(),
    )

    async def run():
        session = _session(source)
        session.current_viewport = PUNE
        first = asyncio.create_task(session.load(PUNE))
        await source.started.wait()

        # The forced reload cannot get past the gate.
        assert await session.set_filters(show_private=False) is None
        assert len(session.coverage) == 0

        source.block.set()
        dropped = await first
        assert dropped is not None and dropped.stale
        assert "priv" not in session.markers
        assert len(session.coverage) == 0

        again = await session.load(PUNE)
        ids = {m.entity_id for m in session.markers.markers()}
        await session.close()
        return again, ids

    again, ids = asyncio.run(run())
    assert not again.cache_hit
    assert again.reset
    assert ids == {"pub"}
    assert source.calls[-1][1].show_private is False


def test_background_reload_is_skipped_while_a_manual_pass_holds_the_gate():
    source = FakeSource(responses=[[entity("a")]], block=asyncio.Event(), started=asyncio.Event())
    ingestion = FakeIngestion(added_count=2)
    attempts = []

    async def run():
        session = _session(source, ingestion=ingestion)
        session.background.on_attempt = attempts.append
        manual = asyncio.create_task(session.load(PUNE, force_reload=True))
        await source.started.wait()

        session.background.schedule(PUNE)
        await session.background.wait_idle()
        assert len(source.calls) == 1

        source.block.set()
        result = await manual
        await session.close()
        return result

    result = asyncio.run(run())
    assert result is not None and result.ok
    assert len(ingestion.calls) == 1
    assert len(source.calls) == 1
    assert attempts[0].reloaded is False


def test_close_drops_markers_and_coverage():
    source = FakeSource(responses=[[entity("a"), entity("b")]])
    seen = []

    async def run():
        session = _session(source)
        await session.load(PUNE)
        assert len(session.layer) == 2
        session.subscribe_stats(seen.append)
        await session.close()
        return session

    session = asyncio.run(run())
    assert len(session.markers) == 0
    assert len(session.layer) == 0
    assert len(session.coverage) == 0
    assert session.stats.count == 0
    assert [s.count for s in seen] == [0]
