from __future__ import annotations

import asyncio

import pytest

from geo.viewport import Viewport
from sync.debounce import Debouncer, FetchDebouncer


def _vp(i: int) -> Viewport:
    return Viewport(south=18.4 + i * 0.001, west=73.8, north=18.6 + i * 0.001, east=73.95)


def test_burst_of_moves_yields_one_fetch_with_latest_viewport():
    seen: list[Viewport] = []

    async def run():
        d = FetchDebouncer(seen.append, window_s=0.05)
        for i in range(20):
            d.on_viewport_changed(_vp(i))
            await asyncio.sleep(0.001)
        assert d.pending
        await d.wait_idle()
        assert not d.pending

    asyncio.run(run())
    assert seen == [_vp(19)]


def test_separate_bursts_fire_separately():
    seen: list[Viewport] = []

    async def run():
        d = FetchDebouncer(seen.append, window_s=0.02)
        d.on_viewport_changed(_vp(1))
        await d.wait_idle()
        d.on_viewport_changed(_vp(2))
        await d.wait_idle()

    asyncio.run(run())
    assert seen == [_vp(1), _vp(2)]


def test_cancel_drops_the_pending_fire():
    seen: list[int] = []

    async def run():
        d: Debouncer[int] = Debouncer(0.02, seen.append)
        d.trigger(1)
        d.cancel()
        await asyncio.sleep(0.05)

    asyncio.run(run())
    assert seen == []


def test_coroutine_callbacks_are_awaited_by_wait_idle():
    done: list[int] = []

    async def slow(v: int) -> None:
        await asyncio.sleep(0.02)
        done.append(v)

    async def run():
        d: Debouncer[int] = Debouncer(0.01, slow)
        d.trigger(7)
        await d.wait_idle()

    asyncio.run(run())
    assert done == [7]


def test_failing_callback_is_logged_not_raised(caplog):
    async def broken(v: int) -> None:
        raise RuntimeError("nope")

    async def run():
        d: Debouncer[int] = Debouncer(0.0, broken, name="settle")
        d.trigger(1)
        await d.wait_idle()

    with caplog.at_level("ERROR"):
        asyncio.run(run())
    assert any("settle callback failed" in r.getMessage() for r in caplog.records)


def test_negative_delay_is_rejected():
    with pytest.raises(ValueError):
        Debouncer(-1.0, print)
