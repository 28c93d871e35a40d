from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Generic, TypeVar

from geo.viewport import Viewport

log = logging.getLogger(__name__)

T = TypeVar("T")

FETCH_DEBOUNCE_S = 0.5


class Debouncer(Generic[T]):
    """
    Single owned timer that fires `callback(latest_value)` once events stop.

    Every `trigger()` cancels the pending timer and starts a new one; intermediate
    values are dropped, never queued. Coroutine callbacks run as tasks owned by the
    debouncer so `wait_idle()`/`close()` can await them.
    """

    def __init__(self, delay_s: float, callback: Callable[[T], Any], *, name: str = "debounce"):
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")
        self.delay_s = float(delay_s)
        self.name = name
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._latest: T | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self, value: T) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._latest = value
        self._handle = loop.call_later(self.delay_s, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def wait_idle(self) -> None:
        """Wait for the pending timer (if any) and every callback task it spawned."""
        while self._handle is not None or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self.delay_s / 4 or 0.001)

    async def close(self) -> None:
        self.cancel()
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        value = self._latest
        self._latest = None
        result = self._callback(value)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("%s callback failed: %s", self.name, exc, exc_info=exc)


class FetchDebouncer:
    """
    Collapses bursts of move/zoom events into one fetch trigger with the latest viewport.
    """

    def __init__(
        self,
        on_settled: Callable[[Viewport], Any],
        *,
        window_s: float = FETCH_DEBOUNCE_S,
    ):
        self._debouncer: Debouncer[Viewport] = Debouncer(
            window_s, on_settled, name="fetch-debounce"
        )

    @property
    def window_s(self) -> float:
        return self._debouncer.delay_s

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def on_viewport_changed(self, viewport: Viewport) -> None:
        self._debouncer.trigger(viewport)

    def cancel(self) -> None:
        self._debouncer.cancel()

    async def wait_idle(self) -> None:
        await self._debouncer.wait_idle()

    async def close(self) -> None:
        await self._debouncer.close()
