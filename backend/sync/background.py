from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from clients.types import IngestionResult, IngestionTrigger
from geo.regions import DEFAULT_REGION_ID, Region, default_regions, region_hint_for
from geo.viewport import Viewport
from sync.debounce import Debouncer
from sync.errors import IngestionError

log = logging.getLogger(__name__)

BACKGROUND_DEBOUNCE_S = 2.0
INGEST_SETTLE_S = 1.0
DEFAULT_SOURCES: tuple[str, ...] = ("osm_overpass", "government_datasets", "verified_locations")


@dataclass(frozen=True)
class IngestionAttempt:
    viewport: Viewport
    region: str
    result: IngestionResult | None
    error: IngestionError | None
    reloaded: bool
    total_ms: float


class BackgroundCoverageScheduler:
    """
    Best-effort backfill of the viewport through the ingestion trigger.

    Runs on its own, longer debounce and independently of `LoadGate`. When the
    backend reports new entities it waits for writes to settle and asks for one
    forced reload through `reload`, which is expected to go through the gate and
    to return None when the gate skipped it.
    Ingestion failures are only logged.
    """

    def __init__(
        self,
        trigger: IngestionTrigger,
        reload: Callable[[Viewport], Awaitable[Any]],
        *,
        sources: Iterable[str] = DEFAULT_SOURCES,
        regions: Iterable[Region] | None = None,
        default_region: str = DEFAULT_REGION_ID,
        max_region_distance_m: float = 150_000.0,
        window_s: float = BACKGROUND_DEBOUNCE_S,
        settle_s: float = INGEST_SETTLE_S,
        on_attempt: Callable[[IngestionAttempt], None] | None = None,
    ):
        self.trigger = trigger
        self.reload = reload
        self.sources = list(sources)
        self.regions = list(regions) if regions is not None else default_regions()
        self.default_region = default_region
        self.max_region_distance_m = float(max_region_distance_m)
        self.settle_s = float(settle_s)
        self.on_attempt = on_attempt
        self._debouncer: Debouncer[Viewport] = Debouncer(
            window_s, self._run, name="background-ingest"
        )

    @property
    def window_s(self) -> float:
        return self._debouncer.delay_s

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def schedule(self, viewport: Viewport) -> None:
        self._debouncer.trigger(viewport)

    def cancel(self) -> None:
        self._debouncer.cancel()

    async def wait_idle(self) -> None:
        await self._debouncer.wait_idle()

    async def close(self) -> None:
        await self._debouncer.close()

    def region_for(self, viewport: Viewport) -> str:
        return region_hint_for(
            viewport,
            self.regions,
            default=self.default_region,
            max_distance_m=self.max_region_distance_m,
        )

    async def _run(self, viewport: Viewport) -> IngestionAttempt:
        t0 = time.perf_counter()
        region = self.region_for(viewport)
        result: IngestionResult | None = None
        error: IngestionError | None = None
        reloaded = False

        try:
            result = await self.trigger.trigger(viewport, sources=self.sources, region=region)
        except IngestionError as e:
            error = e
            log.warning("background ingestion for %s failed: %s", region, e.message)

        if result is not None:
            log.info(
                "background ingestion for %s added %d entities", region, result.added_count
            )
            if result.added_count > 0:
                await asyncio.sleep(self.settle_s)
                reloaded = await self.reload(viewport) is not None

        attempt = IngestionAttempt(
            viewport=viewport,
            region=region,
            result=result,
            error=error,
            reloaded=reloaded,
            total_ms=round((time.perf_counter() - t0) * 1000.0, 2),
        )
        if self.on_attempt is not None:
            self.on_attempt(attempt)
        return attempt
