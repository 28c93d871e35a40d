from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from clients.types import EntitySource
from entities.types import Entity, EntityFilters
from geo.viewport import Viewport
from sync.coverage import CoverageTracker
from sync.errors import LoaderError
from sync.markers import MarkerIndex
from sync.notify import Notification, Notifier, log_notifier
from sync.stats import MapStats, compute_stats

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    """
    Outcome of one `EntitySync.run`: the fetched batch, or the error that stopped it.
    """

    viewport: Viewport
    force_reload: bool
    entities: list[Entity] = field(default_factory=list)
    cache_hit: bool = False
    stale: bool = False
    reset: bool = False
    added: int = 0
    updated: int = 0
    stats: MapStats | None = None
    error: LoaderError | None = None
    timings_ms: dict[str, float] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    def telemetry_stats(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "forceReload": self.force_reload,
            "cache": {"cacheHit": self.cache_hit, "key": self.viewport.key()},
            "stale": self.stale,
            "reset": self.reset,
            "fetched": len(self.entities),
            "added": self.added,
            "updated": self.updated,
            "timingsMs": dict(self.timings_ms),
        }
        if self.stats is not None:
            out["mapStats"] = self.stats.to_dict()
        if self.error is not None:
            out["error"] = f"{type(self.error).__name__}: {self.error.message}"
        return out


class EntitySync:
    """
    Fetches a viewport, merges the batch into the marker index by entity id and
    republishes stats over everything on the map.

    Not re-entrant: callers serialize passes through `LoadGate`.
    """

    def __init__(
        self,
        source: EntitySource,
        *,
        coverage: CoverageTracker,
        markers: MarkerIndex,
        filters: EntityFilters | None = None,
        notifier: Notifier | None = None,
        on_stats: Callable[[MapStats], None] | None = None,
    ):
        self.source = source
        self.coverage = coverage
        self.markers = markers
        self.filters = filters or EntityFilters()
        self.notifier = notifier or log_notifier
        self.on_stats = on_stats
        self.last_fetched: Viewport | None = None
        self.stats = MapStats()
        # Set when the filters change; the next successful pass replaces all markers.
        self._replace_on_next = False

    def set_filters(self, filters: EntityFilters) -> bool:
        """
        Swap the category toggles. Returns False when nothing changed.

        Coverage recorded under the old toggles no longer answers for the new ones,
        so it is dropped here rather than by whichever pass runs next.
        """
        if filters == self.filters:
            return False
        self.filters = filters
        self.coverage.clear()
        self._replace_on_next = True
        return True

    async def run(self, viewport: Viewport, force_reload: bool = False) -> SyncResult:
        t0 = time.perf_counter()
        viewport = viewport.normalized()

        if not force_reload and self.coverage.has_coverage(viewport):
            log.debug("coverage hit for %s; skipping fetch", viewport.key())
            return SyncResult(
                viewport=viewport,
                force_reload=False,
                cache_hit=True,
                stats=self.stats,
                timings_ms={"total": _ms_since(t0)},
            )

        disjoint = self.coverage.reset_if_disjoint(viewport, self.last_fetched)
        full_reset = force_reload or disjoint or self._replace_on_next

        filters = self.filters
        t1 = time.perf_counter()
        try:
            entities = await self.source.fetch_entities(viewport, filters)
        except LoaderError as e:
            t_fetch_ms = _ms_since(t1)
            self._report_failure(e, force_reload=force_reload)
            return SyncResult(
                viewport=viewport,
                force_reload=force_reload,
                error=e,
                stats=self.stats,
                timings_ms={"fetch": t_fetch_ms, "total": _ms_since(t0)},
            )
        t_fetch_ms = _ms_since(t1)

        if filters != self.filters:
            # Toggled while the request was out; the batch answers the old filters.
            log.debug("filters changed during fetch of %s; dropping batch", viewport.key())
            return SyncResult(
                viewport=viewport,
                force_reload=force_reload,
                entities=entities,
                stale=True,
                stats=self.stats,
                timings_ms={"fetch": t_fetch_ms, "total": _ms_since(t0)},
            )

        # The reset is applied together with the new batch so a failed pass keeps
        # the previous markers on screen.
        t2 = time.perf_counter()
        if full_reset:
            self.markers.clear()
            self.coverage.clear()
        added, updated = self.markers.upsert_many(entities)
        t_merge_ms = _ms_since(t2)

        self.coverage.mark_covered(viewport)
        self.last_fetched = viewport
        self._replace_on_next = False

        self.stats = compute_stats(self.markers.markers())
        if self.on_stats is not None:
            self.on_stats(self.stats)

        log.info(
            "synced %s: fetched=%d added=%d updated=%d total=%d%s",
            viewport.key(),
            len(entities),
            added,
            updated,
            self.stats.count,
            " (reset)" if full_reset else "",
        )
        return SyncResult(
            viewport=viewport,
            force_reload=force_reload,
            entities=entities,
            reset=full_reset,
            added=added,
            updated=updated,
            stats=self.stats,
            timings_ms={
                "fetch": t_fetch_ms,
                "merge": t_merge_ms,
                "total": _ms_since(t0),
            },
        )

    def reset(self) -> None:
        """Drop markers, coverage and the last-fetched reference."""
        self.markers.clear()
        self.coverage.clear()
        self.last_fetched = None
        self._replace_on_next = False
        self.stats = MapStats()
        if self.on_stats is not None:
            self.on_stats(self.stats)

    def _report_failure(self, e: LoaderError, *, force_reload: bool) -> None:
        if force_reload:
            # User asked for this pass; tell them.
            self.notifier(
                Notification(
                    level="error",
                    title="Could not load map data",
                    message=e.message,
                )
            )
            log.error("forced sync failed: %s", e.message)
            return
        log.warning("automatic sync failed: %s", e.message)


def _ms_since(t: float) -> float:
    return round((time.perf_counter() - t) * 1000.0, 2)
