from __future__ import annotations

import logging
from typing import Callable

from clients.data_api import DataApiClient
from clients.ingestion import IngestionClient
from clients.types import EntitySource, IngestionTrigger
from entities.types import EntityFilters
from geo.viewport import Viewport
from profiles.registry import get_profile
from profiles.types import LoaderProfile
from sync.background import BackgroundCoverageScheduler, IngestionAttempt
from sync.coverage import CoverageTracker
from sync.debounce import FetchDebouncer
from sync.entity_sync import EntitySync, SyncResult
from sync.gate import LoadGate
from sync.markers import InMemoryMarkerLayer, MarkerIndex, MarkerLayer
from sync.notify import Notifier
from sync.stats import MapStats
from telemetry.singleton import open_store, record_event

log = logging.getLogger(__name__)

StatsListener = Callable[[MapStats], None]


class MapSession:
    """
    Incremental loader for one map instance.

    Owns the whole pipeline for that map:
    move/zoom -> FetchDebouncer -> LoadGate -> EntitySync (coverage, markers, stats)
    and, on a longer debounce, BackgroundCoverageScheduler -> forced reload.

    All state lives on this instance; the home and admin maps are two sessions built
    from two profiles.
    """

    def __init__(
        self,
        profile: LoaderProfile,
        *,
        source: EntitySource,
        ingestion: IngestionTrigger | None = None,
        layer: MarkerLayer | None = None,
        notifier: Notifier | None = None,
    ):
        self.profile = profile
        self.source = source
        self.ingestion = ingestion
        self.layer = layer or InMemoryMarkerLayer(profile.clustering.to_options())

        self.gate = LoadGate()
        self.coverage = CoverageTracker()
        self.markers = MarkerIndex(self.layer)
        self._stats_listeners: list[StatsListener] = []
        self.sync = EntitySync(
            source,
            coverage=self.coverage,
            markers=self.markers,
            filters=profile.filters.to_filters(),
            notifier=notifier,
            on_stats=self._publish_stats,
        )
        self.debouncer = FetchDebouncer(
            self._on_settled, window_s=profile.timing.fetchDebounceS
        )

        self.background: BackgroundCoverageScheduler | None = None
        if ingestion is not None and profile.ingestion.enabled:
            self.background = BackgroundCoverageScheduler(
                ingestion,
                self._forced_reload,
                sources=profile.ingestion.sources,
                regions=profile.ingestion.regions,
                default_region=profile.ingestion.defaultRegion,
                max_region_distance_m=profile.ingestion.maxRegionDistanceM,
                window_s=profile.timing.backgroundDebounceS,
                settle_s=profile.timing.ingestSettleS,
                on_attempt=self._record_ingestion,
            )

        self.current_viewport: Viewport | None = None
        self._owned_clients: list[DataApiClient | IngestionClient] = []

    @classmethod
    def from_profile(
        cls,
        profile_id: str | None = None,
        *,
        layer: MarkerLayer | None = None,
        notifier: Notifier | None = None,
    ) -> "MapSession":
        profile = get_profile(profile_id)
        api = profile.api
        source = DataApiClient(
            api.baseUrl, path=api.entitiesPath, limit=api.limit, timeout_s=api.timeoutS
        )
        ingestion = IngestionClient(api.baseUrl, path=api.ingestPath)
        session = cls(
            profile, source=source, ingestion=ingestion, layer=layer, notifier=notifier
        )
        session._owned_clients = [source, ingestion]
        # Open DuckDB here, not on the event loop during the first sync.
        open_store()
        return session

    @property
    def stats(self) -> MapStats:
        return self.sync.stats

    @property
    def filters(self) -> EntityFilters:
        return self.sync.filters

    def subscribe_stats(self, listener: StatsListener) -> Callable[[], None]:
        self._stats_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._stats_listeners:
                self._stats_listeners.remove(listener)

        return unsubscribe

    def on_viewport_changed(self, viewport: Viewport) -> None:
        """
        Raw move/zoom event. Cheap and synchronous; must be called on the event loop.
        """
        viewport = viewport.normalized()
        self.current_viewport = viewport
        self.debouncer.on_viewport_changed(viewport)
        if self.background is not None:
            self.background.schedule(viewport)

    async def load(self, viewport: Viewport, force_reload: bool = False) -> SyncResult | None:
        """
        One EntitySync pass through the gate. Returns None when another pass is in flight.
        """
        async with self.gate.hold() as entered:
            if not entered:
                log.debug(
                    "load for %s skipped; a fetch is already in flight", viewport.key()
                )
                return None
            result = await self.sync.run(viewport, force_reload=force_reload)

        record_event(
            endpoint="sync",
            profile=self.profile.id,
            viewport=result.viewport.as_dict(),
            stats=result.telemetry_stats(),
        )
        return result

    async def reload(self) -> SyncResult | None:
        """Manual refresh of the current viewport."""
        if self.current_viewport is None:
            return None
        return await self.load(self.current_viewport, force_reload=True)

    async def set_filters(
        self, *, show_public: bool | None = None, show_private: bool | None = None
    ) -> SyncResult | None:
        """
        Change the category toggles; markers from the old filter set are replaced.

        If a pass is in flight the forced reload is skipped, but coverage is already
        dropped, so the next settled move refetches under the new toggles.
        """
        current = self.sync.filters
        changed = self.sync.set_filters(
            EntityFilters(
                show_public=current.show_public if show_public is None else show_public,
                show_private=current.show_private if show_private is None else show_private,
            )
        )
        if not changed:
            return None
        return await self.reload()

    async def wait_idle(self) -> None:
        """Wait until no timer is pending and no pass started by a timer is running."""
        await self.debouncer.wait_idle()
        if self.background is not None:
            await self.background.wait_idle()
            await self.debouncer.wait_idle()

    async def close(self) -> None:
        """Cancel timers and drop markers and coverage, then close owned HTTP clients."""
        await self.debouncer.close()
        if self.background is not None:
            await self.background.close()
        self.sync.reset()
        for c in self._owned_clients:
            await c.aclose()
        self._owned_clients = []

    async def _on_settled(self, viewport: Viewport) -> SyncResult | None:
        return await self.load(viewport, force_reload=False)

    async def _forced_reload(self, viewport: Viewport) -> SyncResult | None:
        return await self.load(viewport, force_reload=True)

    def _publish_stats(self, stats: MapStats) -> None:
        for listener in list(self._stats_listeners):
            listener(stats)

    def _record_ingestion(self, attempt: IngestionAttempt) -> None:
        stats: dict = {
            "region": attempt.region,
            "reloaded": attempt.reloaded,
            "timingsMs": {"total": attempt.total_ms},
        }
        if attempt.result is not None:
            stats["addedCount"] = attempt.result.added_count
        if attempt.error is not None:
            stats["error"] = attempt.error.message
        record_event(
            endpoint="ingest",
            profile=self.profile.id,
            viewport=attempt.viewport.as_dict(),
            stats=stats,
        )
