from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from typing import Iterable

from entities.types import Entity, EntityKind
from geo.regions import distance_m
from geo.viewport import Viewport

MAX_LIMIT = 10_000
DEDUP_RADIUS_M = 15.0


@dataclass
class EntityStore:
    """
    In-memory entity table for the reference backend.

    Queries are a linear scan over every entity.
    """

    _by_id: dict[str, Entity] = field(default_factory=dict)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def __len__(self) -> int:
        return len(self._by_id)

    def query(
        self, viewport: Viewport, *, kinds: set[EntityKind], limit: int = 1000
    ) -> list[Entity]:
        if not kinds:
            return []
        with self._lock:
            rows = [
                e
                for e in self._by_id.values()
                if e.kind in kinds and viewport.contains_point(e.lat, e.lng)
            ]
        # Best rated first, then most reviewed.
        rows.sort(key=lambda e: (-(e.aggregate_score or 0.0), -e.rating_count, e.id))
        return rows[: max(0, min(int(limit), MAX_LIMIT))]

    def add_new(
        self, entities: Iterable[Entity], *, dedup_radius_m: float = DEDUP_RADIUS_M
    ) -> int:
        """
        Insert entities that are not already known.

        A record is a duplicate when its id exists or another entity sits within
        `dedup_radius_m` (different sources often describe the same facility).
        Returns how many were added.
        """
        added = 0
        with self._lock:
            for e in entities:
                if e.id in self._by_id or self._has_neighbour(e, dedup_radius_m):
                    continue
                self._by_id[e.id] = e
                added += 1
        return added

    def clear(self) -> None:
        with self._lock:
            self._by_id.clear()

    def _has_neighbour(self, e: Entity, radius_m: float) -> bool:
        if radius_m <= 0:
            return False
        # Degree prefilter before the geodesic distance; longitude degrees shrink with cos(lat).
        pad_lat = radius_m / 110_000.0
        pad_lng = pad_lat / max(math.cos(math.radians(e.lat)), 0.01)
        for other in self._by_id.values():
            if abs(other.lat - e.lat) > pad_lat or abs(other.lng - e.lng) > pad_lng:
                continue
            if distance_m(e.lat, e.lng, other.lat, other.lng) <= radius_m:
                return True
        return False
