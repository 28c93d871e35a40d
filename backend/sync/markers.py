from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Protocol

from entities.types import Entity, EntityKind
from geo.clusters import ClusterMarker, ClusterOptions, cluster_markers

log = logging.getLogger(__name__)


@dataclass
class Marker:
    """
    Rendered-marker handle for one entity.

    The handle is kept for the entity's lifetime and mutated in place on refetch,
    so UI state such as an open popup survives updates.
    """

    entity_id: str
    kind: EntityKind
    lat: float
    lng: float
    score: float | None = None
    rating_count: int = 0
    tags: frozenset[str] = field(default_factory=frozenset)
    name: str | None = None
    popup_open: bool = False
    revision: int = 0

    @classmethod
    def for_entity(cls, entity: Entity) -> "Marker":
        m = cls(entity_id=entity.id, kind=entity.kind, lat=entity.lat, lng=entity.lng)
        m.apply(entity)
        m.revision = 0
        return m

    def apply(self, entity: Entity) -> None:
        self.kind = entity.kind
        self.lat = entity.lat
        self.lng = entity.lng
        self.score = entity.aggregate_score
        self.rating_count = entity.rating_count
        self.tags = entity.tags
        self.name = entity.name
        self.revision += 1

    def as_entity(self) -> Entity:
        return Entity(
            id=self.entity_id,
            kind=self.kind,
            lat=self.lat,
            lng=self.lng,
            aggregate_score=self.score,
            rating_count=self.rating_count,
            tags=self.tags,
            name=self.name,
        )


class MarkerLayer(Protocol):
    """
    The map/cluster primitive. Only add/update/remove-all/iterate are relied upon.
    """

    def add_markers(self, markers: list[Marker]) -> None: ...

    def update_marker(self, marker: Marker) -> None: ...

    def remove_all_markers(self) -> None: ...

    def iter_markers(self) -> Iterable[Marker]: ...


class InMemoryMarkerLayer(MarkerLayer):
    """
    Headless marker layer with markercluster-like behaviour.

    Used by the reference backend and tests; a browser front end would forward the
    same calls to Leaflet.
    """

    def __init__(self, options: ClusterOptions | None = None):
        self.options = options or ClusterOptions()
        self._markers: list[Marker] = []
        self.chunks_added = 0
        self.updates = 0

    def add_markers(self, markers: list[Marker]) -> None:
        if not markers:
            return
        if self.options.chunked_loading and len(markers) > self.options.chunk_size:
            size = max(1, self.options.chunk_size)
            for i in range(0, len(markers), size):
                self._markers.extend(markers[i : i + size])
                self.chunks_added += 1
            log.debug("added %d markers in %d chunks", len(markers), -(-len(markers) // size))
            return
        self._markers.extend(markers)
        self.chunks_added += 1

    def update_marker(self, marker: Marker) -> None:
        # Handles are shared, the object is already current.
        self.updates += 1

    def remove_all_markers(self) -> None:
        self._markers.clear()

    def iter_markers(self) -> Iterator[Marker]:
        return iter(list(self._markers))

    def __len__(self) -> int:
        return len(self._markers)

    def clusters(self, zoom: float) -> list[ClusterMarker]:
        return cluster_markers(self._markers, zoom=zoom, options=self.options)


class MarkerIndex:
    """
    Entity id -> marker handle. Never holds two markers for one id.
    """

    def __init__(self, layer: MarkerLayer):
        self.layer = layer
        self._by_id: dict[str, Marker] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._by_id

    def get(self, entity_id: str) -> Marker | None:
        return self._by_id.get(entity_id)

    def upsert_many(self, entities: Iterable[Entity]) -> tuple[int, int]:
        """
        Insert new ids, update known ones in place. Returns (added, updated).
        """
        new_markers: list[Marker] = []
        updated = 0
        for e in entities:
            existing = self._by_id.get(e.id)
            if existing is None:
                m = Marker.for_entity(e)
                self._by_id[e.id] = m
                new_markers.append(m)
                continue
            existing.apply(e)
            self.layer.update_marker(existing)
            updated += 1

        self.layer.add_markers(new_markers)
        return len(new_markers), updated

    def clear(self) -> None:
        self._by_id.clear()
        self.layer.remove_all_markers()

    def markers(self) -> list[Marker]:
        return list(self._by_id.values())

    def entities(self) -> list[Entity]:
        return [m.as_entity() for m in self._by_id.values()]
