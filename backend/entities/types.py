from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EntityKind(str, Enum):
    # category-A
    public = "public"
    # category-B
    private = "private"


@dataclass
class Entity:
    """
    A point of interest shown on the map.

    `id` is the identity; every other field may change between fetches and is
    updated in place on the existing marker.
    """

    id: str
    kind: EntityKind
    lat: float
    lng: float
    aggregate_score: float | None = None
    rating_count: int = 0
    tags: frozenset[str] = field(default_factory=frozenset)
    name: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "coordinates": {"lat": self.lat, "lng": self.lng},
            "aggregateScore": self.aggregate_score,
            "ratingCount": self.rating_count,
            "tags": sorted(self.tags),
        }


@dataclass(frozen=True)
class EntityFilters:
    """The two category toggles sent with every map request."""

    show_public: bool = True
    show_private: bool = True

    def kinds(self) -> set[EntityKind]:
        out: set[EntityKind] = set()
        if self.show_public:
            out.add(EntityKind.public)
        if self.show_private:
            out.add(EntityKind.private)
        return out
