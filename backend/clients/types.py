from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from entities.types import Entity, EntityFilters
from geo.viewport import Viewport


@dataclass(frozen=True)
class IngestionResult:
    added_count: int
    region: str | None = None


class EntitySource(Protocol):
    """
    Remote data API: entities inside a bounding box.

    - DataApiClient: HTTP implementation
    - tests: in-process fakes
    """

    async def fetch_entities(
        self, viewport: Viewport, filters: EntityFilters
    ) -> list[Entity]: ...


class IngestionTrigger(Protocol):
    """
    Remote trigger that asks the backend to pull more entities into a region.
    """

    async def trigger(
        self, viewport: Viewport, *, sources: list[str], region: str
    ) -> IngestionResult: ...
