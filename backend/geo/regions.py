from __future__ import annotations

from functools import lru_cache
from typing import Iterable

from pydantic import BaseModel, Field
from pyproj import Geod

from geo.viewport import Viewport


class Region(BaseModel):
    """
    A known metro area the ingestion backend has dedicated sources for.
    """

    id: str
    south: float = Field(ge=-90.0, le=90.0)
    west: float = Field(ge=-180.0, le=180.0)
    north: float = Field(ge=-90.0, le=90.0)
    east: float = Field(ge=-180.0, le=180.0)

    def contains(self, lat: float, lng: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lng <= self.east

    def center(self) -> tuple[float, float]:
        return (self.south + self.north) / 2.0, (self.west + self.east) / 2.0

    def area_deg2(self) -> float:
        return abs(self.north - self.south) * abs(self.east - self.west)


DEFAULT_REGION_ID = "mumbai"


def default_regions() -> list[Region]:
    return [
        Region(id="mumbai", south=18.8, west=72.7, north=19.3, east=73.0),
        Region(id="delhi", south=28.4, west=76.8, north=28.9, east=77.4),
        Region(id="bangalore", south=12.7, west=77.3, north=13.2, east=77.9),
        Region(id="chennai", south=12.9, west=80.1, north=13.3, east=80.4),
        Region(id="pune", south=18.3, west=73.7, north=18.7, east=74.0),
    ]


@lru_cache(maxsize=1)
def _wgs84() -> Geod:
    return Geod(ellps="WGS84")


def distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    _az12, _az21, dist = _wgs84().inv(lng1, lat1, lng2, lat2)
    return float(dist)


def region_hint_for(
    viewport: Viewport,
    regions: Iterable[Region],
    *,
    default: str = DEFAULT_REGION_ID,
    max_distance_m: float = 150_000.0,
) -> str:
    """
    Pick the region id that best describes the viewport centroid.

    A region whose box contains the centroid wins (smallest box first, so nested
    regions beat their parents). Otherwise the region with the nearest centre is
    used if it is within `max_distance_m`; anything farther falls back to `default`.
    """
    lat, lng = viewport.centroid()
    rs = list(regions)

    containing = [r for r in rs if r.contains(lat, lng)]
    if containing:
        containing.sort(key=lambda r: r.area_deg2())
        return containing[0].id

    best: tuple[float, str] | None = None
    for r in rs:
        clat, clng = r.center()
        d = distance_m(lat, lng, clat, clng)
        if best is None or d < best[0]:
            best = (d, r.id)

    if best is not None and best[0] <= max_distance_m:
        return best[1]
    return default
