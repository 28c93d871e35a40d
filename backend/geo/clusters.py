from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Protocol

from pyproj import Transformer

# Web Mercator metres per pixel at zoom 0 on the equator (256px tiles).
_M_PER_PX_Z0 = 156_543.03392


class _HasPosition(Protocol):
    entity_id: str
    lat: float
    lng: float


@dataclass(frozen=True)
class ClusterOptions:
    """
    Clustering behaviour of the marker layer.

    Defaults mirror the Leaflet.markercluster setup the map uses.
    """

    max_cluster_radius_px: int = 50
    chunked_loading: bool = True
    chunk_size: int = 200
    disable_clustering_at_zoom: float = 16.0


@dataclass(frozen=True)
class ClusterMarker:
    lat: float
    lng: float
    count: int
    entity_ids: tuple[str, ...]


@lru_cache(maxsize=1)
def transformer_4326_to_3857() -> Transformer:
    return Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)


@lru_cache(maxsize=1)
def transformer_3857_to_4326() -> Transformer:
    return Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True)


def grid_size_m(zoom: float, radius_px: int) -> float:
    # Pixel radius -> projected metres at this zoom.
    return float(radius_px) * _M_PER_PX_Z0 / (2.0 ** float(zoom))


def cluster_markers(
    markers: Iterable[_HasPosition], *, zoom: float, options: ClusterOptions
) -> list[ClusterMarker]:
    """
    Group markers on a Web Mercator (EPSG:3857) grid sized from the cluster radius.

    Past `disable_clustering_at_zoom` each marker is returned as its own cluster.
    """
    items = list(markers)
    if float(zoom) >= options.disable_clustering_at_zoom:
        return [
            ClusterMarker(lat=m.lat, lng=m.lng, count=1, entity_ids=(m.entity_id,))
            for m in items
        ]

    t_fwd = transformer_4326_to_3857()
    t_inv = transformer_3857_to_4326()
    grid = grid_size_m(zoom, options.max_cluster_radius_px)

    # (cell_x, cell_y) -> (count, sum_x, sum_y, ids)
    buckets: dict[tuple[int, int], tuple[int, float, float, list[str]]] = {}
    for m in items:
        x, y = t_fwd.transform(m.lng, m.lat)
        cell = (int(x // grid), int(y // grid))
        count, sx, sy, ids = buckets.get(cell, (0, 0.0, 0.0, []))
        ids.append(m.entity_id)
        buckets[cell] = (count + 1, sx + x, sy + y, ids)

    out: list[ClusterMarker] = []
    for count, sx, sy, ids in buckets.values():
        lng, lat = t_inv.transform(sx / count, sy / count)
        out.append(
            ClusterMarker(
                lat=float(lat), lng=float(lng), count=int(count), entity_ids=tuple(ids)
            )
        )

    # Larger clusters first.
    out.sort(key=lambda c: c.count, reverse=True)
    return out
