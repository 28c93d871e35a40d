from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from entities.types import Entity, EntityKind
from geo.viewport import Viewport

log = logging.getLogger(__name__)

KNOWN_SOURCES: tuple[str, ...] = ("osm_overpass", "government_datasets", "verified_locations")

_PRIVATE_ACCESS = {"private", "customers", "permissive", "no"}

# OSM tag -> entity tag, for tags whose value is "yes".
_TAG_FLAGS: dict[str, str] = {
    "wheelchair": "wheelchair",
    "changing_table": "baby_change",
    "unisex": "unisex",
    "drinking_water": "drinking_water",
    "toilets:handwashing": "handwashing",
}


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def sources_root() -> Path:
    raw = (os.getenv("PINSYNC_SOURCES_PATH") or "").strip()
    return Path(raw) if raw else _repo_root() / "data" / "sources"


def source_path(source_id: str, region: str) -> Path:
    # Convention: data/sources/<source>/<region>.json (Overpass JSON)
    return sources_root() / source_id / f"{region}.json"


def load_overpass_entities(path: Path, *, source_id: str) -> list[Entity]:
    """
    Entities from an Overpass `out center;` dump. Elements without a position are dropped.
    """
    payload = json.loads(path.read_text(encoding="utf-8"))
    out: list[Entity] = []
    for el in payload.get("elements") or []:
        pos = _position(el)
        if pos is None:
            continue
        tags: dict[str, Any] = el.get("tags") or {}
        out.append(
            Entity(
                id=f"{source_id}:{el.get('type', 'node')}/{el.get('id')}",
                kind=_kind_for(tags),
                lat=pos[0],
                lng=pos[1],
                tags=frozenset(
                    flag for key, flag in _TAG_FLAGS.items() if str(tags.get(key)).lower() == "yes"
                ),
                name=tags.get("name") or tags.get("name:en"),
            )
        )
    return out


def _position(el: dict[str, Any]) -> tuple[float, float] | None:
    # Nodes carry lat/lon; ways and relations only a computed centre.
    for src in (el, el.get("center") or {}):
        if src.get("lat") is not None and src.get("lon") is not None:
            return float(src["lat"]), float(src["lon"])
    return None


def fetch_source(source_id: str, *, region: str, viewport: Viewport) -> list[Entity]:
    """
    Entities a source knows about for `region`, clipped to `viewport`.

    Unknown sources and regions without a seed file yield nothing.
    """
    if source_id not in KNOWN_SOURCES:
        log.info("ingestion source %s not implemented", source_id)
        return []
    path = source_path(source_id, region)
    if not path.exists():
        log.debug("no %s data for region %s", source_id, region)
        return []
    entities = load_overpass_entities(path, source_id=source_id)
    return [e for e in entities if viewport.contains_point(e.lat, e.lng)]


def _kind_for(tags: dict[str, Any]) -> EntityKind:
    access = str(tags.get("access") or "").lower()
    fee = str(tags.get("fee") or "").lower()
    if access in _PRIVATE_ACCESS or fee == "yes":
        return EntityKind.private
    return EntityKind.public
