from __future__ import annotations

import logging
import os
import time
from functools import lru_cache

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, model_validator

from entities.types import EntityFilters
from geo.regions import default_regions, region_hint_for
from geo.viewport import Viewport
from profiles.registry import list_profiles
from store.entity_store import MAX_LIMIT, EntityStore
from store.sources import KNOWN_SOURCES, fetch_source
from telemetry.singleton import get_store

logging.basicConfig(
    level=(os.getenv("PINSYNC_LOG_LEVEL") or "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

app = FastAPI(title="pinsync reference backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def entity_store() -> EntityStore:
    return EntityStore()


class ApiBounds(BaseModel):
    south: float = Field(ge=-90.0, le=90.0)
    west: float = Field(ge=-180.0, le=180.0)
    north: float = Field(ge=-90.0, le=90.0)
    east: float = Field(ge=-180.0, le=180.0)

    def to_viewport(self) -> Viewport:
        return Viewport(
            south=self.south, west=self.west, north=self.north, east=self.east
        ).normalized()


class ApiIngestRequest(BaseModel):
    bounds: ApiBounds
    sources: list[str] = Field(default_factory=lambda: list(KNOWN_SOURCES))
    region: str | None = None

    @model_validator(mode="after")
    def _non_empty_sources(self) -> "ApiIngestRequest":
        if not self.sources:
            raise ValueError("sources must not be empty")
        return self


@app.get("/health")
def health():
    return {"status": "ok", "entities": len(entity_store())}


@app.get("/profiles")
def get_profiles():
    return [p.model_dump() for p in list_profiles()]


@app.get("/api/entities/map")
def get_map_entities(
    bounds: str = Query(..., description="south,west,north,east"),
    limit: int = Query(1000, ge=1),
    showPublic: bool = Query(True),
    showPrivate: bool = Query(True),
):
    try:
        viewport = Viewport.from_bounds_param(bounds)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    filters = EntityFilters(show_public=showPublic, show_private=showPrivate)
    limit_n = min(int(limit), MAX_LIMIT)
    if not filters.kinds():
        return {"success": True, "data": [], "message": "No entity kinds selected"}

    t0 = time.perf_counter()
    rows = entity_store().query(viewport, kinds=filters.kinds(), limit=limit_n)
    return {
        "success": True,
        "data": [e.to_wire() for e in rows],
        "metadata": {
            "total": len(rows),
            "limit": limit_n,
            "filtered": {"public": showPublic, "private": showPrivate},
            "queryMs": round((time.perf_counter() - t0) * 1000.0, 2),
        },
    }


@app.post("/api/ingest/viewport")
def ingest_viewport(body: ApiIngestRequest):
    viewport = body.bounds.to_viewport()
    region = body.region or region_hint_for(viewport, default_regions())

    per_source: dict[str, int] = {}
    added = 0
    store = entity_store()
    for source_id in body.sources:
        records = fetch_source(source_id, region=region, viewport=viewport)
        n = store.add_new(records)
        per_source[source_id] = n
        added += n

    log.info("ingest %s region=%s added=%d %s", viewport.key(), region, added, per_source)
    return {"success": True, "addedCount": added, "region": region, "sources": per_source}


@app.get("/api/telemetry/summary")
def telemetry_summary(profile: str | None = None, endpoint: str | None = None):
    store = get_store()
    if store is None:
        return {"enabled": False, "rows": []}
    store.flush(timeout_s=1.0)
    return {"enabled": True, "rows": store.summary(profile=profile, endpoint=endpoint)}
