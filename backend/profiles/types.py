from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from geo.clusters import ClusterOptions
from geo.regions import DEFAULT_REGION_ID, Region, default_regions
from entities.types import EntityFilters


class ProfileApi(BaseModel):
    baseUrl: str = "http://localhost:5000"
    entitiesPath: str = "/api/entities/map"
    ingestPath: str = "/api/ingest/viewport"
    limit: int = Field(default=1000, ge=1, le=10_000)
    timeoutS: float = Field(default=10.0, gt=0.0)


class ProfileFilters(BaseModel):
    showPublic: bool = True
    showPrivate: bool = True

    def to_filters(self) -> EntityFilters:
        return EntityFilters(show_public=self.showPublic, show_private=self.showPrivate)


class ProfileTiming(BaseModel):
    fetchDebounceS: float = Field(default=0.5, ge=0.0)
    backgroundDebounceS: float = Field(default=2.0, ge=0.0)
    ingestSettleS: float = Field(default=1.0, ge=0.0)

    @model_validator(mode="after")
    def _background_is_slower(self) -> "ProfileTiming":
        if self.backgroundDebounceS <= self.fetchDebounceS:
            raise ValueError("backgroundDebounceS must be longer than fetchDebounceS")
        return self


class ProfileClustering(BaseModel):
    maxClusterRadiusPx: int = Field(default=50, ge=1)
    chunkedLoading: bool = True
    chunkSize: int = Field(default=200, ge=1)
    disableClusteringAtZoom: float = Field(default=16.0, ge=0.0, le=24.0)

    def to_options(self) -> ClusterOptions:
        return ClusterOptions(
            max_cluster_radius_px=self.maxClusterRadiusPx,
            chunked_loading=self.chunkedLoading,
            chunk_size=self.chunkSize,
            disable_clustering_at_zoom=self.disableClusteringAtZoom,
        )


class ProfileIngestion(BaseModel):
    enabled: bool = True
    sources: list[str] = Field(
        default_factory=lambda: ["osm_overpass", "government_datasets", "verified_locations"]
    )
    regions: list[Region] = Field(default_factory=default_regions)
    defaultRegion: str = DEFAULT_REGION_ID
    maxRegionDistanceM: float = Field(default=150_000.0, gt=0.0)


class LoaderProfile(BaseModel):
    """
    One map call site (home page, admin dashboard) and the endpoints/tuning it uses.
    """

    id: str
    title: str
    api: ProfileApi = Field(default_factory=ProfileApi)
    filters: ProfileFilters = Field(default_factory=ProfileFilters)
    timing: ProfileTiming = Field(default_factory=ProfileTiming)
    clustering: ProfileClustering = Field(default_factory=ProfileClustering)
    ingestion: ProfileIngestion = Field(default_factory=ProfileIngestion)
