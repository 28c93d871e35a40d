from __future__ import annotations

import logging
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from entities.types import Entity, EntityKind
from sync.errors import NetworkError, ParseError

log = logging.getLogger(__name__)

_KIND_ALIASES: dict[str, EntityKind] = {
    "public": EntityKind.public,
    "category-a": EntityKind.public,
    "a": EntityKind.public,
    "private": EntityKind.private,
    "category-b": EntityKind.private,
    "b": EntityKind.private,
}


class WireCoordinates(BaseModel):
    model_config = ConfigDict(extra="ignore")

    lat: float = Field(validation_alias=AliasChoices("lat", "latitude"), ge=-90.0, le=90.0)
    lng: float = Field(
        validation_alias=AliasChoices("lng", "lon", "longitude"), ge=-180.0, le=180.0
    )


class WireEntity(BaseModel):
    """
    One entity as the data API sends it.

    Accepts both the canonical field names and the older backend names
    (`_id`, `type`, `averageRating`, `totalReviews`, `facilities`).
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    kind: EntityKind = Field(
        default=EntityKind.public, validation_alias=AliasChoices("kind", "type")
    )
    name: str | None = None
    coordinates: WireCoordinates | None = None
    aggregate_score: float | None = Field(
        default=None, validation_alias=AliasChoices("aggregateScore", "averageRating")
    )
    rating_count: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("ratingCount", "totalReviews")
    )
    tags: frozenset[str] = Field(
        default_factory=frozenset, validation_alias=AliasChoices("tags", "facilities")
    )

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("kind", mode="before")
    @classmethod
    def _kind_alias(cls, v: Any) -> Any:
        if v is None:
            return EntityKind.public
        if isinstance(v, str):
            kind = _KIND_ALIASES.get(v.strip().lower())
            if kind is not None:
                return kind
        return v

    @field_validator("rating_count", mode="before")
    @classmethod
    def _none_count(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> Any:
        if v is None:
            return frozenset()
        # facilities as {"wheelchair": true, "baby_change": false}
        if isinstance(v, dict):
            return frozenset(str(k) for k, on in v.items() if on)
        return v


def decode_entity(raw: Any) -> Entity | None:
    """
    Decode one raw record. Returns None for records without coordinates.
    """
    if not isinstance(raw, dict):
        raise ParseError(f"Entity must be an object, got {type(raw).__name__}")
    try:
        w = WireEntity.model_validate(raw)
    except ValidationError as e:
        raise ParseError(f"Invalid entity: {e.errors()[0].get('msg', e)}") from e

    if w.coordinates is None:
        log.debug("skipping entity %s without coordinates", w.id)
        return None

    return Entity(
        id=w.id,
        kind=w.kind,
        lat=w.coordinates.lat,
        lng=w.coordinates.lng,
        aggregate_score=w.aggregate_score,
        rating_count=w.rating_count,
        tags=w.tags,
        name=w.name,
    )


def decode_entity_list(payload: Any) -> list[Entity]:
    """
    Decode a data API response: either a bare list or a `{success, data}` envelope.
    """
    rows = payload
    if isinstance(payload, dict):
        if payload.get("success") is False:
            reason = payload.get("error") or payload.get("message") or "unknown error"
            raise NetworkError(f"Data API reported failure: {reason}")
        if "data" not in payload:
            raise ParseError("Response envelope is missing `data`")
        rows = payload.get("data")

    if rows is None:
        return []
    if not isinstance(rows, list):
        raise ParseError(f"Expected a list of entities, got {type(rows).__name__}")

    out: list[Entity] = []
    for raw in rows:
        e = decode_entity(raw)
        if e is not None:
            out.append(e)
    return out
