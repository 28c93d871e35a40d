from __future__ import annotations

import pytest

from entities.decode import decode_entity, decode_entity_list
from entities.types import EntityKind
from sync.errors import NetworkError, ParseError


def test_decodes_canonical_record():
    e = decode_entity(
        {
            "id": "t1",
            "kind": "public",
            "name": "Station Rd",
            "coordinates": {"lat": 18.5, "lng": 73.85},
            "aggregateScore": 4.2,
            "ratingCount": 12,
            "tags": ["wheelchair", "unisex"],
        }
    )
    assert e is not None
    assert e.id == "t1"
    assert e.kind is EntityKind.public
    assert (e.lat, e.lng) == (18.5, 73.85)
    assert e.aggregate_score == 4.2
    assert e.rating_count == 12
    assert e.tags == frozenset({"wheelchair", "unisex"})


def test_decodes_legacy_field_names():
    e = decode_entity(
        {
            "_id": 42,
            "type": "category-b",
            "coordinates": {"latitude": 19.0, "longitude": 72.8},
            "averageRating": None,
            "totalReviews": None,
            "facilities": {"baby_change": True, "wheelchair": False},
        }
    )
    assert e is not None
    assert e.id == "42"
    assert e.kind is EntityKind.private
    assert e.aggregate_score is None
    assert e.rating_count == 0
    assert e.tags == frozenset({"baby_change"})


def test_record_without_coordinates_is_skipped():
    assert decode_entity({"id": "x"}) is None


def test_malformed_record_raises_parse_error():
    with pytest.raises(ParseError):
        decode_entity({"id": "x", "coordinates": {"lat": 200.0, "lng": 0.0}})
    with pytest.raises(ParseError):
        decode_entity(["not", "a", "dict"])
    with pytest.raises(ParseError):
        decode_entity({"id": "x", "kind": "restaurant", "coordinates": {"lat": 0, "lng": 0}})


def test_envelope_and_bare_list():
    rows = [
        {"id": "a", "coordinates": {"lat": 1.0, "lng": 2.0}},
        {"id": "b"},
    ]
    assert [e.id for e in decode_entity_list(rows)] == ["a"]
    assert [e.id for e in decode_entity_list({"success": True, "data": rows})] == ["a"]
    assert decode_entity_list({"success": True, "data": None}) == []


def test_envelope_failures():
    with pytest.raises(NetworkError):
        decode_entity_list({"success": False, "error": "db down"})
    with pytest.raises(ParseError):
        decode_entity_list({"success": True})
    with pytest.raises(ParseError):
        decode_entity_list({"success": True, "data": {"id": "a"}})
    with pytest.raises(ParseError):
        decode_entity_list("nope")
