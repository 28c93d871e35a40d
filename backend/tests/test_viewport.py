from __future__ import annotations

import pytest

from geo.viewport import Viewport, viewport_key


def test_key_rounds_each_bound_to_four_decimals():
    v = Viewport(south=18.400004, west=73.8, north=18.6, east=73.95)
    assert v.key() == "18.4000|73.8000|18.6000|73.9500"
    assert viewport_key(v) == v.key()


def test_key_is_shared_by_viewports_within_the_quantization():
    a = Viewport(south=18.40001, west=73.80001, north=18.60001, east=73.95001)
    b = Viewport(south=18.40002, west=73.80002, north=18.60002, east=73.95002)
    assert a != b
    assert a.key() == b.key()


def test_key_has_no_negative_zero():
    v = Viewport(south=-0.00001, west=-0.00002, north=1.0, east=1.0)
    assert v.key() == "0.0000|0.0000|1.0000|1.0000"


def test_swapped_corners_are_normalized():
    v = Viewport(south=18.6, west=73.95, north=18.4, east=73.8)
    assert v.normalized() == Viewport(south=18.4, west=73.8, north=18.6, east=73.95)
    assert v.key() == "18.4000|73.8000|18.6000|73.9500"


def test_intersects_overlap_and_disjoint():
    a = Viewport(south=18.4, west=73.8, north=18.6, east=73.95)
    panned = Viewport(south=18.5, west=73.9, north=18.7, east=74.05)
    far = Viewport(south=28.5, west=77.0, north=28.7, east=77.3)
    assert a.intersects(panned)
    assert panned.intersects(a)
    assert not a.intersects(far)


def test_shared_edge_counts_as_overlap():
    a = Viewport(south=0.0, west=0.0, north=1.0, east=1.0)
    b = Viewport(south=0.0, west=1.0, north=1.0, east=2.0)
    assert a.intersects(b)


def test_bounds_param_round_trip_and_errors():
    v = Viewport(south=18.4, west=73.8, north=18.6, east=73.95)
    assert v.to_bounds_param() == "18.4,73.8,18.6,73.95"
    assert Viewport.from_bounds_param(" 18.4, 73.8 ,18.6,73.95") == v

    with pytest.raises(ValueError):
        Viewport.from_bounds_param("18.4,73.8,18.6")
    with pytest.raises(ValueError):
        Viewport.from_bounds_param("a,b,c,d")


def test_centroid_and_contains_point():
    v = Viewport(south=18.4, west=73.8, north=18.6, east=74.0)
    assert v.centroid() == pytest.approx((18.5, 73.9))
    assert v.contains_point(18.5, 73.9)
    assert v.contains_point(18.4, 73.8)
    assert not v.contains_point(18.7, 73.9)
