import pytest
from dropshot.security.geofence import Geofence, SetIntersection, great_circle_distance


def test_geofence_superset():
    outer = Geofence(36.1699, -115.1398, 1000.0)
    inner = Geofence(36.1699, -115.1398, 10.0)
    assert outer.intersection(inner) == SetIntersection.SUPERSET


def test_geofence_subset():
    inner = Geofence(36.1699, -115.1398, 10.0)
    outer = Geofence(36.1699, -115.1398, 1000.0)
    assert inner.intersection(outer) == SetIntersection.SUBSET


def test_geofence_disjoint():
    vegas = Geofence(36.1699, -115.1398, 10.0)
    san_francisco = Geofence(37.7749, -122.4194, 1000.0)
    assert vegas.intersection(san_francisco) == SetIntersection.DISJOINT


def test_geofence_identical_sets_both_bits():
    fence = Geofence(36.1699, -115.1398, 10.0)
    result = fence.intersection(Geofence(36.1699, -115.1398, 10.0))
    assert result == SetIntersection.SUBSET | SetIntersection.SUPERSET
    assert not result & SetIntersection.DISJOINT


def test_geofence_partial_overlap():
    a = Geofence(36.1699, -115.13983, 100.0)
    b = Geofence(36.1699, -115.1398, 100.0)
    assert a.intersection(b) == SetIntersection.NONE


def test_geofence_disjoint_only_when_far_apart():
    a = Geofence(0.0, 0.0, 1000.0)
    b = Geofence(0.0, 1.0, 1000.0)
    assert a.distance_to(b) > a.radius + b.radius
    assert a.intersection(b) == SetIntersection.DISJOINT


def test_great_circle_distance():
    # one degree of longitude on the equator
    assert great_circle_distance(0.0, 0.0, 0.0, 1.0) == pytest.approx(111195, rel=1e-3)
    assert great_circle_distance(10.0, 20.0, 10.0, 20.0) == 0.0
