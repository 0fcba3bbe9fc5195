import math

import pytest

from backend.config import Settings
from extraction.geo import (
    Candidate,
    Geofence,
    format_coordinates,
    haversine_nm,
    is_valid_coordinate,
    screen_candidates,
)


def test_geofence_edges_are_inclusive(geofence):
    assert geofence.contains(-12.0, 90.0)
    assert geofence.contains(25.0, 135.0)
    assert not geofence.contains(25.0001, 100.0)
    assert not geofence.contains(1.0, 89.9999)


def test_geofence_from_settings():
    s = Settings(geofence_name="Baltic", geofence_lat_min=53, geofence_lat_max=66,
                 geofence_lon_min=9, geofence_lon_max=31)
    fence = Geofence.from_settings(s)
    assert fence.name == "Baltic"
    assert fence.contains(59.3, 18.1)
    assert not fence.contains(1.29, 103.77)


def test_screen_candidates_splits_by_fence(geofence):
    verdict = screen_candidates(geofence, [
        Candidate(51.9, 4.46, "a"),
        Candidate(1.29, 103.77, "b"),
        Candidate(float("nan"), 100.0, "c"),
    ])
    assert [c.strategy for c in verdict.accepted] == ["b"]
    assert [c.strategy for c in verdict.rejected] == ["a", "c"]


def test_is_valid_coordinate():
    assert is_valid_coordinate(0, 0)
    assert not is_valid_coordinate(91, 0)
    assert not is_valid_coordinate(0, -181)
    assert not is_valid_coordinate(math.nan, 0)


def test_format_coordinates():
    assert format_coordinates(1.2966, 103.7764) == "1.296600°N, 103.776400°E"
    assert format_coordinates(-33.5, -70.25) == "33.500000°S, 70.250000°W"


def test_haversine_nm():
    assert haversine_nm(1.0, 103.0, 1.0, 103.0) == 0
    # one degree of latitude is ~60 nautical miles
    assert haversine_nm(0.0, 100.0, 1.0, 100.0) == pytest.approx(60.04, abs=0.01)
