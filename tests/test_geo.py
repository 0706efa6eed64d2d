"""
Tests for the great-circle helpers
"""
import math

import pytest

import geo

TORINO = (45.0703, 7.6869)
MILANO = (45.4642, 9.1900)


def reference_haversine(lat1, lon1, lat2, lon2):
    """Independent formulation using atan2"""
    r = 6378137
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dp = math.radians(lat2 - lat1)
    dl = math.radians(lon2 - lon1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return r * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@pytest.mark.parametrize("a,b", [
    (TORINO, MILANO),
    ((41.9028, 12.4964), (40.8518, 14.2681)),
    ((45.0704, 7.6862), (45.0734, 7.6831)),
    ((0.0, 0.0), (0.0, 0.0)),
])
def test_distance_matches_reference(a, b):
    expected = reference_haversine(*a, *b)
    assert abs(geo.calculate_distance(*a, *b) - expected) <= 0.5 + 1e-9


def test_distance_is_whole_metres_and_symmetric():
    d = geo.calculate_distance(*TORINO, *MILANO)
    assert isinstance(d, int)
    assert d == geo.calculate_distance(*MILANO, *TORINO)
    assert 125000 < d < 127000


def test_distance_with_bad_input_is_infinite():
    assert geo.calculate_distance("north", 7.0, 45.0, 7.0) == math.inf
    assert geo.calculate_distance(None, 7.0, 45.0, 7.0) == math.inf


def test_bearing():
    assert geo.calculate_bearing(0, 0, 1, 0) == pytest.approx(0)
    assert geo.calculate_bearing(0, 0, 0, 1) == pytest.approx(90)
    assert geo.calculate_bearing(0, 0, -1, 0) == pytest.approx(180)
    assert 0 <= geo.calculate_bearing(*MILANO, *TORINO) < 360
    assert geo.calculate_bearing("x", 0, 0, 0) == 0


def test_center_and_destination():
    assert geo.get_center([]) is None
    lat, lon = geo.get_center([(0, 0), (0, 10)])
    assert lat == pytest.approx(0)
    assert lon == pytest.approx(5)

    lat, lon = geo.compute_destination_point(*TORINO, 1000, 90)
    assert geo.calculate_distance(*TORINO, lat, lon) == 1000
    assert lat == pytest.approx(TORINO[0], abs=1e-3)


def test_detect_city():
    assert geo.detect_city(45.07, 7.68) == "torino"
    assert geo.detect_city(45.47, 9.18) == "milano"
    # nowhere near Italy still resolves to the nearest supported city
    assert geo.detect_city(51.5, -0.12) == "torino"


def test_city_lookup():
    assert geo.get_city_info("Roma")["name"] == "Roma"
    assert geo.get_city_info("atlantis") is None
    assert len(geo.get_all_cities()) == 10
    assert geo.is_within_city(45.08, 7.69, "torino")
    assert not geo.is_within_city(*MILANO, "torino")
    assert not geo.is_within_city(*TORINO, "atlantis")


def test_radius_is_inclusive():
    d = geo.calculate_distance(*TORINO, *MILANO)
    assert geo.is_within_radius(*TORINO, *MILANO, d)
    assert not geo.is_within_radius(*TORINO, *MILANO, d - 1)


def test_coordinate_validation():
    assert geo.is_valid_coordinate(45.0, 7.0)
    assert geo.is_valid_coordinate(-90, 180)
    assert not geo.is_valid_coordinate(90.1, 0)
    assert not geo.is_valid_coordinate(0, -180.5)
    assert not geo.is_valid_coordinate("45", 7)
    assert not geo.is_valid_coordinate(True, 7)
    assert not geo.is_valid_coordinate(float("nan"), 7)
    assert not geo.is_valid_coordinate(None, None)


def test_within_italy():
    assert geo.is_within_italy(*TORINO)
    assert not geo.is_within_italy(48.85, 2.35)


def test_clusters_are_greedy_in_input_order():
    users = [
        {"userId": "a", "latitude": 45.0700, "longitude": 7.6860},
        {"userId": "b", "latitude": 45.0710, "longitude": 7.6860},
        {"userId": "c", "latitude": 45.1000, "longitude": 7.6860},
        {"userId": "d", "latitude": 45.0705, "longitude": 7.6865},
    ]
    clusters = geo.cluster_users_by_proximity(users, 500)

    assert [c["id"] for c in clusters] == ["cluster_1", "cluster_2"]
    assert [u["userId"] for u in clusters[0]["users"]] == ["a", "b", "d"]
    assert clusters[0]["count"] == 3
    assert clusters[0]["centerLat"] == pytest.approx((45.0700 + 45.0710 + 45.0705) / 3)
    assert clusters[1]["count"] == 1
    assert geo.cluster_users_by_proximity([]) == []


def test_nearby_coffee_shops():
    shops = [
        {"id": "far", "latitude": 45.0900, "longitude": 7.6869},
        {"id": "near", "latitude": 45.0713, "longitude": 7.6869},
        {"id": "mid", "latitude": 45.0780, "longitude": 7.6869},
    ]
    result = geo.find_nearby_coffee_shops(*TORINO, shops, max_distance=2000)

    assert [s["id"] for s in result] == ["near", "mid"]
    assert result[0]["walkingTimeMinutes"] == round(result[0]["distance"] / 80)
    assert "distance" not in shops[0]
    assert len(geo.find_nearby_coffee_shops(*TORINO, shops, max_distance=5000, limit=1)) == 1


def test_midpoint_coffee_shops():
    a = (45.0600, 7.6869)
    b = (45.0800, 7.6869)
    shops = [
        {"id": "middle", "latitude": 45.0700, "longitude": 7.6869},
        {"id": "edge", "latitude": 45.0790, "longitude": 7.6869},
    ]
    result = geo.find_midpoint_coffee_shops(*a, *b, shops)
    assert [s["id"] for s in result] == ["middle"]


def test_formatting():
    assert geo.format_distance(500) == "500m"
    assert geo.format_distance(999.4) == "999m"
    assert geo.format_distance(1500) == "1.5km"
    assert geo.get_compass_direction(0) == "N"
    assert geo.get_compass_direction(90) == "E"
    assert geo.get_compass_direction(225) == "SW"
    assert geo.get_compass_direction(350) == "N"


def test_random_city_coordinates():
    assert geo.generate_random_city_coordinates("atlantis") is None
    point = geo.generate_random_city_coordinates("Torino", radius_km=2)
    assert point["city"] == "torino"
    assert geo.calculate_distance(*TORINO, point["latitude"], point["longitude"]) <= 2001
