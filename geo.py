"""Great-circle helpers for the map service.

Distances are in metres on a sphere with the WGS-84 equatorial radius.
Coordinates are plain decimal degrees; user and shop records are the
camelCase dicts stored in Redis (``latitude``/``longitude`` keys).
"""
import math
import random
from typing import Dict, Iterable, List, Optional, Tuple

from logging_config import get_logger

logger = get_logger(__name__)

EARTH_RADIUS_M = 6378137
WALKING_SPEED_M_PER_MIN = 80
DEFAULT_CITY = "torino"

ITALIAN_CITIES: Dict[str, Dict] = {
    "torino": {"latitude": 45.0703, "longitude": 7.6869, "name": "Torino"},
    "milano": {"latitude": 45.4642, "longitude": 9.1900, "name": "Milano"},
    "roma": {"latitude": 41.9028, "longitude": 12.4964, "name": "Roma"},
    "napoli": {"latitude": 40.8518, "longitude": 14.2681, "name": "Napoli"},
    "firenze": {"latitude": 43.7696, "longitude": 11.2558, "name": "Firenze"},
    "bologna": {"latitude": 44.4949, "longitude": 11.3426, "name": "Bologna"},
    "venezia": {"latitude": 45.4408, "longitude": 12.3155, "name": "Venezia"},
    "genova": {"latitude": 44.4056, "longitude": 8.9463, "name": "Genova"},
    "palermo": {"latitude": 38.1157, "longitude": 13.3615, "name": "Palermo"},
    "bari": {"latitude": 41.1177, "longitude": 16.8512, "name": "Bari"},
}

ITALY_BOUNDS = {"north": 47.1, "south": 36.0, "east": 18.8, "west": 6.6}

COMPASS_POINTS = ["N", "NE", "E", "SE", "S", "SW", "W", "NW"]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ============================================
# DISTANCE CALCULATIONS
# ============================================

def calculate_distance(lat1, lon1, lat2, lon2):
    """Haversine distance between two points, rounded to the metre.

    Returns ``math.inf`` when any coordinate is not numeric so that callers
    filtering by radius simply drop the point.
    """
    try:
        phi1, phi2 = math.radians(lat1), math.radians(lat2)
        d_phi = math.radians(lat2 - lat1)
        d_lambda = math.radians(lon2 - lon1)
        a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
        c = 2 * math.asin(min(1.0, math.sqrt(a)))
        return _round_half_up(EARTH_RADIUS_M * c)
    except (TypeError, ValueError) as e:
        logger.error(f"Error calculating distance: {e}")
        return math.inf


def calculate_bearing(lat1, lon1, lat2, lon2) -> float:
    """Initial great-circle bearing in degrees, in [0, 360)."""
    try:
        phi1, phi2 = math.radians(lat1), math.radians(lat2)
        d_lambda = math.radians(lon2 - lon1)
        y = math.sin(d_lambda) * math.cos(phi2)
        x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
        return (math.degrees(math.atan2(y, x)) + 360) % 360
    except (TypeError, ValueError) as e:
        logger.error(f"Error calculating bearing: {e}")
        return 0


def get_center(points: Iterable[Tuple[float, float]]) -> Optional[Tuple[float, float]]:
    """Geographic centre of (lat, lon) pairs via the cartesian mean."""
    points = list(points)
    if not points:
        return None
    x = y = z = 0.0
    for lat, lon in points:
        phi, lam = math.radians(lat), math.radians(lon)
        x += math.cos(phi) * math.cos(lam)
        y += math.cos(phi) * math.sin(lam)
        z += math.sin(phi)
    n = len(points)
    x, y, z = x / n, y / n, z / n
    lon = math.atan2(y, x)
    lat = math.atan2(z, math.sqrt(x * x + y * y))
    return math.degrees(lat), math.degrees(lon)


def compute_destination_point(lat, lon, distance, bearing) -> Tuple[float, float]:
    delta = distance / EARTH_RADIUS_M
    theta = math.radians(bearing)
    phi1, lam1 = math.radians(lat), math.radians(lon)
    phi2 = math.asin(math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta))
    lam2 = lam1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    lon2 = (math.degrees(lam2) + 540) % 360 - 180
    return math.degrees(phi2), lon2


# ============================================
# CITY DETECTION
# ============================================

def detect_city(latitude, longitude) -> str:
    """Key of the supported city closest to the coordinates."""
    closest_city = DEFAULT_CITY
    min_distance = math.inf
    for city_key, city in ITALIAN_CITIES.items():
        distance = calculate_distance(latitude, longitude, city["latitude"], city["longitude"])
        if distance < min_distance:
            min_distance = distance
            closest_city = city_key

    if min_distance > 50000 and min_distance != math.inf:
        logger.info(f"User location is {_round_half_up(min_distance / 1000)}km from nearest city ({closest_city})")
    return closest_city


def get_city_info(city_key: str) -> Optional[Dict]:
    if not city_key:
        return None
    return ITALIAN_CITIES.get(city_key.lower())


def get_all_cities() -> Dict[str, Dict]:
    return ITALIAN_CITIES


# ============================================
# GEOFENCING
# ============================================

def is_within_radius(lat, lon, center_lat, center_lon, radius) -> bool:
    return calculate_distance(lat, lon, center_lat, center_lon) <= radius


def is_within_city(latitude, longitude, city_key: str, city_radius: int = 20000) -> bool:
    city = get_city_info(city_key)
    if not city:
        return False
    return is_within_radius(latitude, longitude, city["latitude"], city["longitude"], city_radius)


# ============================================
# USER CLUSTERING
# ============================================

def cluster_users_by_proximity(users: List[Dict], cluster_radius: int = 500) -> List[Dict]:
    """Greedy single pass: each unclustered user seeds a cluster and pulls in
    every later unclustered user within ``cluster_radius`` of the seed."""
    clusters = []
    processed = set()

    for user in users:
        if user["userId"] in processed:
            continue
        members = [user]
        processed.add(user["userId"])

        for other in users:
            if other["userId"] in processed:
                continue
            distance = calculate_distance(user["latitude"], user["longitude"], other["latitude"], other["longitude"])
            if distance <= cluster_radius:
                members.append(other)
                processed.add(other["userId"])

        clusters.append({
            "id": f"cluster_{len(clusters) + 1}",
            "centerLat": sum(u["latitude"] for u in members) / len(members),
            "centerLon": sum(u["longitude"] for u in members) / len(members),
            "users": members,
            "count": len(members),
        })

    return clusters


# ============================================
# COFFEE SHOP RECOMMENDATIONS
# ============================================

def find_nearby_coffee_shops(latitude, longitude, coffee_shops: List[Dict], max_distance=2000, limit=10) -> List[Dict]:
    shops = []
    for shop in coffee_shops:
        distance = calculate_distance(latitude, longitude, shop.get("latitude"), shop.get("longitude"))
        if distance > max_distance:
            continue
        shops.append({
            **shop,
            "distance": distance,
            "walkingTimeMinutes": _round_half_up(distance / WALKING_SPEED_M_PER_MIN),
        })
    shops.sort(key=lambda s: s["distance"])
    return shops[:limit]


def find_midpoint_coffee_shops(lat1, lon1, lat2, lon2, coffee_shops: List[Dict]) -> List[Dict]:
    """Shops near the midpoint of two users, at most a third of their
    separation (capped at 1km) away from it."""
    midpoint = get_center([(lat1, lon1), (lat2, lon2)])
    if not midpoint:
        return []
    max_distance = min(calculate_distance(lat1, lon1, lat2, lon2) / 3, 1000)
    return find_nearby_coffee_shops(midpoint[0], midpoint[1], coffee_shops, max_distance, 5)


# ============================================
# VALIDATION
# ============================================

def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def is_valid_coordinate(latitude, longitude) -> bool:
    return (
        _is_number(latitude)
        and _is_number(longitude)
        and -90 <= latitude <= 90
        and -180 <= longitude <= 180
    )


def is_within_italy(latitude, longitude) -> bool:
    return (
        ITALY_BOUNDS["south"] <= latitude <= ITALY_BOUNDS["north"]
        and ITALY_BOUNDS["west"] <= longitude <= ITALY_BOUNDS["east"]
    )


# ============================================
# UTILITY METHODS
# ============================================

def format_distance(distance_meters) -> str:
    if distance_meters < 1000:
        return f"{_round_half_up(distance_meters)}m"
    return f"{distance_meters / 1000:.1f}km"


def get_compass_direction(bearing) -> str:
    return COMPASS_POINTS[_round_half_up(bearing / 45) % 8]


def generate_random_city_coordinates(city_key: str, radius_km: float = 5) -> Optional[Dict]:
    city = get_city_info(city_key)
    if not city:
        return None
    lat, lon = compute_destination_point(
        city["latitude"],
        city["longitude"],
        random.random() * radius_km * 1000,
        random.random() * 360,
    )
    return {"latitude": lat, "longitude": lon, "city": city_key.lower()}
