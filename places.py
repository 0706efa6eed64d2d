"""Coffee shop search and geocoding on top of the Google Maps web services.

Without ``GOOGLE_PLACES_API_KEY`` every lookup answers from a small built-in
catalogue so the map stays usable in development.
"""
from typing import Dict, List, Optional

import requests

import geo
from constants import GOOGLE_PLACES_API_KEY, HTTP_TIMEOUT_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)

NEARBY_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"
DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
PHOTO_URL = "https://maps.googleapis.com/maps/api/place/photo"

DETAILS_FIELDS = "name,rating,formatted_phone_number,opening_hours,website,reviews"
MOCK_RADIUS_M = 3000

MOCK_COFFEE_SHOPS: Dict[str, List[Dict]] = {
    "torino": [
        {"id": "mock_torino_1", "name": "Caffè Centrale", "latitude": 45.0704, "longitude": 7.6862,
         "rating": 4.5, "priceLevel": 2, "address": "Via Roma 1, Torino", "openNow": True,
         "photoUrl": None, "types": ["cafe", "restaurant"]},
        {"id": "mock_torino_2", "name": "La Tazza d'Oro", "latitude": 45.0734, "longitude": 7.6831,
         "rating": 4.3, "priceLevel": 1, "address": "Via Garibaldi 15, Torino", "openNow": True,
         "photoUrl": None, "types": ["cafe"]},
        {"id": "mock_torino_3", "name": "Bicerin", "latitude": 45.0705, "longitude": 7.6888,
         "rating": 4.7, "priceLevel": 3, "address": "Piazza della Consolata 5, Torino", "openNow": False,
         "photoUrl": None, "types": ["cafe", "historic"]},
        {"id": "mock_torino_4", "name": "Torrefazione Giamaica", "latitude": 45.0728, "longitude": 7.6854,
         "rating": 4.7, "priceLevel": 2, "address": "Via Garibaldi 45, Torino", "openNow": True,
         "photoUrl": None, "types": ["cafe"]},
        {"id": "mock_torino_5", "name": "Lavazza Flagship Store", "latitude": 45.0685, "longitude": 7.6917,
         "rating": 4.3, "priceLevel": 3, "address": "Via Po 8, Torino", "openNow": False,
         "photoUrl": None, "types": ["cafe", "store"]},
    ],
    "milano": [
        {"id": "mock_milano_1", "name": "Caffè Centrale Milano", "latitude": 45.4642, "longitude": 9.1900,
         "rating": 4.4, "priceLevel": 3, "address": "Corso Buenos Aires 12, Milano", "openNow": True,
         "photoUrl": None, "types": ["cafe", "restaurant"]},
    ],
}


class PlacesClient:
    def __init__(self, api_key: Optional[str] = GOOGLE_PLACES_API_KEY, timeout: float = HTTP_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()
        if not api_key:
            logger.warning("Google Places API key not configured, coffee shop lookups use mock data")

    @property
    def mock_mode(self) -> bool:
        return not self.api_key

    def _get(self, url: str, params: dict) -> dict:
        response = self.session.get(url, params={**params, "key": self.api_key}, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    # ============================================
    # COFFEE SHOPS
    # ============================================

    def get_coffee_shops(self, latitude: float, longitude: float, radius: int = 2000) -> List[Dict]:
        if self.mock_mode:
            return self.get_mock_coffee_shops(latitude, longitude)

        try:
            data = self._get(NEARBY_SEARCH_URL, {
                "location": f"{latitude},{longitude}",
                "radius": radius,
                "type": "cafe",
            })
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching coffee shops from Google Places: {e}", exc_info=True)
            return self.get_mock_coffee_shops(latitude, longitude)

        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            logger.error(f"Google Places API error: {status}")
            return self.get_mock_coffee_shops(latitude, longitude)
        return self.format_places_results(data.get("results", []))

    def format_places_results(self, places: List[Dict]) -> List[Dict]:
        shops = []
        for place in places:
            location = place.get("geometry", {}).get("location", {})
            photos = place.get("photos") or []
            photo_url = None
            if photos:
                photo_url = (
                    f"{PHOTO_URL}?maxwidth=400&photoreference={photos[0].get('photo_reference')}&key={self.api_key}"
                )
            shops.append({
                "id": place.get("place_id"),
                "name": place.get("name"),
                "latitude": location.get("lat"),
                "longitude": location.get("lng"),
                "rating": place.get("rating") or 0,
                "priceLevel": place.get("price_level") or 2,
                "address": place.get("vicinity"),
                "openNow": (place.get("opening_hours") or {}).get("open_now"),
                "photoUrl": photo_url,
                "types": place.get("types") or [],
            })
        return shops

    def get_coffee_shop_details(self, place_id: str) -> Optional[Dict]:
        if self.mock_mode:
            for shops in MOCK_COFFEE_SHOPS.values():
                for shop in shops:
                    if shop["id"] == place_id:
                        return dict(shop)
            return None

        try:
            data = self._get(DETAILS_URL, {"place_id": place_id, "fields": DETAILS_FIELDS})
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching coffee shop details for {place_id}: {e}", exc_info=True)
            return None

        if data.get("status") == "OK":
            return data.get("result")
        logger.warning(f"Place details for {place_id} returned status {data.get('status')}")
        return None

    def get_mock_coffee_shops(self, latitude: float, longitude: float) -> List[Dict]:
        city = geo.detect_city(latitude, longitude)
        shops = MOCK_COFFEE_SHOPS.get(city, MOCK_COFFEE_SHOPS["torino"])
        return [
            dict(shop) for shop in shops
            if geo.calculate_distance(latitude, longitude, shop["latitude"], shop["longitude"]) <= MOCK_RADIUS_M
        ]

    # ============================================
    # GEOCODING
    # ============================================

    def get_city_from_coordinates(self, latitude: float, longitude: float) -> str:
        if self.mock_mode:
            return geo.detect_city(latitude, longitude)

        try:
            data = self._get(GEOCODE_URL, {"latlng": f"{latitude},{longitude}"})
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error getting city from coordinates: {e}", exc_info=True)
            return "unknown"

        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            return "unknown"
        for component in results[0].get("address_components", []):
            types = component.get("types", [])
            if "locality" in types or "administrative_area_level_2" in types:
                return component["long_name"].lower()
        return "unknown"

    def get_coordinates_from_city(self, city_name: str) -> Optional[Dict]:
        if self.mock_mode:
            return geo.get_city_info(city_name)

        try:
            data = self._get(GEOCODE_URL, {"address": city_name})
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error getting coordinates for city {city_name}: {e}", exc_info=True)
            return None

        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            return None
        location = results[0]["geometry"]["location"]
        return {"latitude": location["lat"], "longitude": location["lng"], "name": city_name}

    # ============================================
    # SERVICE STATUS
    # ============================================

    def check_external_services(self) -> Dict[str, bool]:
        status = {"googlePlaces": False}
        if self.mock_mode:
            return status
        try:
            data = self._get(NEARBY_SEARCH_URL, {"location": "45.0703,7.6869", "radius": 100, "type": "cafe"})
            status["googlePlaces"] = data.get("status") in ("OK", "ZERO_RESULTS")
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Google Places API check failed: {e}")
        return status

    def get_config(self) -> Dict:
        return {"hasGooglePlacesKey": bool(self.api_key), "mockMode": self.mock_mode}


places_client = PlacesClient()
