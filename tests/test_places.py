"""
Tests for the Google Places client and its mock fallback
"""
from unittest import mock

import requests

from places import PlacesClient

NEARBY_RESPONSE = {
    "status": "OK",
    "results": [
        {
            "place_id": "abc",
            "name": "Caffè Test",
            "geometry": {"location": {"lat": 45.07, "lng": 7.68}},
            "vicinity": "Via Test 1",
            "opening_hours": {"open_now": True},
            "photos": [{"photo_reference": "ref1"}],
            "types": ["cafe"],
        }
    ],
}


def client_returning(payload):
    client = PlacesClient(api_key="key")
    response = mock.Mock()
    response.json.return_value = payload
    client.session = mock.Mock()
    client.session.get.return_value = response
    return client


def test_mock_mode_without_key():
    client = PlacesClient(api_key=None)
    assert client.mock_mode
    shops = client.get_coffee_shops(45.0703, 7.6869)
    assert {s["id"] for s in shops} >= {"mock_torino_1", "mock_torino_2"}
    assert client.get_config() == {"hasGooglePlacesKey": False, "mockMode": True}
    assert client.check_external_services() == {"googlePlaces": False}


def test_mock_shops_fall_back_to_torino_list():
    client = PlacesClient(api_key=None)
    # Roma has no built-in list and the Torino shops are far away
    assert client.get_coffee_shops(41.9028, 12.4964) == []


def test_results_are_normalised():
    client = client_returning(NEARBY_RESPONSE)
    shops = client.get_coffee_shops(45.07, 7.68, radius=1000)

    assert shops == [{
        "id": "abc",
        "name": "Caffè Test",
        "latitude": 45.07,
        "longitude": 7.68,
        "rating": 0,
        "priceLevel": 2,
        "address": "Via Test 1",
        "openNow": True,
        "photoUrl": "https://maps.googleapis.com/maps/api/place/photo?maxwidth=400&photoreference=ref1&key=key",
        "types": ["cafe"],
    }]
    params = client.session.get.call_args[1]["params"]
    assert params["type"] == "cafe"
    assert params["radius"] == 1000
    assert params["key"] == "key"


def test_zero_results_and_errors():
    assert client_returning({"status": "ZERO_RESULTS"}).get_coffee_shops(45.07, 7.68) == []
    # any other status falls back to the mock catalogue
    assert client_returning({"status": "REQUEST_DENIED"}).get_coffee_shops(45.0703, 7.6869)

    client = PlacesClient(api_key="key")
    client.session = mock.Mock()
    client.session.get.side_effect = requests.Timeout("slow")
    assert client.get_coffee_shops(45.0703, 7.6869)
    assert client.get_coffee_shop_details("abc") is None
    assert client.get_city_from_coordinates(45.07, 7.68) == "unknown"
    assert client.get_coordinates_from_city("torino") is None


def test_reverse_geocoding():
    client = client_returning({
        "status": "OK",
        "results": [{"address_components": [
            {"long_name": "Via Roma", "types": ["route"]},
            {"long_name": "Torino", "types": ["locality", "political"]},
        ]}],
    })
    assert client.get_city_from_coordinates(45.07, 7.68) == "torino"

    mock_client = PlacesClient(api_key=None)
    assert mock_client.get_city_from_coordinates(45.4642, 9.19) == "milano"
    assert mock_client.get_coordinates_from_city("Milano")["latitude"] == 45.4642


def test_forward_geocoding():
    client = client_returning({"status": "OK", "results": [{"geometry": {"location": {"lat": 1.5, "lng": 2.5}}}]})
    assert client.get_coordinates_from_city("somewhere") == {"latitude": 1.5, "longitude": 2.5, "name": "somewhere"}


def test_details():
    client = client_returning({"status": "OK", "result": {"name": "Bicerin"}})
    assert client.get_coffee_shop_details("abc") == {"name": "Bicerin"}
    assert client_returning({"status": "NOT_FOUND"}).get_coffee_shop_details("abc") is None
    assert PlacesClient(api_key=None).get_coffee_shop_details("mock_milano_1")["name"] == "Caffè Centrale Milano"
