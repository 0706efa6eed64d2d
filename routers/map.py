from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
import redis

import geo
import sockets
from backend import redis_backend, utc_now
from events import emit_to_city, location_event
from invites import InviteError, respond_to_invite, send_invite
from places import places_client
from profiles import get_profile, placeholder_profile
from schemas.map import AvailabilityRequest, InviteReplyRequest, LocationUpdateRequest, MapInviteRequest
from security import get_current_user
from logging_config import get_logger

logger = get_logger(__name__)

map_router = APIRouter(prefix="/api/map", tags=["map"])

DEFAULT_INVITE_MESSAGE = "Would you like to grab a coffee?"


def _invite_http_error(e: InviteError) -> HTTPException:
    logger.warning(f"Invite request rejected: {e}")
    return HTTPException(status_code=e.status_code, detail=str(e))


# ============================================
# LOCATION
# ============================================

@map_router.put("/location")
def update_location(body: LocationUpdateRequest, current_user: dict = Depends(get_current_user)):
    user_id = current_user["id"]
    if not geo.is_valid_coordinate(body.latitude, body.longitude):
        logger.warning(f"Invalid coordinates from user {user_id}: {body.latitude},{body.longitude}")
        raise HTTPException(status_code=400, detail="Invalid coordinates provided")

    city = body.city or places_client.get_city_from_coordinates(body.latitude, body.longitude)
    city = city.lower()

    try:
        location = redis_backend.set_user_location(user_id, {
            "latitude": body.latitude,
            "longitude": body.longitude,
            "city": city,
            "isAvailable": body.is_available,
        })
        redis_backend.add_user_to_city(user_id, city)
        emit_to_city(city, "user:location:new", location_event(location), exclude_user=user_id)
    except redis.RedisError as e:
        logger.error(f"Error updating location for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update location")

    logger.info(f"Location updated for user {user_id} in {city}")
    return {
        "success": True,
        "message": "Location updated successfully",
        "location": {
            "latitude": body.latitude,
            "longitude": body.longitude,
            "city": city,
            "isAvailable": body.is_available,
        },
    }


@map_router.get("/location")
async def get_location(current_user: dict = Depends(get_current_user)):
    location = redis_backend.get_user_location(current_user["id"])
    if not location:
        raise HTTPException(status_code=404, detail="Location not found")
    return {"success": True, "location": location}


@map_router.delete("/location")
async def clear_location(current_user: dict = Depends(get_current_user)):
    user_id = current_user["id"]
    location = redis_backend.get_user_location(user_id)
    if location and location.get("city"):
        redis_backend.remove_user_from_city(user_id, location["city"])
    redis_backend.remove_user_location(user_id)
    logger.info(f"Location cleared for user {user_id}")
    return {"success": True, "message": "Location cleared successfully"}


@map_router.patch("/availability")
async def toggle_availability(body: AvailabilityRequest, current_user: dict = Depends(get_current_user)):
    user_id = current_user["id"]
    location = redis_backend.get_user_location(user_id)
    if not location:
        logger.warning(f"Availability toggle without location for user {user_id}")
        raise HTTPException(status_code=404, detail="No location found. Please update your location first.")

    location["isAvailable"] = body.is_available
    location["timestamp"] = utc_now()
    redis_backend.set_user_location(user_id, location)
    redis_backend.set_user_availability(user_id, body.is_available)
    if location.get("city"):
        emit_to_city(location["city"], "user:availability:changed", {
            "userId": user_id,
            "isAvailable": body.is_available,
            "timestamp": location["timestamp"],
        }, exclude_user=user_id)

    logger.info(f"Availability toggled for user {user_id}: {body.is_available}")
    return {"success": True, "message": "Availability updated successfully", "isAvailable": body.is_available}


# ============================================
# USERS
# ============================================

@map_router.get("/users/nearby")
async def nearby_users(
    city: str = Query(min_length=2, max_length=50),
    radius: int = Query(default=5000, ge=100, le=10000),
    available_only: bool = Query(default=True, alias="availableOnly"),
    include_profiles: bool = Query(default=False, alias="includeProfiles"),
    current_user: dict = Depends(get_current_user),
):
    user_id = current_user["id"]
    users = [u for u in redis_backend.get_users_in_city(city) if u.get("userId") != user_id]
    if available_only:
        users = [u for u in users if u.get("isAvailable")]

    own = redis_backend.get_user_location(user_id)
    if own and geo.is_valid_coordinate(own.get("latitude"), own.get("longitude")):
        annotated = []
        for user in users:
            distance = geo.calculate_distance(own["latitude"], own["longitude"], user["latitude"], user["longitude"])
            if distance <= radius:
                annotated.append({**user, "distance": distance})
        users = sorted(annotated, key=lambda u: u["distance"])

    if include_profiles:
        for user in users:
            profile = get_profile(user["userId"])
            if profile:
                user["profile"] = profile

    return {
        "success": True,
        "users": users,
        "count": len(users),
        "filters": {
            "city": city,
            "radius": radius,
            "availableOnly": available_only,
            "includeProfiles": include_profiles,
        },
    }


@map_router.get("/users/clusters")
async def user_clusters(
    city: str = Query(min_length=2, max_length=50),
    cluster_radius: int = Query(default=500, ge=50, le=5000, alias="clusterRadius"),
    current_user: dict = Depends(get_current_user),
):
    clusters = geo.cluster_users_by_proximity(redis_backend.get_users_in_city(city), cluster_radius)
    return {"success": True, "city": city.lower(), "clusters": clusters, "count": len(clusters)}


@map_router.get("/users/{user_id}")
async def get_map_user(user_id: str, current_user: dict = Depends(get_current_user)):
    location = redis_backend.get_user_location(user_id)
    if not location:
        logger.warning(f"No location data available for user {user_id}")
        raise HTTPException(status_code=404, detail="No location data available for this user")

    profile = get_profile(user_id) or {**placeholder_profile(user_id), "bio": "Coffee enthusiast"}
    return {"success": True, "location": location, "profile": profile}


# ============================================
# CITIES
# ============================================

@map_router.get("/cities")
async def list_cities(current_user: dict = Depends(get_current_user)):
    cities = [{"key": key, **info} for key, info in geo.get_all_cities().items()]
    return {"success": True, "cities": cities, "count": len(cities)}


@map_router.get("/cities/detect")
async def detect_city(
    latitude: float = Query(),
    longitude: float = Query(),
    current_user: dict = Depends(get_current_user),
):
    if not geo.is_valid_coordinate(latitude, longitude):
        logger.warning(f"City detection with invalid coordinates {latitude},{longitude}")
        raise HTTPException(status_code=400, detail="Invalid coordinates provided")
    city = geo.detect_city(latitude, longitude)
    return {
        "success": True,
        "city": city,
        "cityInfo": geo.get_city_info(city),
        "withinItaly": geo.is_within_italy(latitude, longitude),
    }


@map_router.get("/cities/{city}/count")
async def city_user_count(city: str, current_user: dict = Depends(get_current_user)):
    users = redis_backend.get_users_in_city(city)
    return {
        "success": True,
        "city": city,
        "totalUsers": len(users),
        "availableUsers": sum(1 for u in users if u.get("isAvailable")),
        "timestamp": utc_now(),
    }


# ============================================
# COFFEE SHOPS
# ============================================

@map_router.get("/coffee-shops")
def coffee_shops(
    city: Optional[str] = Query(default=None, min_length=2, max_length=50),
    latitude: Optional[float] = Query(default=None),
    longitude: Optional[float] = Query(default=None),
    radius: int = Query(default=2000, ge=100, le=10000),
    use_cache: bool = Query(default=True, alias="useCache"),
    current_user: dict = Depends(get_current_user),
):
    # sync handler: Places lookups block on HTTP
    has_coordinates = latitude is not None and longitude is not None
    if not city and not has_coordinates:
        raise HTTPException(status_code=400, detail="City or coordinates are required")
    if has_coordinates and not geo.is_valid_coordinate(latitude, longitude):
        raise HTTPException(status_code=400, detail="Invalid coordinates provided")

    shops = redis_backend.get_coffee_shops(city) if city and use_cache else None
    if not shops:
        shops = []
        if has_coordinates:
            shops = places_client.get_coffee_shops(latitude, longitude, radius)
        elif city:
            coordinates = places_client.get_coordinates_from_city(city)
            if coordinates:
                shops = places_client.get_coffee_shops(coordinates["latitude"], coordinates["longitude"], radius)
        if city and shops:
            redis_backend.set_coffee_shops(city, shops)

    if has_coordinates:
        shops = geo.find_nearby_coffee_shops(latitude, longitude, shops, radius, limit=len(shops))

    return {
        "success": True,
        "coffeeShops": shops,
        "count": len(shops),
        "filters": {"city": city, "latitude": latitude, "longitude": longitude, "radius": radius},
    }


@map_router.get("/coffee-shops/midpoint")
def midpoint_coffee_shops(
    lat1: float = Query(),
    lon1: float = Query(),
    lat2: float = Query(),
    lon2: float = Query(),
    current_user: dict = Depends(get_current_user),
):
    if not geo.is_valid_coordinate(lat1, lon1) or not geo.is_valid_coordinate(lat2, lon2):
        raise HTTPException(status_code=400, detail="Invalid coordinates provided")

    midpoint = geo.get_center([(lat1, lon1), (lat2, lon2)])
    candidates = places_client.get_coffee_shops(midpoint[0], midpoint[1])
    shops = geo.find_midpoint_coffee_shops(lat1, lon1, lat2, lon2, candidates)
    return {
        "success": True,
        "midpoint": {"latitude": midpoint[0], "longitude": midpoint[1]},
        "distanceBetweenUsers": geo.calculate_distance(lat1, lon1, lat2, lon2),
        "coffeeShops": shops,
        "count": len(shops),
    }


@map_router.get("/coffee-shops/{shop_id}")
def coffee_shop_details(shop_id: str, current_user: dict = Depends(get_current_user)):
    details = places_client.get_coffee_shop_details(shop_id)
    if not details:
        logger.warning(f"Coffee shop {shop_id} not found")
        raise HTTPException(status_code=404, detail="Coffee shop not found")
    return {"success": True, "shop": details}


# ============================================
# INVITES
# ============================================

@map_router.post("/invites")
async def create_invite(body: MapInviteRequest, current_user: dict = Depends(get_current_user)):
    user_id = current_user["id"]
    target = redis_backend.get_user_location(body.to_user_id)
    if not target or not target.get("isAvailable"):
        logger.warning(f"Invite from {user_id} to unavailable user {body.to_user_id}")
        raise HTTPException(status_code=400, detail="Target user is not available for coffee meetups")

    invite = send_invite(
        user_id,
        body.to_user_id,
        body.message,
        DEFAULT_INVITE_MESSAGE,
        coffee_shop_id=body.coffee_shop_id,
        coffee_shop_name=body.coffee_shop_name,
        proposed_time=body.proposed_time,
    )
    return {"success": True, "message": "Coffee invite sent successfully", "invite": invite}


@map_router.get("/invites")
async def list_invites(current_user: dict = Depends(get_current_user)):
    invites = redis_backend.get_invites_for_user(current_user["id"])
    return {"success": True, "invites": invites, "count": len(invites)}


@map_router.get("/invites/{invite_id}")
async def get_invite(invite_id: str, current_user: dict = Depends(get_current_user)):
    invite = redis_backend.get_invite(invite_id)
    if not invite:
        raise HTTPException(status_code=404, detail="Invite not found or expired")
    if current_user["id"] not in (invite.get("fromUserId"), invite.get("toUserId")):
        logger.warning(f"User {current_user['id']} tried to view invite {invite_id}")
        raise HTTPException(status_code=403, detail="You are not authorized to view this invite")
    return {"success": True, "invite": invite}


@map_router.post("/invites/{invite_id}/respond")
async def reply_to_invite(invite_id: str, body: InviteReplyRequest, current_user: dict = Depends(get_current_user)):
    try:
        invite = respond_to_invite(invite_id, current_user["id"], body.response)
    except InviteError as e:
        raise _invite_http_error(e)
    return {"success": True, "message": f"Invite {invite['status']}", "invite": invite}


# ============================================
# STATISTICS
# ============================================

@map_router.get("/stats")
def map_stats(current_user: dict = Depends(get_current_user)):
    return {
        "success": True,
        "connectedUsers": sockets.connected_users_count(),
        "usersByCity": sockets.connected_users_by_city(),
        "totalLocations": redis_backend.get_map_statistics()["activeUsers"],
        "cityStats": redis_backend.get_city_stats(),
        "externalServices": places_client.check_external_services(),
        "configuration": places_client.get_config(),
        "timestamp": utc_now(),
    }
