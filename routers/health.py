import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import redis

from backend import redis_backend, utc_now
from constants import SERVICE_NAME, SERVICE_VERSION, ENVIRONMENT
from logging_config import get_logger

logger = get_logger(__name__)

health_router = APIRouter(prefix="/health", tags=["health"])

STARTED_AT = time.monotonic()


def _base_status(status: str = "OK") -> dict:
    return {
        "status": status,
        "service": SERVICE_NAME,
        "timestamp": utc_now(),
        "version": SERVICE_VERSION,
        "environment": ENVIRONMENT,
    }


@health_router.get("")
async def health():
    return _base_status()


@health_router.get("/detailed")
async def detailed_health():
    health_check = {
        **_base_status(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "checks": {"redis": "checking", "database": "not_applicable"},
    }

    try:
        if redis_backend.is_connected:
            redis_backend.ping()
            health_check["checks"]["redis"] = "OK"
        else:
            health_check["checks"]["redis"] = "DISCONNECTED"
            health_check["status"] = "DEGRADED"
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}", exc_info=True)
        health_check["checks"]["redis"] = "ERROR"
        health_check["status"] = "UNHEALTHY"

    status_code = 503 if health_check["status"] == "UNHEALTHY" else 200
    return JSONResponse(status_code=status_code, content=health_check)


@health_router.get("/redis")
async def redis_health():
    if not redis_backend.is_connected:
        return JSONResponse(status_code=503, content={
            "status": "DISCONNECTED",
            "message": "Redis client is not connected",
            "connection": redis_backend.connection_status(),
        })
    try:
        ping = redis_backend.ping()
        memory_info = redis_backend.memory_info()
    except redis.RedisError as e:
        logger.error(f"Redis status check failed: {e}", exc_info=True)
        return JSONResponse(status_code=503, content={"status": "ERROR", "error": str(e)})

    return {"status": "OK", "ping": ping, "connection": redis_backend.connection_status(), "memoryInfo": memory_info}


@health_router.get("/stats")
async def health_stats():
    return {"status": "OK", "statistics": redis_backend.get_map_statistics(), "timestamp": utc_now()}
