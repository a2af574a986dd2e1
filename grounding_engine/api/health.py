"""Health check utilities."""

from typing import Dict

from grounding_engine.services.cache import CacheService
from grounding_engine.services.database import DatabaseService
from grounding_engine.services.health import check_openai, check_postgres, check_redis


async def check_all_dependencies(
    database: DatabaseService,
    cache_service: CacheService,
) -> Dict:
    """
    Check all service dependencies.

    A missing Redis or provider key only degrades the service.

    Args:
        database: Database service.
        cache_service: Cache service.

    Returns:
        Dictionary with overall status and individual service statuses.
    """
    services = {}
    overall_status = "healthy"

    postgres_status = await check_postgres(database)
    services["postgres"] = postgres_status
    if postgres_status.get("status") != "healthy":
        overall_status = "unhealthy"

    redis_status = await check_redis(cache_service)
    services["redis"] = redis_status
    if redis_status.get("status") != "healthy" and overall_status == "healthy":
        overall_status = "degraded"

    openai_status = check_openai()
    services["openai"] = openai_status
    if openai_status.get("status") != "configured" and overall_status == "healthy":
        overall_status = "degraded"

    return {"status": overall_status, "services": services}


async def check_readiness(
    database: DatabaseService,
    cache_service: CacheService,
) -> Dict:
    """
    Check service readiness.

    Args:
        database: Database service.
        cache_service: Cache service.

    Returns:
        Readiness status dictionary.
    """
    postgres_status = await check_postgres(database)
    redis_status = await check_redis(cache_service)

    return {
        "ready": postgres_status.get("status") == "healthy",
        "postgres": postgres_status.get("status") == "healthy",
        "redis": redis_status.get("status") == "healthy",
    }
