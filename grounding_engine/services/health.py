"""Health check service for dependency verification."""

import time
from typing import Any, Dict

from grounding_engine.core.config import settings
from grounding_engine.services.cache import CacheService
from grounding_engine.services.database import DatabaseService


async def check_postgres(database: DatabaseService) -> Dict[str, Any]:
    """
    Check PostgreSQL connectivity through the service pool.

    Args:
        database: DatabaseService instance.

    Returns:
        Health status dictionary.
    """
    try:
        start_time = time.time()
        if not database.pool:
            return {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}

        async with database.pool.acquire() as conn:
            await conn.execute("SELECT 1")
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_redis(cache_service: CacheService) -> Dict[str, Any]:
    """
    Check Redis connectivity and health.

    Args:
        cache_service: CacheService instance.

    Returns:
        Health status dictionary.
    """
    try:
        start_time = time.time()
        if not cache_service.client:
            return {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}

        await cache_service.client.ping()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


def check_openai() -> Dict[str, Any]:
    """
    Report whether the embedding and generation provider is configured.

    Does not call the provider.

    Returns:
        Health status dictionary.
    """
    if not settings.openai_api_key:
        return {"status": "not_configured", "error": "API key not set"}
    return {
        "status": "configured",
        "embedding_model": settings.embedding_model,
        "llm_model": settings.llm_model,
    }
