"""Redis caching service for query embeddings."""

import hashlib
import json
import logging
from typing import List, Optional

import redis.asyncio as redis

from grounding_engine.core.config import settings
from grounding_engine.core.exceptions import CacheError

logger = logging.getLogger(__name__)


def embedding_cache_key(model: str, dimensions: int, text: str) -> str:
    """
    Generate cache key for a query embedding.

    Args:
        model: Embedding model name.
        dimensions: Vector dimensionality.
        text: Query text.

    Returns:
        Cache key string.
    """
    text_hash = hashlib.md5(text.encode()).hexdigest()
    return f"query_embedding:{model}:{dimensions}:{text_hash}"


class CacheService:
    """
    Service for caching query embeddings.

    Reads and writes are fail-open: an unreachable or failing Redis never
    fails a query, it only costs an extra embedding call.
    """

    def __init__(self) -> None:
        """Initialize the cache service."""
        self.client: Optional[redis.Redis] = None
        self.ttl = settings.cache_ttl

    async def connect(self) -> None:
        """Connect to Redis."""
        try:
            self.client = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                max_connections=settings.redis_pool_size,
                socket_connect_timeout=5.0,
            )
            await self.client.ping()
        except Exception as e:
            raise CacheError(f"Failed to connect to Redis: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.client:
            await self.client.aclose()

    async def get(self, key: str) -> Optional[str]:
        """
        Get a value from cache.

        Args:
            key: Cache key.

        Returns:
            Cached value or None if not found or unavailable.
        """
        if not self.client:
            return None
        try:
            return await self.client.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {str(e)}")
            return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """
        Set a value in cache.

        Args:
            key: Cache key.
            value: Value to cache.
            ttl: Time to live in seconds.
        """
        if not self.client:
            return
        try:
            await self.client.setex(key, ttl or self.ttl, value)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {str(e)}")

    async def get_embedding(self, key: str) -> Optional[List[float]]:
        """
        Get a cached embedding.

        Args:
            key: Cache key.

        Returns:
            Vector or None if absent or undecodable.
        """
        value = await self.get(key)
        if not value:
            return None
        try:
            vector = json.loads(value)
        except json.JSONDecodeError:
            return None
        if not isinstance(vector, list):
            return None
        return vector

    async def set_embedding(
        self, key: str, embedding: List[float], ttl: Optional[int] = None
    ) -> None:
        """
        Cache an embedding.

        Args:
            key: Cache key.
            embedding: Vector to cache.
            ttl: Time to live in seconds.
        """
        await self.set(key, json.dumps(embedding), ttl)
