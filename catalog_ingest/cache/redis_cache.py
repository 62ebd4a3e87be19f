"""
Redis Cache Client
JSON-valued Redis client shared by the rate snapshot cache, the results
store and the query cache.
"""

import json
from typing import Any, Optional

import redis

from catalog_ingest.observability.logger import get_logger

logger = get_logger(__name__)


class RedisCache:
    """
    Redis cache client storing JSON documents.

    Errors never propagate: a failed read is reported as a miss (None) and a
    failed write as False, so callers degrade to recomputing the value.
    """

    def __init__(self, url: str = "redis://localhost:6379/0", client: Optional[redis.Redis] = None):
        """
        Initialize Redis cache client.

        Args:
            url: Redis connection URL
            client: Pre-built client (the URL is ignored when given)
        """
        self.url = url
        self.client = client or redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )

    @classmethod
    def from_settings(cls, settings) -> "RedisCache":
        return cls(url=settings.redis_url)

    def get(self, key: str) -> Optional[Any]:
        """
        Get a decoded value from the cache.

        Returns:
            Cached value or None if missing or unreadable
        """
        try:
            data = self.client.get(key)
        except redis.RedisError as e:
            logger.error(f"Redis GET error for key '{key}': {e}")
            return None

        if data is None:
            return None

        try:
            return json.loads(data)
        except (TypeError, ValueError) as e:
            logger.error(f"Error deserializing cached data for key '{key}': {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Store a JSON-serializable value.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time-to-live in seconds (None = no expiration)

        Returns:
            True if successful, False otherwise
        """
        try:
            data = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Error serializing data for key '{key}': {e}")
            return False

        try:
            if ttl is not None:
                self.client.setex(key, ttl, data)
            else:
                self.client.set(key, data)
            return True
        except redis.RedisError as e:
            logger.error(f"Redis SET error for key '{key}': {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            return self.client.delete(key) > 0
        except redis.RedisError as e:
            logger.error(f"Redis DELETE error for key '{key}': {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Key pattern (e.g., "products:*")

        Returns:
            Number of keys deleted
        """
        try:
            keys = list(self.client.scan_iter(match=pattern))
            if not keys:
                return 0
            return self.client.delete(*keys)
        except redis.RedisError as e:
            logger.error(f"Redis DELETE PATTERN error for pattern '{pattern}': {e}")
            return 0

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis PING error: {e}")
            return False

    def close(self) -> None:
        self.client.close()
