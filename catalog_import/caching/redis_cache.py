"""
Redis Cache Client
Pooled Redis client holding the fast copy of import progress records.
"""

import json
import logging
import threading
from functools import lru_cache
from typing import Any, Dict, Optional

import redis
from redis.connection import ConnectionPool

from catalog_import.config.settings import ImportSettings, get_settings

logger = logging.getLogger(__name__)


class RedisCacheError(Exception):
    """Raised when the Redis server cannot be reached."""

    pass


class RedisCache:
    """
    JSON key/value cache for progress records.

    The tracker treats this as best effort: a failed read is a miss and a
    failed write is logged and dropped, so an outage only costs a trip to
    the durable store.

    Args:
        settings: Import settings (redis_url, progress_cache_ttl)
    """

    def __init__(self, settings: Optional[ImportSettings] = None):
        self.settings = settings or get_settings()
        self.pool = ConnectionPool.from_url(
            self.settings.redis_url,
            decode_responses=True,
            max_connections=20,
            socket_timeout=5,
            socket_connect_timeout=5,
        )
        self._client: Optional[redis.Redis] = None
        self._lock = threading.Lock()

    @property
    def client(self) -> redis.Redis:
        """Connected client, pinged once on first use."""
        if self._client is None:
            with self._lock:
                if self._client is None:
                    client = redis.Redis(connection_pool=self.pool)
                    try:
                        client.ping()
                    except redis.ConnectionError as e:
                        raise RedisCacheError(f"Redis unreachable at {self.settings.redis_url}: {e}")
                    self._client = client
                    logger.info(f"Progress cache connected: {self.settings.redis_url}")
        return self._client

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            data = self.client.get(key)
        except (redis.RedisError, RedisCacheError) as e:
            logger.warning(f"Progress cache read failed for {key}: {e}")
            return None

        if data is None:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    def set(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> bool:
        """
        Store a record, expiring after ttl seconds (settings.progress_cache_ttl by default).

        Returns:
            True if Redis accepted the write
        """
        ttl = ttl or self.settings.progress_cache_ttl
        try:
            self.client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except (redis.RedisError, RedisCacheError) as e:
            logger.warning(f"Progress cache write failed for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            return self.client.delete(key) > 0
        except (redis.RedisError, RedisCacheError) as e:
            logger.warning(f"Progress cache delete failed for {key}: {e}")
            return False


@lru_cache()
def get_redis_cache() -> RedisCache:
    """Process-wide progress cache."""
    return RedisCache()
