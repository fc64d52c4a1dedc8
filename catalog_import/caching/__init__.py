"""
Caching Module
Redis-backed cache for import progress.
"""

from .redis_cache import RedisCache, RedisCacheError, get_redis_cache

__all__ = ["RedisCache", "RedisCacheError", "get_redis_cache"]
