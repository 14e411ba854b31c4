"""
Redis caching utilities for external calendar lookups
Every operation fails open: a missing or broken Redis only costs a cache miss
"""
import json
import logging
import os
import time
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None

# Seconds to wait before reconnecting after a failed connection attempt
REDIS_RETRY_COOLDOWN = float(os.getenv("REDIS_RETRY_COOLDOWN", "30"))


def _mask_url(redis_url: str) -> str:
    if "@" in redis_url:
        url_parts = redis_url.split("@")
        protocol = url_parts[0].split(":")[0]
        return f"{protocol}:****@{url_parts[1]}"
    return "****"


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create Redis client
    Returns None when neither REDIS_URL nor REDIS_HOST is configured
    """
    global redis_client

    if redis_client is not None:
        return redis_client

    redis_url = os.getenv("REDIS_URL")
    redis_host = os.getenv("REDIS_HOST")

    if redis_url:
        logger.info(f"📡 Using Redis URL connection: {_mask_url(redis_url)}")
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
    elif redis_host:
        redis_port = int(os.getenv("REDIS_PORT", "6379"))
        redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
        logger.info(f"📡 Using Redis at {redis_host}:{redis_port} ({'with' if redis_ssl else 'without'} SSL)")
        client = redis.Redis(
            host=redis_host,
            port=redis_port,
            password=os.getenv("REDIS_PASSWORD", None),
            db=int(os.getenv("REDIS_DB", "0")),
            ssl=redis_ssl,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
    else:
        return None

    # Test connection
    client.ping()
    logger.info("✅ Redis connected successfully")
    redis_client = client
    return redis_client


class Cache:
    """Redis cache wrapper with automatic serialization"""

    def __init__(self, retry_cooldown: float = REDIS_RETRY_COOLDOWN):
        self.redis_client = None
        self.retry_cooldown = retry_cooldown
        # Monotonic time before which a failed connection is not retried
        self._retry_after = 0.0

    def _get_client(self):
        """Lazy load Redis client"""
        if self.redis_client is None:
            if time.monotonic() < self._retry_after:
                return None
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                self._retry_after = time.monotonic() + self.retry_cooldown
                logger.warning(f"⚠️ Redis cache unavailable, retrying in {self.retry_cooldown:.0f}s: {e}")
                return None
        return self.redis_client

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except Exception as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 120) -> bool:
        """Set value in cache with TTL"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.setex(key, ttl, json.dumps(value))
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching pattern (e.g., 'busy:12:*')"""
        client = self._get_client()
        if not client:
            return 0

        try:
            keys = client.keys(pattern)
            if keys:
                deleted = client.delete(*keys)
                logger.debug(f"✅ Cache DELETE pattern: {pattern} ({deleted} keys)")
                return deleted
            return 0
        except Exception as e:
            logger.error(f"❌ Cache delete pattern error for {pattern}: {e}")
            return 0


# Global cache instance
cache = Cache()


def busy_intervals_key(user_id: int, day: str) -> str:
    return f"busy_intervals:{user_id}:{day}"


def get_busy_intervals_cached(user_id: int, day: str) -> Optional[list]:
    """Get a user's external busy intervals for a day from cache"""
    return cache.get(busy_intervals_key(user_id, day))


def set_busy_intervals_cached(user_id: int, day: str, intervals: list, ttl: int = 120) -> bool:
    """Cache a user's external busy intervals for a day"""
    return cache.set(busy_intervals_key(user_id, day), intervals, ttl)


def invalidate_busy_intervals_cache(user_id: int) -> int:
    """Drop every cached day for a user"""
    return cache.delete_pattern(f"busy_intervals:{user_id}:*")
