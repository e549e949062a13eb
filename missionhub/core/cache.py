# missionhub/core/cache.py
"""Redis caching implementation."""
import json
import logging
from typing import Any, Optional, Union
from datetime import timedelta
import redis.asyncio as redis
from ..core.config import settings

logger = logging.getLogger(__name__)

class CacheManager:
    def __init__(self, url: Optional[str] = None, enabled: Optional[bool] = None):
        self.url = url or settings.redis_url
        self.enabled = settings.cache_enabled if enabled is None else enabled
        self.redis: Optional[redis.Redis] = None

    async def connect(self):
        """Initialize Redis connection."""
        if self.enabled and not self.redis:
            self.redis = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True
            )

    async def disconnect(self):
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        if not self.enabled:
            return None
        if not self.redis:
            await self.connect()

        try:
            value = await self.redis.get(key)
            if value:
                return json.loads(value)
        except Exception as e:
            logger.warning(f"Cache get error for {key}: {e}")
        return None

    async def set(
        self,
        key: str,
        value: Any,
        expire: Optional[Union[int, timedelta]] = None
    ) -> bool:
        """Set value in cache."""
        if not self.enabled:
            return False
        if not self.redis:
            await self.connect()

        try:
            serialized = json.dumps(value, default=str)
            expire = expire or settings.cache_ttl_seconds
            if isinstance(expire, timedelta):
                expire = int(expire.total_seconds())
            return bool(await self.redis.setex(key, expire, serialized))
        except Exception as e:
            logger.warning(f"Cache set error for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        if not self.enabled:
            return False
        if not self.redis:
            await self.connect()

        try:
            return bool(await self.redis.delete(key))
        except Exception as e:
            logger.warning(f"Cache delete error for {key}: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern."""
        if not self.enabled:
            return 0
        if not self.redis:
            await self.connect()

        deleted = 0
        try:
            async for key in self.redis.scan_iter(match=pattern):
                deleted += await self.redis.delete(key)
        except Exception as e:
            logger.warning(f"Cache pattern delete error for {pattern}: {e}")
        return deleted

# Global cache instance
cache = CacheManager()
