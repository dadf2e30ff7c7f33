import redis.asyncio as redis
import re
from typing import List, Dict, Any, Optional, Sequence

# Characters with special meaning in Redis MATCH patterns
_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def escape_pattern(value: str) -> str:
    return _GLOB_SPECIAL.sub(r"\\\1", value)


class CacheService:
    """Redis-backed key-value store used for composed feed pages"""

    def __init__(self, redis_url: str, scan_count: int = 500):
        self.redis_url = redis_url
        self.scan_count = scan_count
        self.redis: Optional[redis.Redis] = None

    async def initialize(self):
        """Initialize Redis connection"""
        self.redis = redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True
        )
        # Test connection
        await self.redis.ping()

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.redis.setex(key, ttl_seconds, value)

    async def list_keys_by_prefix(self, prefix: str) -> List[str]:
        """Enumerate keys starting with prefix using SCAN, never KEYS"""
        pattern = f"{escape_pattern(prefix)}*"
        return [key async for key in self.redis.scan_iter(match=pattern, count=self.scan_count)]

    async def delete_keys(self, keys: Sequence[str]) -> int:
        if not keys:
            return 0
        return await self.redis.delete(*keys)

    async def get_stats(self, prefix: str = "feed:") -> Dict[str, Any]:
        """Get cache statistics"""
        feed_keys = await self.list_keys_by_prefix(prefix)
        info = await self.redis.info("memory")

        return {
            "cached_feed_pages": len(feed_keys),
            "cached_users": len({key[len(prefix):].split(":")[0] for key in feed_keys}),
            "memory_used_mb": round(info.get("used_memory", 0) / 1024 / 1024, 2),
        }

    async def close(self):
        """Close Redis connection"""
        if self.redis:
            await self.redis.aclose()
