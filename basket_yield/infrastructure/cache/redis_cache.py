"""
Redis cache wrapper for yield snapshots.
Best-effort: every failure is logged and reported as a miss.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisCache:
    def __init__(self, url: str, prefix: str = "by:", enabled: bool = True):
        self._client = redis.Redis.from_url(url, decode_responses=True)
        self._prefix = prefix
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get_json(self, key: str) -> Optional[Any]:
        if not self._enabled:
            return None
        try:
            raw = await self._client.get(self._key(key))
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as exc:
            logger.warning("Redis get_json failed for %s: %s", key, exc)
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        if not self._enabled:
            return
        try:
            await self._client.set(self._key(key), json.dumps(value), ex=ttl_seconds)
        except Exception as exc:
            logger.warning("Redis set_json failed for %s: %s", key, exc)

    async def ping(self) -> bool:
        if not self._enabled:
            return False
        try:
            return bool(await self._client.ping())
        except Exception as exc:
            logger.debug("Redis ping failed: %s", exc)
            return False

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except Exception as exc:
            logger.debug("Redis close failed: %s", exc)
