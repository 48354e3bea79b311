"""
Typed cache-aside access for asset samples and basket snapshots.

Keys: asset-yield:<symbol>, basket-yield:<basket_id>. Entries are written
with a fixed 5 minute TTL; stale reads up to the TTL are tolerated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol

from basket_yield.domain.models import AssetYieldSample, BasketYieldSnapshot
from basket_yield.utils.time import to_utc

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 300
FRESHNESS_WINDOW = timedelta(minutes=5)


class CacheStore(Protocol):
    async def get_json(self, key: str) -> Optional[Any]:
        ...

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...


def asset_yield_key(symbol: str) -> str:
    return f"asset-yield:{symbol}"


def basket_yield_key(basket_id: int) -> str:
    return f"basket-yield:{basket_id}"


def is_fresh(ts: datetime, now: datetime, window: timedelta = FRESHNESS_WINDOW) -> bool:
    return to_utc(now) - to_utc(ts) < window


class YieldCache:
    def __init__(self, store: CacheStore, ttl_seconds: int = CACHE_TTL_SECONDS):
        self.store = store
        self.ttl_seconds = ttl_seconds

    async def _get(self, key: str) -> Optional[Any]:
        try:
            return await self.store.get_json(key)
        except Exception as exc:
            logger.warning("Cache read failed for %s, treating as miss: %s", key, exc)
            return None

    async def _set(self, key: str, value: Any) -> None:
        try:
            await self.store.set_json(key, value, self.ttl_seconds)
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)

    async def get_asset_yield(self, symbol: str) -> Optional[AssetYieldSample]:
        raw = await self._get(asset_yield_key(symbol))
        if not isinstance(raw, dict):
            return None
        return AssetYieldSample.from_dict(raw)

    async def get_fresh_asset_yield(self, symbol: str, now: datetime) -> Optional[AssetYieldSample]:
        sample = await self.get_asset_yield(symbol)
        if sample is None or not is_fresh(sample.source_timestamp, now):
            return None
        return sample

    async def set_asset_yield(self, sample: AssetYieldSample) -> None:
        await self._set(asset_yield_key(sample.symbol), sample.to_dict())

    async def get_basket_snapshot(self, basket_id: int) -> Optional[BasketYieldSnapshot]:
        raw = await self._get(basket_yield_key(basket_id))
        if not isinstance(raw, dict):
            return None
        return BasketYieldSnapshot.from_dict(raw)

    async def set_basket_snapshot(self, snapshot: BasketYieldSnapshot) -> None:
        await self._set(basket_yield_key(snapshot.basket_id), snapshot.to_dict())
