"""
Pyth Hermes Market Data Provider
Current and historical prices from the Hermes REST API.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import httpx

from basket_yield.domain.models import PricePoint
from basket_yield.utils.time import from_unix, to_utc

logger = logging.getLogger(__name__)


class PythHermesProvider:
    def __init__(
        self,
        base_url: str,
        price_feeds: Dict[str, str],
        step: timedelta = timedelta(hours=1),
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.price_feeds = {k.upper(): v for k, v in price_feeds.items()}
        self.step = step
        self.timeout = timeout
        self._symbol_by_feed = {
            self._normalize_feed_id(feed_id): symbol for symbol, feed_id in self.price_feeds.items()
        }

    @staticmethod
    def _normalize_feed_id(feed_id: str) -> str:
        feed_id = feed_id.lower()
        return feed_id[2:] if feed_id.startswith("0x") else feed_id

    def _feed_params(self, symbols: List[str]) -> List[tuple]:
        params = [("parsed", "true")]
        for symbol in symbols:
            feed_id = self.price_feeds.get(symbol.upper())
            if feed_id:
                params.append(("ids[]", feed_id))
            else:
                logger.warning("No Pyth price feed configured for %s", symbol)
        return params

    async def fetch_current(self, symbols: List[str]) -> Dict[str, PricePoint]:
        params = self._feed_params(symbols)
        if len(params) == 1:
            return {}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            payload = await self._get_json(client, f"{self.base_url}/v2/updates/price/latest", params)
        prices = self._parse_updates(payload)
        logger.info("Fetched current prices for %d assets", len(prices))
        return prices

    async def fetch_historical(
        self,
        symbols: List[str],
        start: datetime,
        end: datetime,
    ) -> Dict[str, List[PricePoint]]:
        params = self._feed_params(symbols)
        if len(params) == 1:
            return {}

        timestamps = []
        cursor = to_utc(start)
        end = to_utc(end)
        while cursor <= end:
            timestamps.append(int(cursor.timestamp()))
            cursor += self.step

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            results = await asyncio.gather(
                *[
                    self._get_json(client, f"{self.base_url}/v2/updates/price/{ts}", params)
                    for ts in timestamps
                ],
                return_exceptions=True,
            )

        history: Dict[str, List[PricePoint]] = {}
        failures = 0
        for ts, result in zip(timestamps, results):
            if isinstance(result, Exception):
                failures += 1
                logger.warning("Pyth historical fetch failed at %s: %s", ts, result)
                continue
            for symbol, point in self._parse_updates(result).items():
                history.setdefault(symbol, []).append(point)

        if timestamps and failures == len(timestamps):
            raise RuntimeError("Pyth historical fetch failed for every timestamp")

        for points in history.values():
            points.sort(key=lambda p: p.ts)
        logger.info(
            "Fetched historical prices for %d assets (%d/%d windows)",
            len(history),
            len(timestamps) - failures,
            len(timestamps),
        )
        return history

    async def _get_json(self, client: httpx.AsyncClient, url: str, params: List[tuple]) -> dict:
        response = await client.get(url, params=params, headers={"Accept": "application/json"})
        response.raise_for_status()
        return response.json()

    def _parse_updates(self, payload: Optional[dict]) -> Dict[str, PricePoint]:
        prices: Dict[str, PricePoint] = {}
        for item in (payload or {}).get("parsed") or []:
            symbol = self._symbol_by_feed.get(self._normalize_feed_id(str(item.get("id", ""))))
            price_data = item.get("price") or {}
            if symbol is None:
                continue
            try:
                expo = int(price_data["expo"])
                price = Decimal(str(price_data["price"])).scaleb(expo)
                conf = Decimal(str(price_data.get("conf", "0"))).scaleb(expo)
                ts = from_unix(float(price_data["publish_time"]))
            except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
                logger.debug("Skipping malformed Pyth update for %s: %s", symbol, exc)
                continue
            prices[symbol] = PricePoint(symbol=symbol, price=price, ts=ts, confidence=conf)
        return prices
