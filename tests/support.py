"""Fakes and helpers shared by the test suite."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from basket_yield.domain.models import PricePoint, SwapResult

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class InMemoryCacheStore:
    """Dict-backed stand-in for RedisCache"""

    def __init__(self, fail: bool = False):
        self.data: Dict[str, object] = {}
        self.ttls: Dict[str, int] = {}
        self.fail = fail

    async def get_json(self, key):
        if self.fail:
            raise ConnectionError("cache down")
        return self.data.get(key)

    async def set_json(self, key, value, ttl_seconds):
        if self.fail:
            raise ConnectionError("cache down")
        self.data[key] = value
        self.ttls[key] = ttl_seconds


def price_series(symbol: str, prices, end: datetime = NOW, step: timedelta = timedelta(hours=1)) -> List[PricePoint]:
    """Oldest-first series ending one step before `end`"""
    count = len(prices)
    return [
        PricePoint(symbol=symbol, price=Decimal(str(p)), ts=end - step * (count - i))
        for i, p in enumerate(prices)
    ]


class FakeMarketData:
    def __init__(
        self,
        historical: Optional[Dict[str, List[PricePoint]]] = None,
        current: Optional[Dict[str, PricePoint]] = None,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.historical = historical or {}
        self.current = current or {}
        self.error = error
        self.gate = gate
        self.entered = asyncio.Event()
        self.fetch_current_calls = 0
        self.fetch_historical_calls = 0
        self.historical_symbols: List[List[str]] = []

    async def fetch_current(self, symbols):
        self.fetch_current_calls += 1
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return {s: p for s, p in self.current.items() if s in symbols}

    async def fetch_historical(self, symbols, start, end):
        self.fetch_historical_calls += 1
        self.historical_symbols.append(list(symbols))
        if self.error is not None:
            raise self.error
        return {s: list(v) for s, v in self.historical.items() if s in symbols}


class FakeBackend:
    def __init__(self, response: str = "", error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.prompts: List[str] = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


class FakeSwapExecutor:
    def __init__(self, success: bool = True, error: Optional[Exception] = None):
        self.success = success
        self.error = error
        self.calls = []

    async def execute(self, user_id, from_basket_id, to_basket_id):
        self.calls.append((user_id, from_basket_id, to_basket_id))
        if self.error is not None:
            raise self.error
        if self.success:
            return SwapResult(success=True, tx_reference="tx-123", gas_used=21000)
        return SwapResult(success=False, error="insufficient liquidity")


class RecordingAuditSink:
    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    async def record(self, event):
        if self.fail:
            raise RuntimeError("ledger offline")
        self.events.append(event)


def recommendation_text(basket: int, confidence, expected_yield=800, risk_score=40) -> str:
    return (
        "Here is my analysis:\n"
        f'{{"recommendedBasket": {basket}, "confidence": {confidence}, '
        f'"reasoning": "test reasoning", "expectedYield": {expected_yield}, "riskScore": {risk_score}}}'
    )

