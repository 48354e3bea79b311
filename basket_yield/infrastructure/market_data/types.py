"""
Market data client protocol for type hints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Protocol

from basket_yield.domain.models import PricePoint


class MarketDataClient(Protocol):
    async def fetch_current(self, symbols: List[str]) -> Dict[str, PricePoint]:
        ...

    async def fetch_historical(
        self,
        symbols: List[str],
        start: datetime,
        end: datetime,
    ) -> Dict[str, List[PricePoint]]:
        """Price series per symbol, oldest first."""
        ...
