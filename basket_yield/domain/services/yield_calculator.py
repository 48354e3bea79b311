"""
ASSET YIELD CALCULATOR
Convert a price series into a bounded annualized-yield estimate

RESPONSIBILITIES:
- Period-over-period returns
- Population standard deviation of returns (volatility)
- Volatility-driven risk premium over a fixed risk-free baseline

RULES:
❌ Not a market-accurate APR (simplified proxy)
❌ Never raises on bad input
✅ Pure calculation
✅ Deterministic output, clamped to [0, 5000] bp
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Sequence

from basket_yield.domain.models import AssetYieldSample, PricePoint

RISK_FREE_RATE = 0.05
MIN_YIELD_BP = 0
MAX_YIELD_BP = 5000
MIN_POINTS = 2


def round_half_up(value: float) -> int:
    """Round .5 upwards (not banker's rounding)"""
    return int(math.floor(value + 0.5))


def clamp(value, low, high):
    return max(low, min(high, value))


@dataclass(frozen=True)
class YieldEstimate:
    yield_bp: int
    volatility: float


class AssetYieldCalculator:
    """
    Asset Yield Calculator
    yield_bp = (risk_free_rate + volatility * 100) * 100
    """

    def __init__(self, risk_free_rate: float = RISK_FREE_RATE):
        self.risk_free_rate = risk_free_rate

    def estimate(self, series: Sequence[PricePoint]) -> YieldEstimate:
        """
        Estimate yield for an ordered price series (oldest first).

        Fewer than 2 usable points yields 0 bp with 0 volatility.
        """
        prices = self._usable_prices(series)
        if len(prices) < MIN_POINTS:
            return YieldEstimate(yield_bp=0, volatility=0.0)

        returns = self.period_returns(prices)
        if not returns:
            return YieldEstimate(yield_bp=0, volatility=0.0)

        volatility = self.population_stdev(returns)
        risk_premium = volatility * 100
        raw_bp = (self.risk_free_rate + risk_premium) * 100
        if not math.isfinite(raw_bp):
            return YieldEstimate(yield_bp=MAX_YIELD_BP if raw_bp > 0 else 0, volatility=volatility)

        return YieldEstimate(
            yield_bp=clamp(round_half_up(raw_bp), MIN_YIELD_BP, MAX_YIELD_BP),
            volatility=volatility,
        )

    def calculate_bp(self, series: Sequence[PricePoint]) -> int:
        return self.estimate(series).yield_bp

    def build_sample(
        self,
        symbol: str,
        series: Sequence[PricePoint],
        computed_at: datetime,
        source: str = "pyth",
    ) -> AssetYieldSample:
        estimate = self.estimate(series)
        return AssetYieldSample(
            symbol=symbol,
            yield_bp=estimate.yield_bp,
            source_timestamp=computed_at,
            source=source,
            volatility=estimate.volatility,
        )

    @staticmethod
    def period_returns(prices: Sequence[float]) -> List[float]:
        """Returns between consecutive prices; pairs with a non-positive base are skipped"""
        returns = []
        for prev, curr in zip(prices, prices[1:]):
            if prev <= 0:
                continue
            returns.append((curr - prev) / prev)
        return returns

    @staticmethod
    def population_stdev(values: Sequence[float]) -> float:
        if not values:
            return 0.0
        mean = sum(values) / len(values)
        variance = sum((v - mean) ** 2 for v in values) / len(values)
        return math.sqrt(variance)

    @staticmethod
    def _usable_prices(series: Sequence[PricePoint]) -> List[float]:
        prices = []
        for point in series or []:
            try:
                price = float(point.price)
            except (AttributeError, TypeError, ValueError):
                continue
            if math.isfinite(price):
                prices.append(price)
        return prices
