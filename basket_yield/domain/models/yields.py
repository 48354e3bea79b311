"""
DOMAIN MODELS — YIELDS

Immutable samples and snapshots produced by each aggregation cycle.
A newer cycle supersedes these records; it never mutates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from basket_yield.utils.time import parse_iso, to_utc


@dataclass(frozen=True)
class PricePoint:
    """Single price observation from the market-data source"""
    symbol: str
    price: Decimal
    ts: datetime
    confidence: Optional[Decimal] = None


@dataclass(frozen=True)
class AssetYieldSample:
    """Annualized yield estimate for one asset, in basis points (0-5000)"""
    symbol: str
    yield_bp: int
    source_timestamp: datetime
    source: str = "pyth"
    volatility: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "yield_bp": self.yield_bp,
            "source_timestamp": to_utc(self.source_timestamp).isoformat(),
            "source": self.source,
            "volatility": self.volatility,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["AssetYieldSample"]:
        """Rebuild from a cached payload; returns None if the payload is unusable."""
        try:
            ts = parse_iso(data.get("source_timestamp"))
            if ts is None:
                return None
            return cls(
                symbol=str(data["symbol"]),
                yield_bp=int(data["yield_bp"]),
                source_timestamp=ts,
                source=str(data.get("source") or "pyth"),
                volatility=float(data.get("volatility") or 0.0),
            )
        except (KeyError, TypeError, ValueError, AttributeError):
            return None


@dataclass(frozen=True)
class AssetContribution:
    """
    Allocation-weighted contribution of one asset to a basket.

    contribution_bp = round(asset_yield_bp * allocation_bp / 10000)
    """
    symbol: str
    allocation_bp: int
    asset_yield_bp: int
    contribution_bp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "allocation_bp": self.allocation_bp,
            "asset_yield_bp": self.asset_yield_bp,
            "contribution_bp": self.contribution_bp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetContribution":
        return cls(
            symbol=str(data["symbol"]),
            allocation_bp=int(data.get("allocation_bp", 0)),
            asset_yield_bp=int(data.get("asset_yield_bp", 0)),
            contribution_bp=int(data["contribution_bp"]),
        )


@dataclass(frozen=True)
class BasketYieldSnapshot:
    """Basket-level yield figures for one cycle"""
    basket_id: int
    basket_name: str
    simple_average_yield_bp: int
    weighted_yield_bp: int
    computed_at: datetime
    contributions: Tuple[AssetContribution, ...] = field(default_factory=tuple)

    @property
    def has_data(self) -> bool:
        """False for the degenerate zero-match snapshot"""
        return len(self.contributions) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "basket_id": self.basket_id,
            "basket_name": self.basket_name,
            "simple_average_yield_bp": self.simple_average_yield_bp,
            "weighted_yield_bp": self.weighted_yield_bp,
            "computed_at": to_utc(self.computed_at).isoformat(),
            "contributions": [c.to_dict() for c in self.contributions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["BasketYieldSnapshot"]:
        try:
            computed_at = parse_iso(data.get("computed_at"))
            if computed_at is None:
                return None
            return cls(
                basket_id=int(data["basket_id"]),
                basket_name=str(data["basket_name"]),
                simple_average_yield_bp=int(data["simple_average_yield_bp"]),
                weighted_yield_bp=int(data["weighted_yield_bp"]),
                computed_at=computed_at,
                contributions=tuple(
                    AssetContribution.from_dict(c) for c in data.get("contributions") or []
                ),
            )
        except (KeyError, TypeError, ValueError, AttributeError):
            return None
