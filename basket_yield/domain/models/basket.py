"""
DOMAIN MODELS — BASKETS

Read-only reference data loaded at configuration time.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


BASIS_POINTS = 10000


class RiskTier(str, Enum):
    """Risk tier of a basket"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True)
class BasketAsset:
    """One line of a basket allocation table"""
    symbol: str
    allocation_bp: int

    def __post_init__(self):
        if not self.symbol:
            raise ValueError("Basket asset symbol cannot be empty")
        if self.allocation_bp < 0:
            raise ValueError(f"Allocation cannot be negative: {self.symbol}")


@dataclass(frozen=True)
class BasketDefinition:
    """Fixed-allocation basket - Immutable"""
    basket_id: int
    name: str
    risk_tier: RiskTier
    assets: Tuple[BasketAsset, ...]

    @property
    def total_allocation_bp(self) -> int:
        return sum(asset.allocation_bp for asset in self.assets)

    @property
    def symbols(self) -> Tuple[str, ...]:
        return tuple(asset.symbol for asset in self.assets)

    def describe(self) -> str:
        """Human-readable allocation line, e.g. 'USDC 60%, ETH 20%'"""
        parts = []
        for asset in self.assets:
            pct = asset.allocation_bp / 100
            pct_text = f"{pct:.0f}" if pct == int(pct) else f"{pct:.2f}"
            parts.append(f"{asset.symbol} {pct_text}%")
        return ", ".join(parts)
