"""
BASKET AGGREGATOR
Combine asset yields into basket-level yields

RESPONSIBILITIES:
- Weighted yield per basket from its fixed allocation table
- "Simple average" yield per basket
- Per-asset contribution records

RULES:
❌ Missing asset samples are skipped, never an error
✅ Pure calculation, idempotent for identical inputs
✅ Zero matched assets -> weighted 0 / average 0 snapshot
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from basket_yield.domain.models import (
    BASIS_POINTS,
    AssetContribution,
    AssetYieldSample,
    BasketDefinition,
    BasketYieldSnapshot,
)
from basket_yield.domain.services.yield_calculator import round_half_up
from basket_yield.utils.time import utc_now


class BasketAggregator:
    """
    Basket Aggregator

    weighted_yield = Σ(asset_yield × allocation / 10000)

    simple_average_yield is the mean of the rounded allocation-weighted
    contributions of the matched assets, NOT the mean of the raw asset
    yields. This mirrors the historical basket_history figures.
    """

    def aggregate(
        self,
        samples: Iterable[AssetYieldSample],
        baskets: Iterable[BasketDefinition],
        computed_at: Optional[datetime] = None,
    ) -> List[BasketYieldSnapshot]:
        computed_at = computed_at or utc_now()
        sample_map = self.index_samples(samples)
        return [
            self.aggregate_basket(basket, sample_map, computed_at)
            for basket in sorted(baskets, key=lambda b: b.basket_id)
        ]

    def aggregate_basket(
        self,
        basket: BasketDefinition,
        sample_map: Dict[str, AssetYieldSample],
        computed_at: datetime,
    ) -> BasketYieldSnapshot:
        weighted_yield = 0.0
        contributions: List[AssetContribution] = []

        for asset in basket.assets:
            sample = sample_map.get(asset.symbol)
            if sample is None:
                continue

            contribution = sample.yield_bp * asset.allocation_bp / BASIS_POINTS
            weighted_yield += contribution
            contributions.append(
                AssetContribution(
                    symbol=asset.symbol,
                    allocation_bp=asset.allocation_bp,
                    asset_yield_bp=sample.yield_bp,
                    contribution_bp=round_half_up(contribution),
                )
            )

        if contributions:
            average = sum(c.contribution_bp for c in contributions) / len(contributions)
        else:
            average = 0.0

        return BasketYieldSnapshot(
            basket_id=basket.basket_id,
            basket_name=basket.name,
            simple_average_yield_bp=round_half_up(average),
            weighted_yield_bp=round_half_up(weighted_yield),
            computed_at=computed_at,
            contributions=tuple(contributions),
        )

    @staticmethod
    def index_samples(samples: Iterable[AssetYieldSample]) -> Dict[str, AssetYieldSample]:
        """One sample per symbol; a later sample for the same symbol wins"""
        return {sample.symbol: sample for sample in samples}


def contributions_to_asset_yields(snapshots: Iterable[BasketYieldSnapshot]) -> Dict[str, int]:
    """
    Collapse basket snapshots into one figure per asset.

    Each asset keeps the largest contribution it makes to any basket.
    Used to feed the recommendation engine from basket snapshots.
    """
    asset_yields: Dict[str, int] = {}
    for snapshot in snapshots:
        for contribution in snapshot.contributions:
            existing = asset_yields.get(contribution.symbol)
            if existing is None or contribution.contribution_bp > existing:
                asset_yields[contribution.symbol] = contribution.contribution_bp
    return asset_yields
