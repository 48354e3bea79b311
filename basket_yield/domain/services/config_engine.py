"""
CONFIG ENGINE
Load, validate, and expose basket configuration

RESPONSIBILITIES:
- Load baskets.yml
- Validate basket ids, risk tiers and allocation tables
- Expose read-only typed objects

RULES:
❌ No runtime mutation of basket definitions
✅ Fail fast on structurally invalid config
✅ Deterministic output
"""

import logging
from pathlib import Path
from typing import Dict, List

import yaml

from basket_yield.domain.errors import ConfigurationError
from basket_yield.domain.models import BASIS_POINTS, BasketAsset, BasketDefinition, RiskTier

logger = logging.getLogger(__name__)


class ConfigEngine:
    """
    Configuration Engine
    Single source of truth for basket reference data
    """

    def __init__(self, config_dir: Path):
        """Initialize with config directory"""
        self.config_dir = Path(config_dir)
        self._baskets: List[BasketDefinition] = []
        self._price_feeds: Dict[str, str] = {}
        self._loaded = False

    def load_all(self) -> None:
        """Load all configuration files"""
        self._load_baskets()
        self._loaded = True
        logger.info(
            "Loaded %d baskets tracking %d assets",
            len(self._baskets),
            len(self.tracked_symbols),
        )

    def _load_baskets(self) -> None:
        """Load basket definitions from baskets.yml"""
        basket_file = self.config_dir / "baskets.yml"
        if not basket_file.exists():
            raise ConfigurationError(f"Basket config not found: {basket_file}")

        with open(basket_file, "r") as f:
            data = yaml.safe_load(f) or {}

        self._baskets = self.parse_baskets(data.get("baskets") or [])
        self._price_feeds = {
            str(symbol).upper(): str(feed_id)
            for symbol, feed_id in (data.get("price_feeds") or {}).items()
        }

    @staticmethod
    def parse_baskets(raw_baskets: List[dict]) -> List[BasketDefinition]:
        """
        Build BasketDefinitions from raw YAML data.

        Structural problems raise ConfigurationError. An allocation table that
        does not sum to 10000 bp is only warned about: aggregation still works,
        but the weighted yield is then not a true weighted average.
        """
        if not raw_baskets:
            raise ConfigurationError("No baskets configured")

        baskets: List[BasketDefinition] = []
        for raw in raw_baskets:
            try:
                basket_id = int(raw["id"])
                risk_tier = RiskTier(raw["risk_tier"])
                assets = tuple(
                    BasketAsset(symbol=str(a["symbol"]).upper(), allocation_bp=int(a["allocation"]))
                    for a in raw.get("assets") or []
                )
                basket = BasketDefinition(
                    basket_id=basket_id,
                    name=str(raw["name"]),
                    risk_tier=risk_tier,
                    assets=assets,
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ConfigurationError(f"Invalid basket entry {raw!r}: {exc}") from exc

            if basket.total_allocation_bp != BASIS_POINTS:
                logger.warning(
                    "Basket %s allocations sum to %d bp (expected %d)",
                    basket.basket_id,
                    basket.total_allocation_bp,
                    BASIS_POINTS,
                )
            baskets.append(basket)

        baskets.sort(key=lambda b: b.basket_id)
        ids = [b.basket_id for b in baskets]
        if len(ids) != len(set(ids)):
            raise ConfigurationError("Duplicate basket ids found in configuration")
        if ids != list(range(len(ids))):
            raise ConfigurationError(f"Basket ids must be 0..N-1, got {ids}")
        return baskets

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise ConfigurationError("Configuration not loaded; call load_all() first")

    @property
    def baskets(self) -> List[BasketDefinition]:
        self._require_loaded()
        return list(self._baskets)

    @property
    def price_feeds(self) -> Dict[str, str]:
        self._require_loaded()
        return dict(self._price_feeds)

    @property
    def tracked_symbols(self) -> List[str]:
        """Every symbol referenced by any basket, in first-seen order"""
        seen: Dict[str, None] = {}
        for basket in self._baskets:
            for symbol in basket.symbols:
                seen.setdefault(symbol, None)
        return list(seen)


def default_basket_id(baskets: List[BasketDefinition]) -> int:
    """Medium-risk basket id, or the middle id when no basket is tagged Medium"""
    for basket in baskets:
        if basket.risk_tier == RiskTier.MEDIUM:
            return basket.basket_id
    if not baskets:
        return 0
    return baskets[len(baskets) // 2].basket_id
