"""
RECOMMENDATION ENGINE
Ask the generative backend for a basket recommendation and bound its answer

RESPONSIBILITIES:
- Build the structured analysis payload (yields, trends, basket figures)
- Delegate to the recommendation backend
- Parse / validate / clamp the free-text response
- Persist every recommendation (including fallbacks)

RULES:
❌ Backend output is untrusted text
❌ Never propagates a parse or backend error to the caller
✅ Any parse failure -> fixed fallback recommendation
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from basket_yield.domain.models import BASIS_POINTS, BasketDefinition, Recommendation, RiskTier
from basket_yield.domain.services.config_engine import default_basket_id
from basket_yield.domain.services.yield_calculator import (
    MAX_YIELD_BP,
    RISK_FREE_RATE,
    clamp,
    round_half_up,
)
from basket_yield.infrastructure.db.repositories.recommendation_repository import RecommendationRepository
from basket_yield.infrastructure.llm.types import RecommendationBackend
from basket_yield.utils.time import utc_now

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 50
DEFAULT_EXPECTED_YIELD_BP = 0
DEFAULT_RISK_SCORE = 50
DEFAULT_REASONING = "AI analysis completed"

FALLBACK_CONFIDENCE = 30
FALLBACK_EXPECTED_YIELD_BP = 1000
FALLBACK_RISK_SCORE = 50
FALLBACK_REASONING = "fallback"

TRADING_DAYS_PER_YEAR = 252


class MalformedRecommendation(ValueError):
    """Backend output could not be turned into a recommendation"""


# -------------------------------------------------------------------
# Parse outcome (sum type)
# -------------------------------------------------------------------

@dataclass(frozen=True)
class ParsedRecommendation:
    recommendation: Recommendation


@dataclass(frozen=True)
class FallbackRecommendation:
    recommendation: Recommendation
    error: str


ParseOutcome = Union[ParsedRecommendation, FallbackRecommendation]


def fallback_recommendation(
    baskets: Sequence[BasketDefinition],
    produced_at: datetime,
    user_id: Optional[int] = None,
) -> Recommendation:
    return Recommendation(
        recommended_basket_id=default_basket_id(list(baskets)),
        confidence=FALLBACK_CONFIDENCE,
        reasoning=FALLBACK_REASONING,
        expected_yield_bp=FALLBACK_EXPECTED_YIELD_BP,
        risk_score=FALLBACK_RISK_SCORE,
        produced_at=produced_at,
        is_fallback=True,
        user_id=user_id,
    )


def extract_first_json_object(text: str) -> Dict[str, Any]:
    """Return the first JSON object embedded in free text"""
    if not isinstance(text, str):
        raise MalformedRecommendation("Backend response is not text")

    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    raise MalformedRecommendation("No JSON object found in backend response")


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _bounded_int(value: Any, default: int, low: int, high: int, name: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise MalformedRecommendation(f"{name} must be numeric, got boolean")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%"))
        except ValueError as exc:
            raise MalformedRecommendation(f"{name} is not numeric: {value!r}") from exc
    else:
        raise MalformedRecommendation(f"{name} has unsupported type {type(value).__name__}")
    if not math.isfinite(number):
        raise MalformedRecommendation(f"{name} is not finite")
    return clamp(round_half_up(number), low, high)


def _valid_basket_id(value: Any, valid_ids: Sequence[int], default: int) -> int:
    """Integer ids inside the configured range pass; anything else becomes the default"""
    candidate: Optional[int] = None
    if isinstance(value, bool) or value is None:
        candidate = None
    elif isinstance(value, int):
        candidate = value
    elif isinstance(value, float) and math.isfinite(value) and value.is_integer():
        candidate = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            candidate = int(stripped)
    if candidate is not None and candidate in valid_ids:
        return candidate
    return default


def parse_recommendation(
    text: str,
    baskets: Sequence[BasketDefinition],
    produced_at: Optional[datetime] = None,
    user_id: Optional[int] = None,
) -> ParseOutcome:
    """
    Turn backend free text into a bounded recommendation.

    Never raises. Missing fields take their defaults and numeric fields are
    clamped; missing JSON or a non-numeric numeric field yields the fallback.
    """
    produced_at = produced_at or utc_now()
    try:
        data = extract_first_json_object(text)
        valid_ids = [b.basket_id for b in baskets]
        default_id = default_basket_id(list(baskets))

        reasoning = _pick(data, "reasoning", "reason")
        if not isinstance(reasoning, str) or not reasoning.strip():
            reasoning = DEFAULT_REASONING

        recommendation = Recommendation(
            recommended_basket_id=_valid_basket_id(
                _pick(data, "recommendedBasket", "recommended_basket", "recommended_basket_id"),
                valid_ids,
                default_id,
            ),
            confidence=_bounded_int(
                _pick(data, "confidence"), DEFAULT_CONFIDENCE, 0, 100, "confidence"
            ),
            reasoning=reasoning.strip(),
            expected_yield_bp=_bounded_int(
                _pick(data, "expectedYield", "expected_yield", "expected_yield_bp"),
                DEFAULT_EXPECTED_YIELD_BP,
                0,
                MAX_YIELD_BP,
                "expectedYield",
            ),
            risk_score=_bounded_int(
                _pick(data, "riskScore", "risk_score"), DEFAULT_RISK_SCORE, 0, 100, "riskScore"
            ),
            produced_at=produced_at,
            is_fallback=False,
            user_id=user_id,
        )
        return ParsedRecommendation(recommendation=recommendation)
    except Exception as exc:
        logger.error("Failed to parse recommendation response: %s | text=%r", exc, (text or "")[:500])
        return FallbackRecommendation(
            recommendation=fallback_recommendation(baskets, produced_at, user_id),
            error=str(exc),
        )


# -------------------------------------------------------------------
# Analysis helpers
# -------------------------------------------------------------------

def trend_direction(series: Sequence[float]) -> str:
    if len(series) < 2:
        return "stable"
    first, last = series[0], series[-1]
    if last > first:
        return "upward"
    if last < first:
        return "downward"
    return "stable"


def population_stdev(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def max_drawdown_pct(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    max_drawdown = 0.0
    peak = values[0]
    for value in values[1:]:
        if value > peak:
            peak = value
        elif peak > 0:
            max_drawdown = max(max_drawdown, (peak - value) / peak * 100)
    return max_drawdown


def sharpe_ratio(values: Sequence[float], risk_free_rate: float = RISK_FREE_RATE) -> float:
    returns = [
        (curr - prev) / prev
        for prev, curr in zip(values, values[1:])
        if prev != 0
    ]
    if len(returns) < 2:
        return 0.0
    mean_return = sum(returns) / len(returns)
    volatility = population_stdev(returns)
    if volatility <= 0:
        return 0.0
    return (mean_return - risk_free_rate / TRADING_DAYS_PER_YEAR) / volatility


def basket_volatility(asset_details: List[Dict[str, Any]]) -> float:
    """Simplified: each asset's volatility is taken as 10% of its yield, no correlations"""
    total_variance = 0.0
    for asset in asset_details:
        allocation = asset["allocation"] / BASIS_POINTS
        volatility = abs(asset["current_yield"]) * 0.1
        total_variance += (allocation * volatility) ** 2
    return math.sqrt(total_variance) * 100


def build_analysis(
    current_yields: Dict[str, int],
    historical_yields: Sequence[Dict[str, int]],
    baskets: Sequence[BasketDefinition],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Structured payload handed to the backend.

    historical_yields is ordered oldest first, one mapping per day.
    """
    now = now or utc_now()
    assets: Dict[str, Dict[str, Any]] = {}
    for symbol, current in current_yields.items():
        history = [day[symbol] for day in historical_yields if symbol in day]
        assets[symbol] = {
            "current": current,
            "historical": history,
            "trend": trend_direction(history),
        }

    basket_analysis: Dict[str, Any] = {}
    for basket in baskets:
        expected = 0.0
        details = []
        for asset in basket.assets:
            data = assets.get(asset.symbol)
            if data is None:
                continue
            contribution = data["current"] * asset.allocation_bp / BASIS_POINTS
            expected += contribution
            details.append(
                {
                    "symbol": asset.symbol,
                    "allocation": asset.allocation_bp,
                    "current_yield": data["current"],
                    "contribution": contribution,
                }
            )
        volatility = basket_volatility(details)
        basket_analysis[str(basket.basket_id)] = {
            "name": basket.name,
            "risk_tier": basket.risk_tier.value,
            "expected_yield": expected,
            "volatility": volatility,
            "risk_adjusted_yield": expected / (1 + volatility / 100),
            "asset_details": details,
        }

    market_trends: Dict[str, Any] = {}
    all_history: List[float] = []
    for symbol, data in assets.items():
        history = data["historical"]
        all_history.extend(history)
        if len(history) > 1:
            first, last = history[0], history[-1]
            market_trends[symbol] = {
                "trend_pct": ((last - first) / first * 100) if first else 0.0,
                "direction": trend_direction(history),
                "volatility": population_stdev(history),
            }

    risk_metrics = {"overall_volatility": 0.0, "max_drawdown": 0.0, "sharpe_ratio": 0.0}
    if len(all_history) > 1:
        risk_metrics = {
            "overall_volatility": population_stdev(all_history),
            "max_drawdown": max_drawdown_pct(all_history),
            "sharpe_ratio": sharpe_ratio(all_history),
        }

    return {
        "asset_yields": assets,
        "basket_analysis": basket_analysis,
        "market_trends": market_trends,
        "risk_metrics": risk_metrics,
        "timestamp": now.isoformat(),
    }


def build_prompt(
    analysis: Dict[str, Any],
    baskets: Sequence[BasketDefinition],
    risk_preference: Optional[RiskTier] = None,
) -> str:
    basket_lines = "\n".join(
        f"Basket {b.basket_id} - {b.name} ({b.risk_tier.value} Risk): {b.describe()}"
        for b in baskets
    )
    basket_ids = "|".join(str(b.basket_id) for b in baskets)
    preference = risk_preference.value if risk_preference else "No preference"
    return f"""
You are an expert DeFi yield optimization AI agent. Analyze the following market data and recommend the best basket allocation for optimal risk-adjusted returns.

MARKET DATA:
{json.dumps(analysis, indent=2, default=str)}

BASKET OPTIONS:
{basket_lines}

USER PREFERENCE: {preference}

REQUIREMENTS:
- Consider current yields, historical performance, and volatility
- Factor in market trends and risk metrics
- Provide confidence score (0-100)
- Explain reasoning clearly
- Recommend the basket with best risk-adjusted returns

RESPONSE FORMAT (JSON only):
{{
  "recommendedBasket": {basket_ids},
  "confidence": 0-100,
  "reasoning": "Detailed explanation of recommendation",
  "expectedYield": 0-{MAX_YIELD_BP},
  "riskScore": 0-100
}}
"""


# -------------------------------------------------------------------
# Engine
# -------------------------------------------------------------------

class RecommendationEngine:
    """
    Recommendation Engine
    Wraps the backend call with validation, fallback and persistence
    """

    def __init__(
        self,
        backend: RecommendationBackend,
        baskets: Sequence[BasketDefinition],
        session_factory=None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.backend = backend
        self.baskets = list(baskets)
        self.session_factory = session_factory
        self.clock = clock

    async def recommend(
        self,
        current_yields: Dict[str, int],
        historical_yields: Sequence[Dict[str, int]],
        risk_preference: Optional[RiskTier] = None,
        user_id: Optional[int] = None,
    ) -> Recommendation:
        now = self.clock()

        try:
            analysis = build_analysis(current_yields, historical_yields, self.baskets, now=now)
            prompt = build_prompt(analysis, self.baskets, risk_preference)
            text = await self.backend.generate(prompt)
        except Exception as exc:
            logger.error("Recommendation generation failed: %s", exc)
            outcome: ParseOutcome = FallbackRecommendation(
                recommendation=fallback_recommendation(self.baskets, now, user_id),
                error=str(exc),
            )
        else:
            outcome = parse_recommendation(text, self.baskets, produced_at=now, user_id=user_id)

        recommendation = outcome.recommendation
        await self._store(recommendation)

        logger.info(
            "AI recommendation generated: Basket %s with %s%% confidence%s",
            recommendation.recommended_basket_id,
            recommendation.confidence,
            " (fallback)" if recommendation.is_fallback else "",
        )
        return recommendation

    async def _store(self, recommendation: Recommendation) -> None:
        if self.session_factory is None:
            return
        try:
            async with self.session_factory() as session:
                await RecommendationRepository(session).create(recommendation)
                await session.commit()
        except Exception as exc:
            logger.error("Failed to store AI recommendation: %s", exc)
