"""
PROCESSING COORDINATOR (yield service)

RESPONSIBILITIES:
- Run at most one yield cycle at a time (single-flight)
- Orchestrate: fetch → compute → aggregate → persist/cache → recommend → audit
- Serve the latest basket snapshots and per-user rebalance evaluations

RULES:
❌ Never queue a cycle behind a running one; reject it as skipped
❌ Never hold the processing flag after run_cycle() returns or raises
❌ Only DataUnavailableError escapes run_cycle()
✅ A failing asset is logged and left out of this cycle's baskets
✅ Recommendation failures never undo snapshot persistence
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
import time
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from basket_yield.domain.errors import (
    DataUnavailableError,
    InvalidRequestError,
    UserAlreadyRegisteredError,
    UserNotFoundError,
)
from basket_yield.domain.models import (
    AssetYieldSample,
    AuditEvent,
    AuditEventType,
    BasketDefinition,
    BasketYieldSnapshot,
    CycleResult,
    CycleStatus,
    PricePoint,
    ProcessingStatus,
    RebalanceDecision,
    Recommendation,
    UserAccount,
)
from basket_yield.domain.models.events import ai_decision_event, yield_update_event
from basket_yield.domain.services.audit import AuditDispatcher
from basket_yield.domain.services.basket_aggregator import BasketAggregator, contributions_to_asset_yields
from basket_yield.domain.services.rebalance_gate import RebalanceDecisionGate
from basket_yield.domain.services.recommendation_engine import RecommendationEngine
from basket_yield.domain.services.yield_calculator import AssetYieldCalculator
from basket_yield.infrastructure.cache.yield_cache import YieldCache
from basket_yield.infrastructure.db.repositories.asset_yield_repository import AssetYieldRepository
from basket_yield.infrastructure.db.repositories.basket_history_repository import BasketHistoryRepository
from basket_yield.infrastructure.db.repositories.rebalance_repository import RebalanceTransactionRepository
from basket_yield.infrastructure.db.repositories.recommendation_repository import RecommendationRepository
from basket_yield.infrastructure.db.repositories.user_repository import UserRepository
from basket_yield.infrastructure.market_data.types import MarketDataClient
from basket_yield.utils.time import to_utc, utc_now

logger = logging.getLogger(__name__)

WALLET_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


class ProcessingState:
    """
    Process-wide cycle flag.

    is_processing goes False → True only through try_begin(); finish()
    always resets it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._is_processing = False
        self._last_completion: Optional[datetime] = None

    def try_begin(self) -> bool:
        with self._lock:
            if self._is_processing:
                return False
            self._is_processing = True
            return True

    def finish(self, completed_at: Optional[datetime] = None) -> None:
        with self._lock:
            self._is_processing = False
            if completed_at is not None:
                self._last_completion = completed_at

    def snapshot(self) -> ProcessingStatus:
        with self._lock:
            return ProcessingStatus(
                is_processing=self._is_processing,
                last_completion_timestamp=self._last_completion,
            )


class ProcessingCoordinator:
    def __init__(
        self,
        market_data: MarketDataClient,
        cache: YieldCache,
        recommendation_engine: RecommendationEngine,
        gate: RebalanceDecisionGate,
        audit: AuditDispatcher,
        session_factory,
        baskets: Sequence[BasketDefinition],
        tracked_symbols: Optional[Sequence[str]] = None,
        calculator: Optional[AssetYieldCalculator] = None,
        aggregator: Optional[BasketAggregator] = None,
        state: Optional[ProcessingState] = None,
        history_window: timedelta = timedelta(hours=24),
        recommendation_history: timedelta = timedelta(days=7),
        market_data_timeout: Optional[float] = 30.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.market_data = market_data
        self.cache = cache
        self.recommendation_engine = recommendation_engine
        self.gate = gate
        self.audit = audit
        self.session_factory = session_factory
        self.baskets = sorted(baskets, key=lambda b: b.basket_id)
        if tracked_symbols is None:
            tracked_symbols = []
            for basket in self.baskets:
                for symbol in basket.symbols:
                    if symbol not in tracked_symbols:
                        tracked_symbols.append(symbol)
        self.tracked_symbols = list(tracked_symbols)
        self.calculator = calculator or AssetYieldCalculator()
        self.aggregator = aggregator or BasketAggregator()
        self.state = state or ProcessingState()
        self.history_window = history_window
        self.recommendation_history = recommendation_history
        self.market_data_timeout = market_data_timeout
        self.clock = clock

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleResult:
        """
        Run one full yield cycle.

        Returns a skipped result immediately if a cycle is already running.
        Raises DataUnavailableError when no market data could be obtained.
        """
        if not self.state.try_begin():
            logger.warning("Yield processing already in progress, skipping")
            return CycleResult.skipped("already_running")

        completed_at = None
        started = time.monotonic()
        try:
            logger.info("Starting yield processing cycle")
            result = await self._run_cycle_body(started)
            completed_at = result.completed_at
            return result
        finally:
            self.state.finish(completed_at)

    async def _run_cycle_body(self, started: float) -> CycleResult:
        now = self.clock()

        # (1) fetch, reusing fresh cached samples
        cached = await self._load_fresh_samples(now)
        to_compute = [s for s in self.tracked_symbols if s not in cached]
        current, historical = await self._fetch_market_data(to_compute, cached, now)
        if not current and not historical and not cached:
            raise DataUnavailableError("No market data available for any tracked asset")

        # (2) compute per asset
        samples: Dict[str, AssetYieldSample] = dict(cached)
        failed: List[str] = []
        for symbol in to_compute:
            sample = await self._compute_asset(symbol, current, historical, now)
            if sample is None:
                failed.append(symbol)
            else:
                samples[symbol] = sample

        ordered_samples = [samples[s] for s in self.tracked_symbols if s in samples]

        # (3) aggregate
        snapshots = self.aggregator.aggregate(ordered_samples, self.baskets, computed_at=now)

        # (4) persist and cache snapshots
        history_persisted = await self._persist_snapshots(snapshots)
        for snapshot in snapshots:
            await self.cache.set_basket_snapshot(snapshot)

        # (5) recommend
        recommendation = await self._recommend_for_cycle(snapshots, now)

        # (6) audit
        events: List[AuditEvent] = [
            yield_update_event(s.basket_id, s.weighted_yield_bp, s.to_dict()) for s in snapshots
        ]
        if recommendation is not None:
            events.append(
                ai_decision_event(
                    recommendation.recommended_basket_id,
                    recommendation.confidence,
                    recommendation.reasoning,
                )
            )
        await self.audit.dispatch(events)

        # (7) done
        completed_at = self.clock()
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Yield processing completed in %dms (%d assets, %d cached, %d failed)",
            duration_ms,
            len(ordered_samples),
            len(cached),
            len(failed),
        )
        return CycleResult(
            status=CycleStatus.COMPLETED,
            samples=tuple(ordered_samples),
            snapshots=tuple(snapshots),
            recommendation=recommendation,
            failed_symbols=tuple(failed),
            cached_symbols=tuple(s for s in self.tracked_symbols if s in cached),
            history_persisted=history_persisted,
            completed_at=completed_at,
            duration_ms=duration_ms,
        )

    async def _load_fresh_samples(self, now: datetime) -> Dict[str, AssetYieldSample]:
        cached: Dict[str, AssetYieldSample] = {}
        for symbol in self.tracked_symbols:
            sample = await self.cache.get_fresh_asset_yield(symbol, now)
            if sample is not None:
                logger.debug("Using cached yield for %s", symbol)
                cached[symbol] = sample
        return cached

    async def _fetch_market_data(
        self,
        to_compute: List[str],
        cached: Dict[str, AssetYieldSample],
        now: datetime,
    ) -> Tuple[Dict[str, PricePoint], Dict[str, List[PricePoint]]]:
        """
        Fetch prices for the symbols that need recomputing.

        A failed fetch is fatal only when nothing is cached; otherwise the
        uncached symbols fail individually and the cycle continues.
        """
        if not to_compute:
            return {}, {}

        async def fetch():
            current = await self.market_data.fetch_current(to_compute)
            historical = await self.market_data.fetch_historical(
                to_compute, now - self.history_window, now
            )
            return current or {}, historical or {}

        try:
            if self.market_data_timeout:
                return await asyncio.wait_for(fetch(), timeout=self.market_data_timeout)
            return await fetch()
        except asyncio.TimeoutError as exc:
            logger.error("Market data fetch timed out after %ss", self.market_data_timeout)
            if not cached:
                raise DataUnavailableError("Market data fetch timed out") from exc
        except Exception as exc:
            logger.error("Market data fetch failed: %s", exc)
            if not cached:
                raise DataUnavailableError(f"Market data fetch failed: {exc}") from exc

        logger.warning(
            "Continuing with %d cached assets, %d assets could not be fetched",
            len(cached),
            len(to_compute),
        )
        return {}, {}

    async def _compute_asset(
        self,
        symbol: str,
        current: Dict[str, PricePoint],
        historical: Dict[str, List[PricePoint]],
        now: datetime,
    ) -> Optional[AssetYieldSample]:
        try:
            series = list(historical.get(symbol) or [])
            point = current.get(symbol)
            if point is not None and (not series or to_utc(point.ts) > to_utc(series[-1].ts)):
                series.append(point)
            if not series:
                logger.error("No market data returned for %s, skipping", symbol)
                return None

            sample = self.calculator.build_sample(symbol, series, computed_at=now)

            async with self.session_factory() as session:
                await AssetYieldRepository(session).create(sample)
                await session.commit()
            await self.cache.set_asset_yield(sample)

            logger.info("Stored yield data for %s: %s bps", symbol, sample.yield_bp)
            return sample
        except Exception as exc:
            logger.error("Failed to process yield for %s: %s", symbol, exc)
            return None

    async def _persist_snapshots(self, snapshots: Sequence[BasketYieldSnapshot]) -> bool:
        if not snapshots:
            return False
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await BasketHistoryRepository(session).create_batch(snapshots)
        except Exception as exc:
            logger.error("Failed to store basket history: %s", exc)
            return False
        logger.info("Stored %d basket snapshots", len(snapshots))
        return True

    async def _recommend_for_cycle(
        self,
        snapshots: Sequence[BasketYieldSnapshot],
        now: datetime,
    ) -> Optional[Recommendation]:
        try:
            current_yields = contributions_to_asset_yields(snapshots)
            historical_yields = await self._historical_asset_yields(now)
            return await self.recommendation_engine.recommend(current_yields, historical_yields)
        except Exception as exc:
            logger.error("Failed to generate AI recommendation: %s", exc)
            return None

    async def _historical_asset_yields(self, now: datetime) -> List[Dict[str, int]]:
        """
        Per-day asset yields from basket history, oldest first.

        Each day keeps the largest contribution per asset across that day's
        snapshots.
        """
        async with self.session_factory() as session:
            snapshots = await BasketHistoryRepository(session).get_since(now - self.recommendation_history)

        by_day: Dict[date, List[BasketYieldSnapshot]] = {}
        for snapshot in snapshots:
            by_day.setdefault(to_utc(snapshot.computed_at).date(), []).append(snapshot)
        return [contributions_to_asset_yields(by_day[day]) for day in sorted(by_day)]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_processing_status(self) -> ProcessingStatus:
        return self.state.snapshot()

    async def get_latest_basket_snapshots(self) -> List[BasketYieldSnapshot]:
        """Cache first; falls back to durable history unless every basket is cached"""
        cached = []
        for basket in self.baskets:
            snapshot = await self.cache.get_basket_snapshot(basket.basket_id)
            if snapshot is None:
                break
            cached.append(snapshot)
        else:
            if cached:
                return cached

        async with self.session_factory() as session:
            return await BasketHistoryRepository(session).get_latest_per_basket()

    async def get_latest_asset_yields(self) -> List[AssetYieldSample]:
        async with self.session_factory() as session:
            return await AssetYieldRepository(session).get_latest_per_symbol()

    async def get_recent_recommendations(self, limit: int = 10) -> List[Recommendation]:
        async with self.session_factory() as session:
            return await RecommendationRepository(session).get_recent(limit)

    async def get_rebalancing_history(self, user_id: int, limit: int = 10) -> List[dict]:
        async with self.session_factory() as session:
            return await RebalanceTransactionRepository(session).get_history(user_id, limit)

    async def get_user(self, user_id: int) -> UserAccount:
        async with self.session_factory() as session:
            user = await UserRepository(session).get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    # ------------------------------------------------------------------
    # Users and rebalancing
    # ------------------------------------------------------------------

    async def register_user(self, wallet_address: str, basket_id: int) -> UserAccount:
        if not WALLET_ADDRESS_RE.match(wallet_address or ""):
            raise InvalidRequestError(f"Invalid wallet address: {wallet_address}")
        basket = self._basket(basket_id)
        if basket is None:
            raise InvalidRequestError(f"Unknown basket id: {basket_id}")

        async with self.session_factory() as session:
            repo = UserRepository(session)
            if await repo.get_by_wallet(wallet_address) is not None:
                raise UserAlreadyRegisteredError(wallet_address)
            user = await repo.create(wallet_address, basket_id)
            await session.commit()

        logger.info("User registered: %s with basket %s", user.wallet_address, basket_id)
        await self.audit.record(
            AuditEvent(
                event_type=AuditEventType.USER_REGISTRATION,
                message=f"User {user.wallet_address} registered with {basket.risk_tier.value} risk basket {basket_id}",
                payload={
                    "wallet_address": user.wallet_address,
                    "selected_basket": basket_id,
                    "risk_tier": basket.risk_tier.value,
                },
                basket_id=basket_id,
                user_id=user.id,
            )
        )
        return user

    async def get_user_recommendation(self, user_id: int) -> Recommendation:
        """Fresh recommendation for one user, using their basket's risk tier"""
        user = await self.get_user(user_id)
        return await self._recommend_for_user(user)

    async def evaluate_and_maybe_rebalance(self, user_id: int) -> RebalanceDecision:
        user = await self.get_user(user_id)
        recommendation = await self._recommend_for_user(user)
        decision = await self.gate.evaluate(user, recommendation)
        logger.info(
            "Rebalance evaluation for user %s: %s (basket %s -> %s)",
            user_id,
            decision.reason.value,
            decision.from_basket_id,
            decision.to_basket_id,
        )
        return decision

    async def _recommend_for_user(self, user: UserAccount) -> Recommendation:
        now = self.clock()
        latest = await self.get_latest_asset_yields()
        current_yields = {s.symbol: s.yield_bp for s in latest}
        historical_yields = await self._historical_asset_yields(now)
        basket = self._basket(user.selected_basket)
        return await self.recommendation_engine.recommend(
            current_yields,
            historical_yields,
            risk_preference=basket.risk_tier if basket else None,
            user_id=user.id,
        )

    def _basket(self, basket_id: int) -> Optional[BasketDefinition]:
        for basket in self.baskets:
            if basket.basket_id == basket_id:
                return basket
        return None
