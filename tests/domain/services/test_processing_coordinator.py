import asyncio
from datetime import timedelta

import pytest

from basket_yield.domain.errors import DataUnavailableError, InvalidRequestError, UserAlreadyRegisteredError
from basket_yield.domain.models import AssetYieldSample, AuditEventType, CycleStatus
from basket_yield.infrastructure.db.repositories.asset_yield_repository import AssetYieldRepository
from basket_yield.infrastructure.db.repositories.basket_history_repository import BasketHistoryRepository
from tests.support import NOW, FakeBackend, FakeMarketData, InMemoryCacheStore, RecordingAuditSink

WALLET = "0x" + "Ab" * 20


def market_without(market_data, *symbols):
    return FakeMarketData(historical={s: v for s, v in market_data.historical.items() if s not in symbols})


async def stored_snapshots(session_factory):
    async with session_factory() as session:
        return await BasketHistoryRepository(session).get_latest_per_basket()


# -------------------------------------------------------------------
# Full cycle
# -------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cycle_computes_persists_and_caches(coordinator, cache_store, session_factory):
    result = await coordinator.run_cycle()

    assert result.status == CycleStatus.COMPLETED
    assert [s.symbol for s in result.samples] == ["USDC", "ETH", "BTC", "SOL", "LINK", "AVAX", "MATIC"]
    assert [s.weighted_yield_bp for s in result.snapshots] == [205, 605, 405]
    assert [c.contribution_bp for c in result.snapshots[0].contributions] == [3, 201, 1]
    assert result.snapshots[0].simple_average_yield_bp == 68
    assert result.failed_symbols == ()
    assert result.history_persisted is True

    assert cache_store.ttls["basket-yield:1"] == 300
    assert cache_store.data["asset-yield:ETH"]["yield_bp"] == 1005

    stored = await stored_snapshots(session_factory)
    assert [s.weighted_yield_bp for s in stored] == [205, 605, 405]
    async with session_factory() as session:
        samples = await AssetYieldRepository(session).get_latest_per_symbol()
    assert len(samples) == 7


@pytest.mark.asyncio
async def test_cycle_produces_recommendation_and_audit_trail(coordinator, audit_sink):
    result = await coordinator.run_cycle()

    assert result.recommendation.recommended_basket_id == 2
    assert result.recommendation.confidence == 85
    types = [e.event_type for e in audit_sink.events]
    assert types == [AuditEventType.YIELD_UPDATE] * 3 + [AuditEventType.AI_DECISION]
    assert audit_sink.events[1].message == "Yield updated: Basket 1 weighted yield 605 bps"

    recent = await coordinator.get_recent_recommendations()
    assert len(recent) == 1


@pytest.mark.asyncio
async def test_completion_timestamp_recorded(coordinator):
    assert coordinator.get_processing_status().last_completion_timestamp is None

    await coordinator.run_cycle()

    status = coordinator.get_processing_status()
    assert status.is_processing is False
    assert status.last_completion_timestamp == NOW


# -------------------------------------------------------------------
# Single flight
# -------------------------------------------------------------------

@pytest.mark.asyncio
async def test_concurrent_cycle_is_skipped(build_coordinator, market_data):
    market = FakeMarketData(historical=market_data.historical, gate=asyncio.Event())
    coordinator = build_coordinator(market)

    first = asyncio.create_task(coordinator.run_cycle())
    await market.entered.wait()
    assert coordinator.get_processing_status().is_processing is True

    second = await coordinator.run_cycle()

    assert second.status == CycleStatus.SKIPPED
    assert second.reason == "already_running"

    market.gate.set()
    result = await first

    assert result.status == CycleStatus.COMPLETED
    assert market.fetch_current_calls == 1
    assert coordinator.get_processing_status().is_processing is False


@pytest.mark.asyncio
async def test_flag_released_after_data_unavailable(build_coordinator, market_data):
    failing = build_coordinator(FakeMarketData(error=ConnectionError("hermes down")))

    with pytest.raises(DataUnavailableError):
        await failing.run_cycle()

    assert failing.get_processing_status().is_processing is False
    assert failing.get_processing_status().last_completion_timestamp is None

    # same state object, next cycle runs normally
    retry = build_coordinator(market_data, state=failing.state)
    result = await retry.run_cycle()
    assert result.status == CycleStatus.COMPLETED


@pytest.mark.asyncio
async def test_market_data_timeout_is_data_unavailable(build_coordinator):
    stuck = FakeMarketData(gate=asyncio.Event())
    coordinator = build_coordinator(stuck, market_data_timeout=0.05)

    with pytest.raises(DataUnavailableError):
        await coordinator.run_cycle()

    assert coordinator.get_processing_status().is_processing is False


@pytest.mark.asyncio
async def test_no_data_at_all_writes_nothing(build_coordinator, cache_store, session_factory, audit_sink):
    coordinator = build_coordinator(FakeMarketData())

    with pytest.raises(DataUnavailableError):
        await coordinator.run_cycle()

    assert not [k for k in cache_store.data if k.startswith("basket-yield:")]
    assert await stored_snapshots(session_factory) == []
    assert audit_sink.events == []


# -------------------------------------------------------------------
# Cache reuse
# -------------------------------------------------------------------

@pytest.mark.asyncio
async def test_fresh_cached_sample_is_reused(build_coordinator, market_data, cache_store):
    cached = AssetYieldSample(symbol="ETH", yield_bp=777, source_timestamp=NOW - timedelta(minutes=3))
    cache_store.data["asset-yield:ETH"] = cached.to_dict()
    coordinator = build_coordinator(market_data)

    result = await coordinator.run_cycle()

    assert "ETH" not in market_data.historical_symbols[0]
    assert result.cached_symbols == ("ETH",)
    conservative = result.snapshots[0]
    # 777 * 0.2
    assert [c.contribution_bp for c in conservative.contributions] == [3, 155, 1]


@pytest.mark.asyncio
async def test_stale_cached_sample_is_recomputed(build_coordinator, market_data, cache_store):
    stale = AssetYieldSample(symbol="ETH", yield_bp=777, source_timestamp=NOW - timedelta(minutes=6))
    cache_store.data["asset-yield:ETH"] = stale.to_dict()

    result = await build_coordinator(market_data).run_cycle()

    assert "ETH" in market_data.historical_symbols[0]
    assert result.cached_symbols == ()
    assert result.snapshots[0].contributions[1].asset_yield_bp == 1005


@pytest.mark.asyncio
async def test_second_cycle_within_window_skips_historical_fetch(coordinator, market_data):
    await coordinator.run_cycle()
    result = await coordinator.run_cycle()

    assert market_data.fetch_historical_calls == 1
    assert market_data.fetch_current_calls == 1
    assert len(result.cached_symbols) == 7
    assert [s.weighted_yield_bp for s in result.snapshots] == [205, 605, 405]


@pytest.mark.asyncio
async def test_fully_cached_cycle_survives_market_outage(coordinator, build_coordinator):
    await coordinator.run_cycle()
    down = FakeMarketData(error=ConnectionError("hermes down"))

    result = await build_coordinator(down, state=coordinator.state).run_cycle()

    assert result.status == CycleStatus.COMPLETED
    assert result.cached_symbols == ("USDC", "ETH", "BTC", "SOL", "LINK", "AVAX", "MATIC")
    assert result.failed_symbols == ()
    assert [s.weighted_yield_bp for s in result.snapshots] == [205, 605, 405]
    assert down.fetch_current_calls == 0
    assert down.fetch_historical_calls == 0


@pytest.mark.asyncio
async def test_partially_cached_cycle_survives_market_outage(build_coordinator, cache_store):
    cached = AssetYieldSample(symbol="ETH", yield_bp=1005, source_timestamp=NOW - timedelta(minutes=1))
    cache_store.data["asset-yield:ETH"] = cached.to_dict()
    down = FakeMarketData(error=ConnectionError("hermes down"))

    result = await build_coordinator(down).run_cycle()

    assert result.status == CycleStatus.COMPLETED
    assert result.cached_symbols == ("ETH",)
    assert result.failed_symbols == ("USDC", "BTC", "SOL", "LINK", "AVAX", "MATIC")
    assert [c.symbol for c in result.snapshots[0].contributions] == ["ETH"]
    assert down.fetch_current_calls == 1


# -------------------------------------------------------------------
# Degraded collaborators
# -------------------------------------------------------------------

@pytest.mark.asyncio
async def test_asset_without_data_is_left_out(build_coordinator, market_data):
    coordinator = build_coordinator(market_without(market_data, "SOL"))

    result = await coordinator.run_cycle()

    assert result.failed_symbols == ("SOL",)
    balanced = result.snapshots[1]
    assert "SOL" not in [c.symbol for c in balanced.contributions]
    # 402 + 1.5 + 0.5
    assert balanced.weighted_yield_bp == 404


@pytest.mark.asyncio
async def test_asset_write_failure_is_left_out(coordinator, cache_store, session_factory, monkeypatch):
    original = AssetYieldRepository.create

    async def create(self, sample):
        if sample.symbol == "SOL":
            raise RuntimeError("disk full")
        return await original(self, sample)

    monkeypatch.setattr(AssetYieldRepository, "create", create)

    result = await coordinator.run_cycle()

    assert result.status == CycleStatus.COMPLETED
    assert result.failed_symbols == ("SOL",)
    assert "asset-yield:SOL" not in cache_store.data
    assert "SOL" not in [c.symbol for c in result.snapshots[1].contributions]
    assert result.snapshots[1].weighted_yield_bp == 404
    async with session_factory() as session:
        stored = await AssetYieldRepository(session).get_latest_per_symbol()
    assert "SOL" not in {s.symbol for s in stored}


@pytest.mark.asyncio
async def test_history_batch_is_all_or_nothing(coordinator, cache_store, session_factory, monkeypatch):
    original = BasketHistoryRepository.create_batch

    async def create_batch(self, snapshots):
        await original(self, snapshots[:1])
        raise RuntimeError("connection reset")

    monkeypatch.setattr(BasketHistoryRepository, "create_batch", create_batch)

    result = await coordinator.run_cycle()

    assert result.status == CycleStatus.COMPLETED
    assert result.history_persisted is False
    assert await stored_snapshots(session_factory) == []
    assert cache_store.data["basket-yield:0"]["weighted_yield_bp"] == 205
    assert [s.weighted_yield_bp for s in await coordinator.get_latest_basket_snapshots()] == [205, 605, 405]


@pytest.mark.asyncio
async def test_cache_outage_does_not_abort_cycle(build_coordinator, market_data, session_factory):
    coordinator = build_coordinator(market_data, cache_store=InMemoryCacheStore(fail=True))

    result = await coordinator.run_cycle()

    assert result.status == CycleStatus.COMPLETED
    assert len(await stored_snapshots(session_factory)) == 3
    # cache misses fall through to durable history
    snapshots = await coordinator.get_latest_basket_snapshots()
    assert [s.weighted_yield_bp for s in snapshots] == [205, 605, 405]


@pytest.mark.asyncio
async def test_backend_failure_keeps_snapshots(build_coordinator, market_data, session_factory, audit_sink):
    coordinator = build_coordinator(market_data, backend=FakeBackend(error=TimeoutError("llm timeout")))

    result = await coordinator.run_cycle()

    assert result.recommendation.is_fallback is True
    assert result.recommendation.confidence == 30
    assert len(await stored_snapshots(session_factory)) == 3
    assert audit_sink.events[-1].event_type == AuditEventType.AI_DECISION


@pytest.mark.asyncio
async def test_audit_outage_does_not_abort_cycle(build_coordinator, market_data):
    coordinator = build_coordinator(market_data, audit_sink=RecordingAuditSink(fail=True))

    result = await coordinator.run_cycle()

    assert result.status == CycleStatus.COMPLETED


# -------------------------------------------------------------------
# Queries
# -------------------------------------------------------------------

@pytest.mark.asyncio
async def test_latest_snapshots_served_from_cache(coordinator, cache_store):
    result = await coordinator.run_cycle()

    assert await coordinator.get_latest_basket_snapshots() == list(result.snapshots)


@pytest.mark.asyncio
async def test_latest_snapshots_fall_back_to_history(coordinator, cache_store):
    await coordinator.run_cycle()
    cache_store.data.clear()

    snapshots = await coordinator.get_latest_basket_snapshots()

    assert [s.basket_id for s in snapshots] == [0, 1, 2]
    assert [s.weighted_yield_bp for s in snapshots] == [205, 605, 405]
    assert snapshots[0].computed_at == NOW


@pytest.mark.asyncio
async def test_latest_snapshots_empty_before_first_cycle(coordinator):
    assert await coordinator.get_latest_basket_snapshots() == []


# -------------------------------------------------------------------
# Registration
# -------------------------------------------------------------------

@pytest.mark.asyncio
async def test_register_user_lowercases_wallet_and_audits(coordinator, audit_sink):
    user = await coordinator.register_user(WALLET, 1)

    assert user.wallet_address == WALLET.lower()
    assert user.selected_basket == 1
    assert (await coordinator.get_user(user.id)).wallet_address == WALLET.lower()
    assert audit_sink.events[-1].event_type == AuditEventType.USER_REGISTRATION
    assert audit_sink.events[-1].user_id == user.id


@pytest.mark.asyncio
async def test_register_user_rejects_duplicates(coordinator):
    await coordinator.register_user(WALLET, 0)

    with pytest.raises(UserAlreadyRegisteredError):
        await coordinator.register_user(WALLET.lower(), 2)


@pytest.mark.asyncio
@pytest.mark.parametrize("wallet, basket", [("0x123", 0), ("not-a-wallet", 0), (WALLET, 9)])
async def test_register_user_validates_input(coordinator, wallet, basket):
    with pytest.raises(InvalidRequestError):
        await coordinator.register_user(wallet, basket)
