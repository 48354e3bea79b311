from datetime import timedelta

import pytest

from basket_yield.domain.models import AssetContribution, AssetYieldSample, BasketYieldSnapshot, Recommendation
from basket_yield.infrastructure.db.repositories.asset_yield_repository import AssetYieldRepository
from basket_yield.infrastructure.db.repositories.basket_history_repository import BasketHistoryRepository
from basket_yield.infrastructure.db.repositories.rebalance_repository import RebalanceTransactionRepository
from basket_yield.infrastructure.db.repositories.recommendation_repository import RecommendationRepository
from basket_yield.infrastructure.db.repositories.user_repository import UserRepository
from tests.support import NOW


def snapshot(basket_id, weighted, computed_at=NOW):
    return BasketYieldSnapshot(
        basket_id=basket_id,
        basket_name=f"Basket {basket_id}",
        simple_average_yield_bp=weighted // 3,
        weighted_yield_bp=weighted,
        computed_at=computed_at,
        contributions=(AssetContribution("ETH", 2000, weighted * 5, weighted),),
    )


@pytest.mark.asyncio
@pytest.mark.integration
async def test_asset_yield_latest_per_symbol(db_session):
    repo = AssetYieldRepository(db_session)
    await repo.create(AssetYieldSample("ETH", 900, NOW - timedelta(hours=1), volatility=0.09))
    await repo.create(AssetYieldSample("ETH", 1005, NOW, volatility=0.1))
    await repo.create(AssetYieldSample("BTC", 5, NOW - timedelta(hours=2)))
    await db_session.commit()

    latest = await repo.get_latest_per_symbol()

    assert [(s.symbol, s.yield_bp) for s in latest] == [("BTC", 5), ("ETH", 1005)]
    assert latest[1].source_timestamp == NOW
    assert (await repo.get_latest("ETH")).volatility == pytest.approx(0.1)
    assert await repo.get_latest("DOGE") is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_basket_history_batch_and_latest(db_session):
    repo = BasketHistoryRepository(db_session)
    earlier = NOW - timedelta(minutes=5)
    await repo.create_batch([snapshot(0, 200, earlier), snapshot(1, 600, earlier)])
    await repo.create_batch([snapshot(0, 205), snapshot(1, 605)])
    await db_session.commit()

    latest = await repo.get_latest_per_basket()

    assert [(s.basket_id, s.weighted_yield_bp) for s in latest] == [(0, 205), (1, 605)]
    assert latest[0].contributions == (AssetContribution("ETH", 2000, 1025, 205),)

    since = await repo.get_since(NOW - timedelta(minutes=1))
    assert [s.weighted_yield_bp for s in since] == [205, 605]
    oldest_first = await repo.get_since(earlier)
    assert oldest_first[0].computed_at == earlier


@pytest.mark.asyncio
@pytest.mark.integration
async def test_recommendation_history_newest_first(db_session):
    repo = RecommendationRepository(db_session)
    for minutes, basket in [(10, 0), (5, 1), (0, 2)]:
        await repo.create(
            Recommendation(
                recommended_basket_id=basket,
                confidence=80,
                reasoning="r",
                expected_yield_bp=700,
                risk_score=40,
                produced_at=NOW - timedelta(minutes=minutes),
                user_id=7 if basket == 1 else None,
            )
        )
    await db_session.commit()

    recent = await repo.get_recent(limit=2)

    assert [r.recommended_basket_id for r in recent] == [2, 1]
    assert (await repo.get_latest_for_user(7)).recommended_basket_id == 1
    assert await repo.get_latest_for_user(8) is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_user_and_rebalance_transactions(db_session):
    users = UserRepository(db_session)
    user = await users.create("0xABCDEF" + "0" * 34, 0)

    assert user.wallet_address == "0xabcdef" + "0" * 34
    assert (await users.get_by_wallet("0xAbCdEf" + "0" * 34)).id == user.id
    assert await users.update_basket(user.id, 2) is True
    assert (await users.get(user.id)).selected_basket == 2
    assert await users.update_basket(999, 1) is False

    txs = RebalanceTransactionRepository(db_session)
    done = await txs.create_pending(user.id, 0, 2, 85)
    await txs.mark_completed(done, NOW, tx_reference="0xfeed", gas_used=21000)
    failed = await txs.create_pending(user.id, 2, 1, 90)
    await txs.mark_failed(failed, NOW, "slippage")
    await db_session.commit()

    history = await txs.get_history(user.id)

    by_id = {h["id"]: h for h in history}
    assert by_id[done]["status"] == "completed"
    assert by_id[done]["tx_reference"] == "0xfeed"
    assert by_id[done]["completed_at"] == NOW.isoformat()
    assert by_id[failed]["status"] == "failed"
    assert by_id[failed]["error_message"] == "slippage"
    assert history[0]["id"] == failed
