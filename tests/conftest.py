from pathlib import Path
from typing import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from basket_yield.api.routes import rebalancing, recommendations, users, yields
from basket_yield.domain.services.audit import AuditDispatcher
from basket_yield.domain.services.config_engine import ConfigEngine
from basket_yield.domain.services.processing_coordinator import ProcessingCoordinator
from basket_yield.domain.services.rebalance_gate import RebalanceDecisionGate
from basket_yield.domain.services.recommendation_engine import RecommendationEngine
from basket_yield.infrastructure.cache.yield_cache import YieldCache
from basket_yield.infrastructure.db import models  # noqa: F401
from basket_yield.infrastructure.db.database import Base
from tests.support import (
    NOW,
    FakeBackend,
    FakeMarketData,
    FakeSwapExecutor,
    InMemoryCacheStore,
    RecordingAuditSink,
    price_series,
    recommendation_text,
)

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


# -------------------------------------------------------------------
# Database
# -------------------------------------------------------------------

@pytest.fixture()
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# -------------------------------------------------------------------
# Service wiring
# -------------------------------------------------------------------

@pytest.fixture(scope="session")
def config_engine() -> ConfigEngine:
    engine = ConfigEngine(CONFIG_DIR)
    engine.load_all()
    return engine


@pytest.fixture(scope="session")
def baskets(config_engine):
    return config_engine.baskets


@pytest.fixture()
def cache_store():
    return InMemoryCacheStore()


@pytest.fixture()
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture()
def backend():
    return FakeBackend(recommendation_text(2, 85))


@pytest.fixture()
def swap_executor():
    return FakeSwapExecutor()


@pytest.fixture()
def market_data():
    flat = [100, 100, 100]
    volatile = [100, 110, 99]
    return FakeMarketData(
        historical={
            "USDC": price_series("USDC", [1, 1, 1]),
            "ETH": price_series("ETH", volatile),
            "BTC": price_series("BTC", flat),
            "SOL": price_series("SOL", volatile),
            "LINK": price_series("LINK", flat),
            "AVAX": price_series("AVAX", flat),
            "MATIC": price_series("MATIC", flat),
        },
    )


@pytest.fixture()
def build_coordinator(session_factory, baskets, cache_store, audit_sink, backend, swap_executor):
    """Factory so tests can swap single collaborators"""

    def _build(market, **overrides) -> ProcessingCoordinator:
        clock = overrides.pop("clock", lambda: NOW)
        audit = AuditDispatcher(overrides.pop("audit_sink", audit_sink))
        engine = RecommendationEngine(
            backend=overrides.pop("backend", backend),
            baskets=baskets,
            session_factory=session_factory,
            clock=clock,
        )
        gate = RebalanceDecisionGate(
            executor=overrides.pop("executor", swap_executor),
            audit=audit,
            session_factory=session_factory,
            clock=clock,
        )
        return ProcessingCoordinator(
            market_data=market,
            cache=YieldCache(overrides.pop("cache_store", cache_store)),
            recommendation_engine=engine,
            gate=gate,
            audit=audit,
            session_factory=session_factory,
            baskets=baskets,
            clock=clock,
            **overrides,
        )

    return _build


@pytest.fixture()
def coordinator(build_coordinator, market_data) -> ProcessingCoordinator:
    return build_coordinator(market_data)


@pytest.fixture()
async def app(coordinator) -> FastAPI:
    app = FastAPI()
    app.include_router(yields.router, prefix="/api/v1/yields", tags=["Yields"])
    app.include_router(recommendations.router, prefix="/api/v1/recommendations", tags=["Recommendations"])
    app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
    app.include_router(rebalancing.router, prefix="/api/v1/rebalancing", tags=["Rebalancing"])
    app.state.coordinator = coordinator
    return app


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
