"""
FastAPI Main Application with Scheduler
Wires configuration, infrastructure and the yield service together
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from basket_yield.config import Settings, settings
from basket_yield.core.logging import setup_logging
from basket_yield.domain.errors import ConfigurationError
from basket_yield.domain.services.audit import AuditDispatcher, DatabaseAuditSink
from basket_yield.domain.services.config_engine import ConfigEngine
from basket_yield.domain.services.processing_coordinator import ProcessingCoordinator
from basket_yield.domain.services.rebalance_gate import RebalanceDecisionGate
from basket_yield.domain.services.recommendation_engine import RecommendationEngine
from basket_yield.infrastructure.cache.redis_cache import RedisCache
from basket_yield.infrastructure.cache.yield_cache import YieldCache
from basket_yield.infrastructure.db import database
from basket_yield.infrastructure.db.database import close_db, init_db
from basket_yield.infrastructure.execution.paper_executor import PaperSwapExecutor
from basket_yield.infrastructure.llm.http_backend import build_recommendation_backend
from basket_yield.infrastructure.market_data.pyth_provider import PythHermesProvider
from basket_yield.scheduler.scheduler import shutdown_scheduler, start_scheduler

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Global instances
config_engine: Optional[ConfigEngine] = None
redis_cache: Optional[RedisCache] = None
coordinator: Optional[ProcessingCoordinator] = None
scheduler = None


def resolve_config_dir(config_dir: str) -> Path:
    path = Path(config_dir)
    if path.is_absolute():
        return path
    return Path(__file__).parent.parent / path


def build_swap_executor(app_settings: Settings) -> PaperSwapExecutor:
    if app_settings.SWAP_EXECUTOR.lower() != "paper":
        raise ConfigurationError(f"Unsupported swap executor: {app_settings.SWAP_EXECUTOR}")
    return PaperSwapExecutor()


def build_coordinator(
    engine_config: ConfigEngine,
    cache: YieldCache,
    session_factory,
    app_settings: Settings,
) -> ProcessingCoordinator:
    """Assemble the yield service from settings and loaded baskets"""
    baskets = engine_config.baskets
    audit = AuditDispatcher(DatabaseAuditSink(session_factory))
    market_data = PythHermesProvider(
        base_url=app_settings.PYTH_HERMES_URL,
        price_feeds=engine_config.price_feeds,
        step=timedelta(minutes=app_settings.YIELD_HISTORY_STEP_MINUTES),
        timeout=app_settings.MARKET_DATA_TIMEOUT_SECONDS,
    )
    recommendation_engine = RecommendationEngine(
        backend=build_recommendation_backend(app_settings),
        baskets=baskets,
        session_factory=session_factory,
    )
    gate = RebalanceDecisionGate(
        executor=build_swap_executor(app_settings),
        audit=audit,
        session_factory=session_factory,
    )
    return ProcessingCoordinator(
        market_data=market_data,
        cache=cache,
        recommendation_engine=recommendation_engine,
        gate=gate,
        audit=audit,
        session_factory=session_factory,
        baskets=baskets,
        tracked_symbols=engine_config.tracked_symbols,
        history_window=timedelta(hours=app_settings.YIELD_HISTORY_HOURS),
        recommendation_history=timedelta(days=app_settings.RECOMMENDATION_HISTORY_DAYS),
        market_data_timeout=app_settings.MARKET_DATA_TIMEOUT_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Handles startup and shutdown of all services
    """
    global config_engine, redis_cache, coordinator, scheduler

    # ===================
    # STARTUP
    # ===================
    logger.info("Starting Basket Yield Assistant")

    # 1. Database
    await init_db()
    logger.info("Database initialized")

    # 2. Configuration
    config_engine = ConfigEngine(resolve_config_dir(settings.CONFIG_DIR))
    config_engine.load_all()

    # 3. Infrastructure and services
    redis_cache = RedisCache(settings.REDIS_URL, prefix=settings.REDIS_PREFIX, enabled=settings.REDIS_ENABLED)
    coordinator = build_coordinator(
        config_engine,
        YieldCache(redis_cache),
        database.async_session_factory,
        settings,
    )
    app.state.coordinator = coordinator
    app.state.redis_cache = redis_cache
    logger.info("Yield service initialized (%d baskets)", len(config_engine.baskets))

    # 4. Scheduler
    if settings.SCHEDULER_ENABLED:
        try:
            scheduler = start_scheduler(coordinator, settings.YIELD_CYCLE_INTERVAL_MINUTES)
        except Exception as e:
            logger.error("Failed to start scheduler: %s", e)
    else:
        logger.info("Scheduler disabled")

    logger.info("API Server: http://%s:%s", settings.API_HOST, settings.API_PORT)

    yield

    # ===================
    # SHUTDOWN
    # ===================
    logger.info("Shutting down Basket Yield Assistant")
    if scheduler:
        shutdown_scheduler()
        scheduler = None
    if redis_cache:
        await redis_cache.close()
    await close_db()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Basket Yield Assistant",
    description="Basket yield aggregation with AI-advised, confidence-gated rebalancing",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Database, cache, scheduler and processing status"""
    db_status = "disconnected"
    db_error = None
    try:
        if database.engine is None:
            db_status = "not_initialized"
        else:
            async with database.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            db_status = "connected"
    except Exception as exc:
        db_status = "error"
        db_error = str(exc)

    cache = getattr(app.state, "redis_cache", None)
    if cache is None or not cache.enabled:
        cache_status = "disabled"
    else:
        cache_status = "connected" if await cache.ping() else "error"

    scheduler_status = "disabled"
    if scheduler is not None:
        scheduler_status = "running" if scheduler.running else "stopped"

    service = getattr(app.state, "coordinator", None)
    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "service": "Basket Yield Assistant",
        "version": "1.0.0",
        "services": {
            "api": "running",
            "database": db_status,
            "cache": cache_status,
            "scheduler": scheduler_status,
        },
        "database_error": db_error,
        "processing": service.get_processing_status().to_dict() if service else None,
    }


# Import and include routers
from basket_yield.api.routes import rebalancing, recommendations, users, yields  # noqa: E402

app.include_router(yields.router, prefix="/api/v1/yields", tags=["Yields"])
app.include_router(recommendations.router, prefix="/api/v1/recommendations", tags=["Recommendations"])
app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
app.include_router(rebalancing.router, prefix="/api/v1/rebalancing", tags=["Rebalancing"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("basket_yield.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
