"""
SCHEDULER BOOTSTRAP

Runs the yield cycle on an interval with APScheduler.
Orchestration only: the job calls ProcessingCoordinator.run_cycle() and
logs the outcome. Manual refreshes share the coordinator's single-flight
guard, so overlapping triggers are skipped there.
"""

import logging
from typing import Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from basket_yield.domain.errors import DataUnavailableError
from basket_yield.domain.models import CycleResult, CycleStatus
from basket_yield.domain.services.processing_coordinator import ProcessingCoordinator

_logger = logging.getLogger(__name__)

JOB_ID = "yield_cycle_job"

_SCHEDULER: Optional[AsyncIOScheduler] = None


async def run_yield_cycle_job(coordinator: ProcessingCoordinator) -> Optional[CycleResult]:
    """Job wrapper: never lets a cycle failure reach APScheduler"""
    _logger.info("Running scheduled yield cycle")
    try:
        result = await coordinator.run_cycle()
    except DataUnavailableError as exc:
        _logger.warning("Scheduled yield cycle aborted: %s", exc)
        return None
    except Exception as exc:
        _logger.error("Scheduled yield cycle failed: %s", exc, exc_info=True)
        return None

    if result.status == CycleStatus.SKIPPED:
        _logger.info("Scheduled yield cycle skipped: %s", result.reason)
    return result


def start_scheduler(coordinator: ProcessingCoordinator, interval_minutes: int = 5) -> AsyncIOScheduler:
    """
    Start the scheduler and register the yield cycle job.
    Must be called from inside a running event loop.
    """
    global _SCHEDULER

    if _SCHEDULER is not None:
        return _SCHEDULER

    scheduler = AsyncIOScheduler(timezone=pytz.utc)
    scheduler.add_job(
        run_yield_cycle_job,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[coordinator],
        id=JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    _SCHEDULER = scheduler

    _logger.info("Scheduler started: yield cycle every %s minutes", interval_minutes)
    return scheduler


def shutdown_scheduler() -> None:
    global _SCHEDULER

    if _SCHEDULER is None:
        return
    _SCHEDULER.shutdown(wait=False)
    _SCHEDULER = None
    _logger.info("Scheduler stopped")
