from __future__ import annotations

from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from lift_feed.config import SchedulerConfig
from lift_feed.logging import get_logger

logger = get_logger(__name__)

JOB_ID = "refresh-all-kinds"


def build_scheduler(job: Callable[[], None], config: SchedulerConfig) -> Optional[AsyncIOScheduler]:
    if not config.enabled:
        logger.info("scheduler.disabled")
        return None

    scheduler = AsyncIOScheduler()
    trigger = IntervalTrigger(minutes=config.interval_minutes)
    scheduler.add_job(job, trigger=trigger, id=JOB_ID, max_instances=1, coalesce=True)
    logger.info("scheduler.configured", interval_minutes=config.interval_minutes)
    return scheduler
