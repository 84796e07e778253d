import logging
import random
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from adventure.core.config import settings

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

LOADING_MESSAGES = [
    "The mists of fate are swirling...",
    "Forging a new path in the narrative...",
    "Painting your world with pixels and prose...",
    "Consulting the ancient oracles...",
    "The story is taking a dramatic turn...",
]
IMAGE_LOADING_MESSAGE = "Conjuring a vision of the scene..."


class LoadingTicker:
    """
    Rotates the flavor text shown while a turn is loading.

    Each loading phase owns one interval job. The job must be stopped on every
    exit from that phase, otherwise it keeps firing into later turns.
    """

    def __init__(self, scheduler: AsyncIOScheduler, interval_seconds: float = settings.LOADING_MESSAGE_INTERVAL_SECONDS):
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds

    def start(self, job_id: str, on_tick: Callable[[str], None]):
        async def tick():
            on_tick(random.choice(LOADING_MESSAGES))

        self.scheduler.add_job(
            tick,
            'interval',
            seconds=self.interval_seconds,
            id=job_id,
            replace_existing=True,
        )
        logger.debug("Loading ticker %s started.", job_id)

    def stop(self, job_id: Optional[str]):
        if job_id is None:
            return
        try:
            self.scheduler.remove_job(job_id)
            logger.debug("Loading ticker %s stopped.", job_id)
        except JobLookupError:
            pass

    def is_running(self, job_id: str) -> bool:
        return self.scheduler.get_job(job_id) is not None
