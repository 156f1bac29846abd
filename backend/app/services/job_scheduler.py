"""
Recurring-job registration behind a small interface so callers can be
driven by a fake scheduler in tests instead of the wall clock.
"""
import logging
import uuid
from typing import Awaitable, Callable, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

JobCallback = Callable[[], Awaitable[object]]


class JobScheduler(Protocol):
    def schedule(self, cron: str, timezone: str, callback: JobCallback) -> str: ...

    def cancel(self, handle: str) -> None: ...


class APSJobScheduler:
    """JobScheduler over APScheduler's AsyncIOScheduler.

    max_instances=1 keeps a slow run from overlapping the next firing in
    this process; coalesce folds missed firings into one.
    """

    def __init__(self, scheduler: AsyncIOScheduler):
        self.scheduler = scheduler

    def schedule(self, cron: str, timezone: str, callback: JobCallback) -> str:
        trigger = CronTrigger.from_crontab(cron, timezone=timezone)
        job = self.scheduler.add_job(
            callback,
            trigger,
            id=f"{getattr(callback, '__name__', 'job')}-{uuid.uuid4().hex[:8]}",
            max_instances=1,
            coalesce=True,
        )
        logger.info("Registered job %s (%s %s)", job.id, cron, timezone)
        return job.id

    def cancel(self, handle: str) -> None:
        try:
            self.scheduler.remove_job(handle)
        except JobLookupError:
            logger.warning("Job %s was already removed", handle)
