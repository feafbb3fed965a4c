"""
Continuation Scheduler

Arms a one-shot APScheduler job that calls the unattended resume entry point
after a delay. Jobs live in a Redis job store so they outlive the process
that armed them; the worker process fires them.

At most one continuation is pending per job: arm() always disarms first.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional, Protocol

import redis
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.redis import RedisJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger

from geobatch.utils.config import Settings, settings

logger = logging.getLogger(__name__)

RESUME_CALLBACK = "geobatch.apps.converter.controller:resume_job"


class Continuation(Protocol):
    def arm(self, delay: float) -> None: ...

    def disarm(self) -> None: ...


def create_jobstore(config: Optional[Settings] = None) -> RedisJobStore:
    """Redis job store shared by every process that arms or fires continuations."""
    config = config or settings
    return RedisJobStore(
        jobs_key=f"{config.KEY_PREFIX}:apscheduler.jobs",
        run_times_key=f"{config.KEY_PREFIX}:apscheduler.run_times",
        connection_pool=redis.ConnectionPool.from_url(config.REDIS_URL),
    )


@contextmanager
def open_scheduler(config: Optional[Settings] = None) -> Iterator[BackgroundScheduler]:
    """
    Yield a paused scheduler bound to the shared job store.

    Paused schedulers write jobs to the store but never run them, which is
    what short-lived CLI invocations and resume callbacks need.
    """
    scheduler = BackgroundScheduler(jobstores={"default": create_jobstore(config)}, timezone=timezone.utc)
    scheduler.start(paused=True)
    try:
        yield scheduler
    finally:
        scheduler.shutdown(wait=False)


class ApschedulerContinuation:
    """Continuation backed by an APScheduler scheduler."""

    def __init__(
        self,
        scheduler: BaseScheduler,
        job_id: Optional[str] = None,
        fired_id: Optional[str] = None,
        callback: str = RESUME_CALLBACK,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        """
        Args:
            scheduler: Scheduler holding the continuation jobs
            job_id: Converter job the continuations resume
            fired_id: Id of the continuation currently running, if any. The
                scheduler removes it itself once the run is submitted.
            callback: Textual reference to the resume entry point
            clock: Source of the current time
        """
        self.scheduler = scheduler
        self.job_id = job_id or settings.JOB_ID
        self.fired_id = fired_id
        self.callback = callback
        self.clock = clock
        self.prefix = f"{self.job_id}:continuation:"

    def pending(self) -> list:
        return [
            job
            for job in self.scheduler.get_jobs()
            if job.id.startswith(self.prefix) and job.id != self.fired_id
        ]

    def disarm(self) -> None:
        """Remove every pending continuation for this job. Safe to call when none exist."""
        for job in self.pending():
            try:
                self.scheduler.remove_job(job.id)
            except JobLookupError:
                # Fired or removed by another process in the meantime
                continue
            logger.info("Continuation disarmed", extra={"job_id": self.job_id, "continuation_id": job.id})

    def arm(self, delay: float) -> str:
        """
        Schedule one resume call `delay` seconds from now.

        Returns:
            Id of the scheduled continuation
        """
        self.disarm()

        continuation_id = f"{self.prefix}{uuid.uuid4().hex}"
        run_date = self.clock() + timedelta(seconds=delay)

        self.scheduler.add_job(
            self.callback,
            trigger=DateTrigger(run_date=run_date, timezone=timezone.utc),
            id=continuation_id,
            name=f"Resume geocoding job {self.job_id}",
            kwargs={"job_id": self.job_id, "continuation_id": continuation_id},
            misfire_grace_time=None,
            coalesce=True,
        )

        logger.info(
            "Continuation armed",
            extra={"job_id": self.job_id, "continuation_id": continuation_id, "run_date": run_date.isoformat()},
        )
        return continuation_id
