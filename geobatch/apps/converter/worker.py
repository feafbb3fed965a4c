"""
Continuation Worker - Fires Armed Continuations

Long-running process that executes the resume callbacks stored in the Redis
job store by start/resume invocations.

Features:
- AsyncIOScheduler over the shared Redis job store
- Heartbeat wakeup so jobs armed by other processes are picked up
- Graceful shutdown on SIGINT/SIGTERM

Usage:
    python -m geobatch.apps.converter worker
"""

import asyncio
import logging
import signal
from datetime import timezone

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from geobatch.apps.converter.continuation import create_jobstore
from geobatch.utils.config import settings

logger = logging.getLogger(__name__)


def heartbeat() -> None:
    """No-op job; running it makes the scheduler re-read the job store."""
    logger.debug("Worker heartbeat")


class ContinuationWorker:
    """
    Runs the scheduler that fires continuations.

    Handles:
    - APScheduler setup and management
    - Signal handling for graceful shutdown
    """

    def __init__(self, poll_seconds: int | None = None) -> None:
        """
        Initialize worker.

        Args:
            poll_seconds: Interval between job store re-reads
        """
        self.poll_seconds = poll_seconds or settings.SCHEDULER_POLL_SECONDS
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()

        logger.info(
            "ContinuationWorker initialized",
            extra={"poll_seconds": self.poll_seconds, "redis_url": settings.REDIS_URL},
        )

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""

        def signal_handler(signum: int, frame: object) -> None:
            logger.info(f"Received signal {signum}, initiating graceful shutdown")
            self.shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def start(self) -> None:
        """Run until a shutdown signal arrives."""
        self.setup_signal_handlers()

        self.scheduler = AsyncIOScheduler(
            jobstores={"default": create_jobstore(), "local": MemoryJobStore()},
            timezone=timezone.utc,
        )
        self.scheduler.add_job(
            heartbeat,
            trigger=IntervalTrigger(seconds=self.poll_seconds),
            id="heartbeat",
            name="Job store poll",
            jobstore="local",
            replace_existing=True,
        )

        self.scheduler.start()
        logger.info("Scheduler started, waiting for continuations...")

        pending = [job.id for job in self.scheduler.get_jobs(jobstore="default")]
        logger.info("Pending continuations at startup", extra={"count": len(pending), "ids": pending})

        await self.shutdown_event.wait()

        logger.info("Shutting down scheduler")
        self.scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")


async def main() -> None:
    """Main entry point for the worker."""
    worker = ContinuationWorker()

    try:
        await worker.start()
    except Exception as e:
        logger.error("Worker failed", extra={"error": str(e)}, exc_info=True)
        raise
