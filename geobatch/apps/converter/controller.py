"""
Job Controller

Entry points for starting, resuming and resetting a conversion job:
- start(): reset prior state and run the first slice synchronously
- resume(): run the next slice of the stored job, if any
- reset(): drop state and pending continuations

resume_job() is the callback target the scheduler fires.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.base import BaseScheduler

from geobatch.apps.converter.checkpoint import CheckpointStore, RegionStore
from geobatch.apps.converter.continuation import ApschedulerContinuation, Continuation, open_scheduler
from geobatch.apps.converter.policy import BackoffPolicy
from geobatch.apps.converter.processor import RecordProcessor
from geobatch.apps.converter.runner import BatchRunner
from geobatch.utils.config import Settings, settings
from geobatch.utils.errors import ConfigurationError, OrphanedJobError
from geobatch.utils.geocoder import Geocoder, GoogleGeocoder
from geobatch.utils.grid import open_csv_grid
from geobatch.utils.kvstore import KeyValueStore, create_store
from geobatch.utils.schemas import REGION_WIDTH, DatasetRef, JobMode, JobState

logger = logging.getLogger(__name__)


def validate_dataset(mode: JobMode, dataset: DatasetRef) -> None:
    """
    Check a start request before any state is created.

    Raises:
        ConfigurationError: If the mode or region selection is unusable
    """
    if mode is JobMode.IDLE:
        raise ConfigurationError("Cannot start a job in idle mode")
    if dataset.column_count != REGION_WIDTH:
        raise ConfigurationError(
            f"Select exactly {REGION_WIDTH} columns (address, latitude, longitude); "
            f"got {dataset.column_count}"
        )
    if dataset.row_count < 1:
        raise ConfigurationError("Select at least one row")


class JobController:
    """Start/resume/reset for one job slot."""

    def __init__(
        self,
        checkpoints: CheckpointStore,
        continuation: Continuation,
        runner: BatchRunner,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.checkpoints = checkpoints
        self.continuation = continuation
        self.runner = runner
        self.clock = clock

    def start(self, mode: JobMode, dataset: DatasetRef) -> JobState:
        """
        Start a new job, replacing any previous one.

        Raises:
            ConfigurationError: If the request is invalid or the dataset cannot be opened
        """
        validate_dataset(mode, dataset)
        try:
            self.runner.grid_opener(dataset)
        except OrphanedJobError as e:
            raise ConfigurationError(str(e)) from e

        self.continuation.disarm()
        self.checkpoints.clear()

        state = JobState.begin(mode, dataset, started_at=self.clock(), job_id=self.checkpoints.job_id)
        self.checkpoints.save(state)

        logger.info(
            "Job started",
            extra={
                "job_id": state.job_id,
                "mode": mode.value,
                "source": dataset.source,
                "range": dataset.a1,
                "total_rows": state.total_rows,
            },
        )

        try:
            return self.runner.run_slice(state)
        except OrphanedJobError as e:
            self.checkpoints.clear()
            raise ConfigurationError(str(e)) from e
        except Exception:
            self._rearm_after_failure(state)
            raise

    def resume(self) -> JobState:
        """Run the next slice of the stored job; no-op when idle."""
        state = self.checkpoints.load()

        if state.is_idle:
            logger.info("Resume fired with no active job, ignoring", extra={"job_id": state.job_id})
            return state

        try:
            return self.runner.run_slice(state)
        except OrphanedJobError as e:
            logger.error(
                "Abandoning orphaned job",
                extra={"job_id": state.job_id, "error": str(e)},
            )
            self.reset()
            return JobState.idle(state.job_id)
        except Exception:
            self._rearm_after_failure(state)
            raise

    def _rearm_after_failure(self, state: JobState) -> None:
        # Checkpoint is untouched; the same slice runs again later
        logger.error(
            "Slice failed, re-arming continuation",
            extra={"job_id": state.job_id, "current_row": state.current_row},
            exc_info=True,
        )
        self.continuation.arm(self.runner.continuation_delay)

    def reset(self) -> None:
        """Disarm continuations and clear state, whether or not a job is active."""
        self.continuation.disarm()
        self.checkpoints.clear()
        logger.info("Job reset", extra={"job_id": self.checkpoints.job_id})

    def status(self) -> JobState:
        return self.checkpoints.load()


def build_controller(
    scheduler: BaseScheduler,
    geocoder: Geocoder,
    store: Optional[KeyValueStore] = None,
    job_id: Optional[str] = None,
    fired_id: Optional[str] = None,
    config: Optional[Settings] = None,
) -> JobController:
    """Wire a JobController from settings."""
    config = config or settings
    store = store or create_store(config)
    job_id = job_id or config.JOB_ID

    checkpoints = CheckpointStore(store, job_id=job_id, prefix=config.KEY_PREFIX)
    region = RegionStore(store, default=config.DEFAULT_REGION, prefix=config.KEY_PREFIX).get()
    continuation = ApschedulerContinuation(scheduler, job_id=job_id, fired_id=fired_id)

    processor = RecordProcessor(
        geocoder=geocoder,
        policy=BackoffPolicy.from_settings(config),
        region=region,
        request_pause=config.REQUEST_PAUSE_SECONDS,
        jitter=config.REQUEST_PAUSE_JITTER,
    )
    runner = BatchRunner(
        processor=processor,
        checkpoints=checkpoints,
        continuation=continuation,
        grid_opener=open_csv_grid,
        batch_size=config.BATCH_SIZE,
        continuation_delay=config.CONTINUATION_DELAY_SECONDS,
    )
    return JobController(checkpoints, continuation, runner)


def resume_job(job_id: Optional[str] = None, continuation_id: Optional[str] = None) -> None:
    """Scheduler callback: resume `job_id` from its checkpoint."""
    logger.info("Continuation fired", extra={"job_id": job_id, "continuation_id": continuation_id})

    with open_scheduler() as scheduler, GoogleGeocoder() as geocoder:
        controller = build_controller(scheduler, geocoder=geocoder, job_id=job_id, fired_id=continuation_id)
        controller.resume()
