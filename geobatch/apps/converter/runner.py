"""
Batch Runner

Processes one bounded slice of a job's rows per invocation, then either
checkpoints and arms a continuation, or finalizes the job.

Slices are sized so BATCH_SIZE x worst-case row latency (retries included)
fits inside one host invocation. The checkpoint is written once per slice,
after the grid is flushed; a crash mid-slice leaves the previous checkpoint
in place and the slice is redone on resume.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from geobatch.apps.converter.checkpoint import CheckpointStore
from geobatch.apps.converter.continuation import Continuation
from geobatch.apps.converter.processor import RecordProcessor
from geobatch.utils.config import settings
from geobatch.utils.grid import Grid
from geobatch.utils.schemas import DatasetRef, JobState

logger = logging.getLogger(__name__)

GridOpener = Callable[[DatasetRef], Grid]


def format_elapsed(seconds: float) -> str:
    total = int(max(seconds, 0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:d}:{minutes:02d}:{secs:02d}"


def progress_message(state: JobState) -> str:
    return (
        f"Processing: {state.processed_count}/{state.total_rows} rows done, "
        f"{state.error_count} errors"
    )


def completion_message(state: JobState, elapsed_seconds: float) -> str:
    return (
        f"Completed: {state.processed_count}/{state.total_rows} rows in "
        f"{format_elapsed(elapsed_seconds)}, {state.error_count} errors"
    )


class BatchRunner:
    """Runs slices of a job."""

    def __init__(
        self,
        processor: RecordProcessor,
        checkpoints: CheckpointStore,
        continuation: Continuation,
        grid_opener: GridOpener,
        batch_size: Optional[int] = None,
        continuation_delay: Optional[float] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.processor = processor
        self.checkpoints = checkpoints
        self.continuation = continuation
        self.grid_opener = grid_opener
        self.batch_size = batch_size or settings.BATCH_SIZE
        self.continuation_delay = (
            settings.CONTINUATION_DELAY_SECONDS if continuation_delay is None else continuation_delay
        )
        self.clock = clock

    def slice_bounds(self, state: JobState) -> tuple[int, int]:
        """Inclusive row range of the next slice."""
        start = state.current_row
        return start, min(start + self.batch_size - 1, state.total_rows)

    def run_slice(self, state: JobState) -> JobState:
        """
        Process the next slice of `state`'s job.

        Args:
            state: Current (non-idle) job state

        Returns:
            State after the slice; current_row == total_rows + 1 once finished

        Raises:
            OrphanedJobError: If the dataset can no longer be opened
        """
        if state.is_idle or state.dataset is None:
            raise ValueError("run_slice called without an active job")

        dataset = state.dataset
        grid = self.grid_opener(dataset)
        start, end = self.slice_bounds(state)

        logger.info(
            "Slice started",
            extra={"job_id": state.job_id, "mode": state.mode.value, "start_row": start, "end_row": end},
        )

        processed = state.processed_count
        errors = state.error_count

        for row in range(start, end + 1):
            outcome = self.processor.process(grid, dataset, row, state.mode)
            processed += 1
            if outcome.is_error:
                errors += 1
            if row < end:
                self.processor.pause_between_rows()

        updated = state.model_copy(
            update={"current_row": end + 1, "processed_count": processed, "error_count": errors}
        )
        status_row, status_col = dataset.status_cell

        if end < updated.total_rows:
            grid.set(status_row, status_col, progress_message(updated))
            grid.flush()
            self.checkpoints.save(updated)
            self.continuation.arm(self.continuation_delay)

            logger.info(
                "Slice finished",
                extra={"job_id": state.job_id, "current_row": updated.current_row, "total_rows": updated.total_rows},
            )
            return updated

        elapsed = (self.clock() - state.started_at).total_seconds() if state.started_at else 0.0
        grid.set(status_row, status_col, completion_message(updated, elapsed))
        grid.flush()
        self.checkpoints.save(updated)
        self.checkpoints.clear()
        self.continuation.disarm()

        logger.info(
            "Job completed",
            extra={
                "job_id": state.job_id,
                "processed": updated.processed_count,
                "errors": updated.error_count,
                "elapsed": format_elapsed(elapsed),
            },
        )
        return updated
