"""
Pydantic Schemas - Data Validation Models

Defines the schemas shared by the converter app:
- Job state persisted between slices
- Dataset region references
- Geocoding lookup results
- Per-row record outcomes

Usage:
    from geobatch.utils.schemas import JobMode, JobState

    state = JobState.begin(JobMode.ADDRESS_TO_POSITION, dataset, started_at=now)
    payload = state.model_dump(mode="json")
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Columns in a region; column 1 is the address, columns 2/3 are lat/lng
REGION_WIDTH = 3

# Gap between the region's right edge and the status cell
STATUS_COLUMN_GAP = 4


def column_letters(index: int) -> str:
    """Convert a 1-based column index to letters (1 -> 'A', 27 -> 'AA')."""
    letters = ""
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


class JobMode(str, Enum):
    """Transformation direction of the active job."""

    IDLE = "idle"
    ADDRESS_TO_POSITION = "address_to_position"
    POSITION_TO_ADDRESS = "position_to_address"


class DatasetRef(BaseModel):
    """Dataset file plus the rectangular region a job works on.

    Rows and columns are 1-based absolute grid coordinates.
    """

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., min_length=1, description="Path of the dataset file")
    first_row: int = Field(..., ge=1)
    first_column: int = Field(..., ge=1)
    row_count: int = Field(..., ge=0)
    column_count: int = Field(..., ge=1)

    @property
    def last_row(self) -> int:
        return self.first_row + self.row_count - 1

    @property
    def last_column(self) -> int:
        return self.first_column + self.column_count - 1

    @property
    def a1(self) -> str:
        """Region in A1 notation, e.g. 'A2:C121'."""
        return (
            f"{column_letters(self.first_column)}{self.first_row}:"
            f"{column_letters(self.last_column)}{self.last_row}"
        )

    @property
    def status_cell(self) -> tuple[int, int]:
        """Row 1, just right of the region."""
        return 1, self.first_column + self.column_count + STATUS_COLUMN_GAP

    def sheet_row(self, job_row: int) -> int:
        """Translate a 1-based job row into a grid row."""
        return self.first_row + job_row - 1

    def column(self, index: int) -> int:
        """Translate a 1-based region column into a grid column."""
        return self.first_column + index - 1


class JobState(BaseModel):
    """Checkpoint of a job: cursor, counters, mode and start time."""

    job_id: str = Field(default="default")
    mode: JobMode = Field(default=JobMode.IDLE)
    dataset: Optional[DatasetRef] = Field(default=None)
    current_row: int = Field(default=1, ge=1, description="Next unprocessed row (1-based)")
    total_rows: int = Field(default=0, ge=0)
    processed_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    started_at: Optional[datetime] = Field(default=None)

    @model_validator(mode="after")
    def check_cursor(self) -> "JobState":
        if self.mode is JobMode.IDLE:
            return self

        if self.dataset is None or self.started_at is None:
            raise ValueError("active job requires dataset and started_at")
        if self.current_row > self.total_rows + 1:
            raise ValueError(
                f"current_row {self.current_row} past end of {self.total_rows} rows"
            )
        if self.processed_count > self.total_rows:
            raise ValueError("processed_count exceeds total_rows")
        return self

    @classmethod
    def idle(cls, job_id: str = "default") -> "JobState":
        return cls(job_id=job_id)

    @classmethod
    def begin(
        cls,
        mode: JobMode,
        dataset: DatasetRef,
        started_at: datetime,
        job_id: str = "default",
    ) -> "JobState":
        """Fresh state for a new job; counters start at zero."""
        return cls(
            job_id=job_id,
            mode=mode,
            dataset=dataset,
            current_row=1,
            total_rows=dataset.row_count,
            started_at=started_at,
        )

    @property
    def is_idle(self) -> bool:
        return self.mode is JobMode.IDLE

    @property
    def is_complete(self) -> bool:
        return not self.is_idle and self.current_row > self.total_rows


class LookupStatus(str, Enum):
    """Status codes reported by the geocoding service."""

    OK = "OK"
    OVER_QUERY_LIMIT = "OVER_QUERY_LIMIT"
    ZERO_RESULTS = "ZERO_RESULTS"
    REQUEST_DENIED = "REQUEST_DENIED"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    OTHER = "OTHER"


class LookupResult(BaseModel):
    """Geocoding response reduced to the fields the converter uses."""

    model_config = ConfigDict(frozen=True)

    status: LookupStatus
    raw_status: str = Field(default="", description="Status string as sent by the service")
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    formatted_address: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is LookupStatus.OK

    @property
    def rate_limited(self) -> bool:
        return self.status is LookupStatus.OVER_QUERY_LIMIT


class OutcomeKind(str, Enum):
    """Terminal classification of one processed row."""

    SUCCESS = "success"
    SERVICE_ERROR = "service_error"
    TRANSIENT_FAILURE = "transient_failure"
    SKIPPED_EMPTY = "skipped_empty"


class RecordOutcome(BaseModel):
    """Result of processing one row. Never persisted."""

    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    values: tuple[Union[float, str], ...] = ()
    reason: Optional[str] = None
    attempts: int = 0

    @property
    def is_error(self) -> bool:
        return self.kind in (OutcomeKind.SERVICE_ERROR, OutcomeKind.TRANSIENT_FAILURE)
