"""
Shared test fixtures and configuration for entire test suite.

Provides: scripted geocoder, recording continuation, file-backed stores,
CSV dataset factory and a no-op sleep recorder.
"""

import csv
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Union

import pytest

from geobatch.apps.converter.checkpoint import CheckpointStore
from geobatch.apps.converter.controller import JobController
from geobatch.apps.converter.policy import BackoffPolicy
from geobatch.apps.converter.processor import RecordProcessor
from geobatch.apps.converter.runner import BatchRunner
from geobatch.utils.grid import CsvGrid, open_csv_grid
from geobatch.utils.kvstore import FileKeyValueStore
from geobatch.utils.schemas import DatasetRef, LookupResult, LookupStatus

Response = Union[LookupResult, BaseException]


def ok_location(lat: float, lng: float) -> LookupResult:
    return LookupResult(status=LookupStatus.OK, raw_status="OK", latitude=lat, longitude=lng)


def ok_address(address: str) -> LookupResult:
    return LookupResult(status=LookupStatus.OK, raw_status="OK", formatted_address=address)


def rejected(status: LookupStatus, message: str | None = None) -> LookupResult:
    return LookupResult(status=status, raw_status=status.value, error_message=message)


class FakeGeocoder:
    """Geocoder returning scripted responses.

    Each key (address or "lat,lng") maps to a list of responses consumed in
    order; the last one repeats. Unscripted keys get `default`.
    """

    def __init__(self, default: Response | None = None) -> None:
        self.scripts: dict[str, list[Response]] = {}
        self.default = default or ok_location(1.0, 2.0)
        self.calls: list[str] = []
        self.call_counts: dict[str, int] = defaultdict(int)

    def script(self, key: str, *responses: Response) -> None:
        self.scripts[key] = list(responses)

    def _respond(self, key: str) -> LookupResult:
        self.calls.append(key)
        index = self.call_counts[key]
        self.call_counts[key] += 1

        responses = self.scripts.get(key)
        if responses:
            response = responses[min(index, len(responses) - 1)]
        else:
            response = self.default

        if isinstance(response, BaseException):
            raise response
        return response

    def geocode(self, query: str, region: str) -> LookupResult:
        return self._respond(query)

    def reverse_geocode(self, latitude: float, longitude: float, region: str) -> LookupResult:
        return self._respond(f"{latitude},{longitude}")


class RecordingContinuation:
    """Continuation that only records arm/disarm calls."""

    def __init__(self) -> None:
        self.armed: list[float] = []
        self.disarm_calls = 0
        self.pending = 0

    def arm(self, delay: float) -> None:
        self.disarm()
        self.armed.append(delay)
        self.pending = 1

    def disarm(self) -> None:
        self.disarm_calls += 1
        self.pending = 0


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FixedClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)

    def __call__(self) -> datetime:
        return self.now


def write_csv(path: Path, rows: list[list[str]]) -> Path:
    with open(path, "w", encoding="utf-8", newline="") as f:
        csv.writer(f).writerows(rows)
    return path


def read_csv(path: Path) -> list[list[str]]:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return [list(row) for row in csv.reader(f)]


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def continuation() -> RecordingContinuation:
    return RecordingContinuation()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture
def store(state_dir: Path) -> FileKeyValueStore:
    return FileKeyValueStore(str(state_dir))


@pytest.fixture
def checkpoints(store: FileKeyValueStore) -> CheckpointStore:
    return CheckpointStore(store, job_id="test-job", prefix="test")


@pytest.fixture
def policy() -> BackoffPolicy:
    return BackoffPolicy(max_retries=3, rate_limit_cooldown=5.0, retry_pause=2.0)


@pytest.fixture
def processor(geocoder: FakeGeocoder, policy: BackoffPolicy, sleeper: SleepRecorder) -> RecordProcessor:
    return RecordProcessor(
        geocoder=geocoder,
        policy=policy,
        region="us",
        sleep=sleeper,
        request_pause=0.5,
        jitter=0.2,
    )


@pytest.fixture
def make_dataset(tmp_path: Path) -> Callable[..., DatasetRef]:
    """Write a CSV with a header row plus `addresses` and return a region over them."""

    def _make(addresses: list[str], name: str = "dataset.csv", coordinates: list[tuple[str, str]] | None = None) -> DatasetRef:
        rows = [["address", "lat", "lng"]]
        for index, address in enumerate(addresses):
            lat, lng = coordinates[index] if coordinates else ("", "")
            rows.append([address, lat, lng])
        path = write_csv(tmp_path / name, rows)
        return DatasetRef(
            source=str(path),
            first_row=2,
            first_column=1,
            row_count=len(addresses),
            column_count=3,
        )

    return _make


@pytest.fixture
def make_runner(
    processor: RecordProcessor,
    checkpoints: CheckpointStore,
    continuation: RecordingContinuation,
    clock: FixedClock,
) -> Callable[..., BatchRunner]:
    def _make(batch_size: int = 50, grid_opener: Callable[[DatasetRef], CsvGrid] = open_csv_grid) -> BatchRunner:
        return BatchRunner(
            processor=processor,
            checkpoints=checkpoints,
            continuation=continuation,
            grid_opener=grid_opener,
            batch_size=batch_size,
            continuation_delay=60.0,
            clock=clock,
        )

    return _make


@pytest.fixture
def make_controller(
    make_runner: Callable[..., BatchRunner],
    checkpoints: CheckpointStore,
    continuation: RecordingContinuation,
    clock: FixedClock,
) -> Callable[..., JobController]:
    def _make(batch_size: int = 50, **runner_kwargs) -> JobController:
        runner = make_runner(batch_size=batch_size, **runner_kwargs)
        return JobController(checkpoints, continuation, runner, clock=clock)

    return _make
