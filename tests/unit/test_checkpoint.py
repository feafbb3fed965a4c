"""Tests for CheckpointStore and RegionStore."""

from datetime import datetime, timezone

import pytest

from geobatch.apps.converter.checkpoint import CheckpointStore, RegionStore
from geobatch.utils.errors import ConfigurationError
from geobatch.utils.kvstore import FileKeyValueStore
from geobatch.utils.schemas import DatasetRef, JobMode, JobState


@pytest.fixture
def state() -> JobState:
    dataset = DatasetRef(source="/data/sites.csv", first_row=2, first_column=1, row_count=120, column_count=3)
    return JobState.begin(
        JobMode.POSITION_TO_ADDRESS,
        dataset,
        started_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        job_id="test-job",
    ).model_copy(update={"current_row": 51, "processed_count": 50, "error_count": 4})


class TestCheckpointStore:
    def test_load_without_state_is_idle(self, checkpoints: CheckpointStore) -> None:
        loaded = checkpoints.load()

        assert loaded.is_idle
        assert loaded.job_id == "test-job"

    def test_save_then_load_in_new_store_instance(
        self, checkpoints: CheckpointStore, state: JobState, state_dir
    ) -> None:
        checkpoints.save(state)

        reopened = CheckpointStore(FileKeyValueStore(str(state_dir)), job_id="test-job", prefix="test")
        loaded = reopened.load()

        assert loaded.mode is JobMode.POSITION_TO_ADDRESS
        assert loaded.current_row == 51
        assert loaded.processed_count == 50
        assert loaded.error_count == 4
        assert loaded.started_at == state.started_at
        assert loaded.dataset == state.dataset

    def test_last_write_wins(self, checkpoints: CheckpointStore, state: JobState) -> None:
        checkpoints.save(state)
        checkpoints.save(state.model_copy(update={"current_row": 101, "processed_count": 100}))

        assert checkpoints.load().current_row == 101

    def test_clear_is_idempotent(self, checkpoints: CheckpointStore, state: JobState) -> None:
        checkpoints.save(state)
        checkpoints.clear()
        checkpoints.clear()

        assert checkpoints.load().is_idle

    def test_jobs_are_keyed_separately(self, store: FileKeyValueStore, state: JobState) -> None:
        first = CheckpointStore(store, job_id="one", prefix="test")
        second = CheckpointStore(store, job_id="two", prefix="test")

        first.save(state)

        assert not first.load().is_idle
        assert second.load().is_idle

    def test_corrupt_payload_is_treated_as_idle(self, checkpoints: CheckpointStore, store: FileKeyValueStore) -> None:
        store.set(checkpoints.key, "{not json")

        assert checkpoints.load().is_idle

    def test_invalid_state_is_treated_as_idle(self, checkpoints: CheckpointStore, store: FileKeyValueStore) -> None:
        store.set(checkpoints.key, '{"mode": "address_to_position", "current_row": 5, "total_rows": 2}')

        assert checkpoints.load().is_idle


class TestRegionStore:
    def test_default_region(self, store: FileKeyValueStore) -> None:
        assert RegionStore(store, default="US", prefix="test").get() == "us"

    def test_set_normalizes_case(self, store: FileKeyValueStore) -> None:
        regions = RegionStore(store, default="us", prefix="test")

        assert regions.set(" DE ") == "de"
        assert RegionStore(store, default="us", prefix="test").get() == "de"

    @pytest.mark.parametrize("code", ["", "u", "usa", "1a", "u-"])
    def test_rejects_invalid_codes(self, store: FileKeyValueStore, code: str) -> None:
        regions = RegionStore(store, default="us", prefix="test")

        with pytest.raises(ConfigurationError):
            regions.set(code)

        assert regions.get() == "us"
