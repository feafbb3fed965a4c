"""Tests for ApschedulerContinuation arm/disarm discipline.

Uses a scheduler that is never started, so added jobs stay pending in memory.
"""

from datetime import datetime, timedelta, timezone

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from geobatch.apps.converter.continuation import RESUME_CALLBACK, ApschedulerContinuation

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler() -> BackgroundScheduler:
    return BackgroundScheduler(timezone=timezone.utc)


def make(scheduler: BackgroundScheduler, job_id: str = "default", fired_id: str | None = None) -> ApschedulerContinuation:
    return ApschedulerContinuation(scheduler, job_id=job_id, fired_id=fired_id, clock=lambda: NOW)


class TestArm:
    def test_arm_registers_one_dated_job(self, scheduler: BackgroundScheduler) -> None:
        continuation_id = make(scheduler).arm(60)

        jobs = scheduler.get_jobs()
        assert len(jobs) == 1
        job = jobs[0]
        assert job.id == continuation_id
        assert job.id.startswith("default:continuation:")
        assert job.func_ref == RESUME_CALLBACK
        assert job.kwargs == {"job_id": "default", "continuation_id": continuation_id}
        assert job.trigger.run_date == NOW + timedelta(seconds=60)

    def test_rearming_keeps_a_single_pending_job(self, scheduler: BackgroundScheduler) -> None:
        continuation = make(scheduler)

        continuation.arm(60)
        continuation.arm(60)
        last = continuation.arm(30)

        assert [job.id for job in scheduler.get_jobs()] == [last]

    def test_other_jobs_are_untouched(self, scheduler: BackgroundScheduler) -> None:
        make(scheduler, job_id="other").arm(60)

        make(scheduler, job_id="default").arm(60)

        assert len(scheduler.get_jobs()) == 2


class TestDisarm:
    def test_disarm_without_jobs_is_noop(self, scheduler: BackgroundScheduler) -> None:
        continuation = make(scheduler)

        continuation.disarm()
        continuation.disarm()

        assert scheduler.get_jobs() == []

    def test_disarm_removes_pending(self, scheduler: BackgroundScheduler) -> None:
        continuation = make(scheduler)
        continuation.arm(60)

        continuation.disarm()

        assert continuation.pending() == []
        assert scheduler.get_jobs() == []

    def test_firing_continuation_is_left_to_the_scheduler(self, scheduler: BackgroundScheduler) -> None:
        fired = make(scheduler).arm(0)

        resumed = make(scheduler, fired_id=fired)
        next_id = resumed.arm(60)

        assert {job.id for job in scheduler.get_jobs()} == {fired, next_id}
        assert [job.id for job in resumed.pending()] == [next_id]
