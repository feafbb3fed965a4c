"""Tests for BackoffPolicy retry decisions."""

import pytest

from geobatch.apps.converter.policy import (
    AttemptLog,
    BackoffPolicy,
    Classification,
    RetryAction,
)
from geobatch.utils.config import Settings


@pytest.fixture
def policy() -> BackoffPolicy:
    return BackoffPolicy(max_retries=3, rate_limit_cooldown=5.0, retry_pause=2.0)


class TestTerminalClassifications:
    def test_success_is_done(self, policy: BackoffPolicy) -> None:
        log = AttemptLog()
        decision = policy.decide(Classification.SUCCESS, log)

        assert decision.action is RetryAction.DONE
        assert decision.terminal
        assert log.attempts == 1

    def test_permanent_error_gives_up_after_one_attempt(self, policy: BackoffPolicy) -> None:
        log = AttemptLog()
        decision = policy.decide(Classification.PERMANENT_ERROR, log)

        assert decision.action is RetryAction.GIVE_UP
        assert log.attempts == 1
        assert log.failures == 0


class TestTransientErrors:
    def test_retries_after_pause_until_budget_exhausted(self, policy: BackoffPolicy) -> None:
        log = AttemptLog()

        first = policy.decide(Classification.TRANSIENT_ERROR, log)
        second = policy.decide(Classification.TRANSIENT_ERROR, log)
        third = policy.decide(Classification.TRANSIENT_ERROR, log)

        assert first.action is RetryAction.RETRY_AFTER and first.delay == 2.0
        assert second.action is RetryAction.RETRY_AFTER
        assert third.action is RetryAction.GIVE_UP
        assert log.failures == 3

    def test_zero_pause_retries_immediately(self) -> None:
        policy = BackoffPolicy(max_retries=2, retry_pause=0.0)
        decision = policy.decide(Classification.TRANSIENT_ERROR, AttemptLog())

        assert decision.action is RetryAction.RETRY_NOW
        assert decision.delay == 0.0

    def test_single_attempt_budget_gives_up_immediately(self) -> None:
        policy = BackoffPolicy(max_retries=1)
        decision = policy.decide(Classification.TRANSIENT_ERROR, AttemptLog())

        assert decision.action is RetryAction.GIVE_UP


class TestRateLimiting:
    def test_waits_for_cooldown(self, policy: BackoffPolicy) -> None:
        decision = policy.decide(Classification.RATE_LIMITED, AttemptLog())

        assert decision.action is RetryAction.RETRY_AFTER
        assert decision.delay == 5.0

    def test_does_not_consume_failure_budget(self, policy: BackoffPolicy) -> None:
        log = AttemptLog()
        policy.decide(Classification.RATE_LIMITED, log)
        policy.decide(Classification.RATE_LIMITED, log)

        decision = policy.decide(Classification.TRANSIENT_ERROR, log)

        assert log.failures == 1
        assert decision.action is RetryAction.RETRY_AFTER

    def test_permanent_rate_limit_is_bounded(self, policy: BackoffPolicy) -> None:
        log = AttemptLog()
        decisions = [policy.decide(Classification.RATE_LIMITED, log) for _ in range(3)]

        assert [d.action for d in decisions] == [
            RetryAction.RETRY_AFTER,
            RetryAction.RETRY_AFTER,
            RetryAction.GIVE_UP,
        ]

    def test_separate_rate_limit_budget(self) -> None:
        policy = BackoffPolicy(max_retries=1, max_rate_limit_retries=4)
        log = AttemptLog()
        actions = [policy.decide(Classification.RATE_LIMITED, log).action for _ in range(4)]

        assert actions[-1] is RetryAction.GIVE_UP
        assert RetryAction.GIVE_UP not in actions[:-1]


def test_from_settings_uses_configured_values() -> None:
    config = Settings(
        MAX_RETRIES=5,
        MAX_RATE_LIMIT_RETRIES=7,
        RATE_LIMIT_COOLDOWN_SECONDS=9.0,
        RETRY_PAUSE_SECONDS=3.0,
        REQUEST_PAUSE_SECONDS=0.1,
    )
    policy = BackoffPolicy.from_settings(config)

    assert policy.max_retries == 5
    assert policy.max_rate_limit_retries == 7
    assert policy.rate_limit_cooldown == 9.0
    assert policy.retry_pause == 3.0


def test_rejects_empty_budget() -> None:
    with pytest.raises(ValueError):
        BackoffPolicy(max_retries=0)
