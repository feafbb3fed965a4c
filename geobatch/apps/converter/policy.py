"""
Backoff/Retry Policy

Decides, after each lookup attempt on a row, whether to retry now, retry
after a pause, or stop.

- Rate limiting waits a fixed cooldown and draws on its own budget
- Unexpected faults pause briefly and draw on the failure budget
- Definitive service errors stop immediately
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from geobatch.utils.config import Settings, settings


class Classification(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_ERROR = "transient_error"
    PERMANENT_ERROR = "permanent_error"


class RetryAction(str, Enum):
    RETRY_NOW = "retry_now"
    RETRY_AFTER = "retry_after"
    GIVE_UP = "give_up"
    DONE = "done"


@dataclass(frozen=True)
class RetryDecision:
    action: RetryAction
    delay: float = 0.0

    @property
    def terminal(self) -> bool:
        return self.action in (RetryAction.GIVE_UP, RetryAction.DONE)


@dataclass
class AttemptLog:
    """Attempt tally for a single row."""

    attempts: int = 0
    failures: int = 0
    rate_limited: int = 0


class BackoffPolicy:
    """Retry rules for one row's lookups."""

    def __init__(
        self,
        max_retries: int = 3,
        rate_limit_cooldown: float = 5.0,
        retry_pause: float = 2.0,
        max_rate_limit_retries: Optional[int] = None,
    ) -> None:
        """
        Args:
            max_retries: Attempts allowed for unexpected faults
            rate_limit_cooldown: Seconds to wait after a rate-limit response
            retry_pause: Seconds to wait after an unexpected fault
            max_rate_limit_retries: Rate-limit responses tolerated before
                giving up; defaults to max_retries
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.max_retries = max_retries
        self.rate_limit_cooldown = rate_limit_cooldown
        self.retry_pause = retry_pause
        self.max_rate_limit_retries = max_rate_limit_retries or max_retries

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "BackoffPolicy":
        config = config or settings
        return cls(
            max_retries=config.MAX_RETRIES,
            rate_limit_cooldown=config.RATE_LIMIT_COOLDOWN_SECONDS,
            retry_pause=config.RETRY_PAUSE_SECONDS,
            max_rate_limit_retries=config.MAX_RATE_LIMIT_RETRIES,
        )

    def _retry(self, delay: float) -> RetryDecision:
        if delay <= 0:
            return RetryDecision(RetryAction.RETRY_NOW)
        return RetryDecision(RetryAction.RETRY_AFTER, delay)

    def decide(self, classification: Classification, log: AttemptLog) -> RetryDecision:
        """
        Record the attempt in `log` and decide what happens next.

        Args:
            classification: Outcome of the attempt just made
            log: Tally for the current row, updated in place

        Returns:
            RetryDecision; GIVE_UP and DONE are terminal
        """
        log.attempts += 1

        if classification is Classification.SUCCESS:
            return RetryDecision(RetryAction.DONE)

        if classification is Classification.PERMANENT_ERROR:
            return RetryDecision(RetryAction.GIVE_UP)

        if classification is Classification.RATE_LIMITED:
            log.rate_limited += 1
            if log.rate_limited >= self.max_rate_limit_retries:
                return RetryDecision(RetryAction.GIVE_UP)
            return self._retry(self.rate_limit_cooldown)

        log.failures += 1
        if log.failures >= self.max_retries:
            return RetryDecision(RetryAction.GIVE_UP)
        return self._retry(self.retry_pause)
