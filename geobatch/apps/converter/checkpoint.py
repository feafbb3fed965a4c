"""
Checkpoint Store and Region Configuration

Both live in a durable KeyValueStore so they survive the process being torn
down between slices:
- <prefix>:job:<job_id>  JSON-serialized JobState
- <prefix>:region        two-letter region bias code
"""

import logging
import re
from typing import Optional

import orjson
from pydantic import ValidationError

from geobatch.utils.config import settings
from geobatch.utils.errors import ConfigurationError
from geobatch.utils.kvstore import KeyValueStore
from geobatch.utils.schemas import JobState

logger = logging.getLogger(__name__)

_REGION_CODE = re.compile(r"^[A-Za-z]{2}$")


class CheckpointStore:
    """Single-slot, last-write-wins storage for one job's state."""

    def __init__(self, store: KeyValueStore, job_id: Optional[str] = None, prefix: Optional[str] = None) -> None:
        self.store = store
        self.job_id = job_id or settings.JOB_ID
        self.key = f"{prefix or settings.KEY_PREFIX}:job:{self.job_id}"

    def load(self) -> JobState:
        """
        Load the persisted state.

        Returns:
            Stored JobState, or an idle state if nothing usable is stored
        """
        raw = self.store.get(self.key)
        if raw is None:
            return JobState.idle(self.job_id)

        try:
            return JobState.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as e:
            logger.error(
                "Discarding unreadable checkpoint",
                extra={"key": self.key, "error": str(e)},
            )
            return JobState.idle(self.job_id)

    def save(self, state: JobState) -> None:
        payload = orjson.dumps(state.model_dump(mode="json")).decode("utf-8")
        self.store.set(self.key, payload)
        logger.debug(
            "Checkpoint saved",
            extra={"key": self.key, "current_row": state.current_row, "processed": state.processed_count},
        )

    def clear(self) -> None:
        self.store.delete(self.key)


class RegionStore:
    """Region bias code passed to every lookup."""

    def __init__(self, store: KeyValueStore, default: Optional[str] = None, prefix: Optional[str] = None) -> None:
        self.store = store
        self.default = (default or settings.DEFAULT_REGION).lower()
        self.key = f"{prefix or settings.KEY_PREFIX}:region"

    def get(self) -> str:
        return self.store.get(self.key) or self.default

    def set(self, code: str) -> str:
        """
        Store a new region code.

        Raises:
            ConfigurationError: If code is not exactly two letters
        """
        code = code.strip()
        if not _REGION_CODE.match(code):
            raise ConfigurationError(f"Region must be a 2-letter code, got '{code}'")

        code = code.lower()
        self.store.set(self.key, code)
        logger.info("Region bias set to %s", code)
        return code
