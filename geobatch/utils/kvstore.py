"""
Durable key-value stores for job state and region configuration.

Two backends share one small interface:
- RedisKeyValueStore: Redis strings with connection pooling and retries
- FileKeyValueStore: one file per key under a state directory

Both are last-write-wins and survive process restarts.
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Protocol

import redis
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from geobatch.utils.config import Settings, settings

logger = logging.getLogger(__name__)

_redis_retry = retry(
    retry=retry_if_exception_type((redis.ConnectionError, redis.TimeoutError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    reraise=True,
)


class KeyValueStore(Protocol):
    """String key-value store with last-write-wins semantics."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class RedisKeyValueStore:
    """Redis-backed store with connection pooling and retries."""

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None) -> None:
        """Initialize Redis store.

        Args:
            redis_url: Redis connection URL, defaults to settings.REDIS_URL
            client: Pre-built client, mainly for tests
        """
        self.redis_url = redis_url or settings.REDIS_URL
        self.client: Optional[redis.Redis] = client

    def connect(self) -> redis.Redis:
        """Establish Redis connection with connection pooling."""
        if self.client is None:
            self.client = redis.Redis.from_url(
                self.redis_url,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                decode_responses=True,
            )
        return self.client

    @_redis_retry
    def get(self, key: str) -> Optional[str]:
        value = self.connect().get(key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    @_redis_retry
    def set(self, key: str, value: str) -> None:
        self.connect().set(key, value)

    @_redis_retry
    def delete(self, key: str) -> None:
        self.connect().delete(key)

    def close(self) -> None:
        """Close Redis connection and cleanup resources."""
        if self.client:
            self.client.close()
            self.client = None


class FileKeyValueStore:
    """Stores each key as a file under `directory`.

    Writes go through a temp file and os.replace so readers never see a
    half-written value.
    """

    _unsafe = re.compile(r"[^A-Za-z0-9._-]")

    def __init__(self, directory: Optional[str] = None) -> None:
        self.directory = Path(directory or settings.STATE_DIR)

    def _path(self, key: str) -> Path:
        return self.directory / f"{self._unsafe.sub('_', key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)

        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError:
            logger.error("Failed to write state file: %s", path, exc_info=True)
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def create_store(config: Optional[Settings] = None) -> KeyValueStore:
    """Build the store selected by STATE_BACKEND."""
    config = config or settings
    if config.STATE_BACKEND == "file":
        logger.debug("Using file state store: %s", config.STATE_DIR)
        return FileKeyValueStore(config.STATE_DIR)

    logger.debug("Using Redis state store: %s", config.REDIS_URL)
    return RedisKeyValueStore(config.REDIS_URL)
